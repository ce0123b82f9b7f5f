"""
Warehouse adapter interfaces and shared result types.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from datamodeler.errors.connector_errors import QueryValidationError
from datamodeler.graph.model import Column

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class QueryResult:
    """
    Normalised statement result: column names from the operation schema and
    rows as lists aligned with them.
    """

    columns: List[str]
    rows: List[List[Any]]
    rowcount: int
    elapsed_ms: int
    sql: str

    def records(self) -> List[Dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self.rows]

    def json_safe(self) -> Dict[str, Any]:
        return {
            "columns": self.columns,
            "rows": [[_json_safe(cell) for cell in row] for row in self.rows],
            "rowcount": self.rowcount,
            "elapsed_ms": self.elapsed_ms,
            "sql": self.sql,
        }


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    try:
        json.dumps(value)
        return value
    except TypeError:
        return str(value)


# ---------------------------------------------------------------------------
# Read-only guard
# ---------------------------------------------------------------------------


# Literals, quoted identifiers and comments, consumed left to right so that
# comment markers inside literals are never taken for comments.
SQL_LEXEME_RE = re.compile(
    r"(?P<quoted>`(?:[^`]|``)*`|'(?:[^'\\]|\\.|'')*'|\"(?:[^\"\\]|\\.)*\")"
    r"|(?P<comment>--[^\n]*|/\*.*?\*/)",
    re.DOTALL,
)
SQL_COMMAND_RE = re.compile(r"^\s*(\w+)", re.IGNORECASE)
FORBIDDEN_KEYWORD_RE = re.compile(
    r"\b(insert|update|delete|drop|alter|truncate|merge|create|replace|grant|revoke)\b",
    re.IGNORECASE,
)


def _blank_lexeme(match: re.Match) -> str:
    return "''" if match.group("quoted") else " "


def ensure_select_statement(sql: str) -> None:
    """Raise QueryValidationError unless the statement is a read-only SELECT."""
    unquoted = SQL_LEXEME_RE.sub(_blank_lexeme, sql).strip()
    if not unquoted:
        raise QueryValidationError("Empty SQL statement.")
    match = SQL_COMMAND_RE.match(unquoted)
    if not match:
        raise QueryValidationError("Unable to determine SQL command.")
    command = match.group(1).lower()
    if command not in {"select", "with"}:
        raise QueryValidationError("Only SELECT queries are permitted.")
    if FORBIDDEN_KEYWORD_RE.search(unquoted):
        raise QueryValidationError("Query contains prohibited keywords for read-only access.")


# ---------------------------------------------------------------------------
# Adapter interfaces
# ---------------------------------------------------------------------------


class WarehouseSession(ABC):
    """An open warehouse session; statements run sequentially on it."""

    @abstractmethod
    def execute(self, sql: str) -> QueryResult:
        raise NotImplementedError


class WarehouseConnector(ABC):
    """
    Opens sessions against a warehouse. `session()` must close the session and
    the underlying connection on every exit path.
    """

    DIALECT: str = "generic"

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or LOGGER

    @abstractmethod
    def session(self) -> AbstractContextManager[WarehouseSession]:
        raise NotImplementedError

    def execute_sync(self, sql: str) -> QueryResult:
        with self.session() as session:
            return session.execute(sql)

    async def execute(self, sql: str) -> QueryResult:
        return await asyncio.to_thread(self.execute_sync, sql)

    async def test_connection(self) -> None:
        await self.execute("SELECT 1")

    async def fetch_catalogs(self) -> List[str]:
        raise NotImplementedError

    async def fetch_schemas(self, catalog: Optional[str] = None) -> List[str]:
        raise NotImplementedError

    async def fetch_tables(self, catalog: Optional[str], schema: str) -> List[str]:
        raise NotImplementedError

    async def fetch_columns(self, schema: str, table: str) -> List[Column]:
        raise NotImplementedError
