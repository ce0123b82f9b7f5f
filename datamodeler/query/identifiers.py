from typing import Optional

from datamodeler.constants import IDENTIFIER_QUOTE, UNKNOWN_TABLE
from datamodeler.graph.model import TableNode


def escape(value: Optional[str]) -> str:
    """Quote an identifier with backticks, doubling any embedded backtick."""
    text = "" if value is None else str(value)
    escaped = text.replace(IDENTIFIER_QUOTE, IDENTIFIER_QUOTE * 2)
    return f"{IDENTIFIER_QUOTE}{escaped}{IDENTIFIER_QUOTE}"


def quote_compound(value: str) -> str:
    parts = [part for part in value.split(".") if part]
    return ".".join(escape(part) for part in parts)


def qualify(table: Optional[TableNode]) -> str:
    """
    `schema.part`.`table` reference for a table node. A node without a table
    name yields a placeholder so that a half-built graph still compiles.
    """
    if table is None or not table.table_name:
        return UNKNOWN_TABLE
    schema = quote_compound(table.schema_path or "")
    if not schema:
        return escape(table.table_name)
    return f"{schema}.{escape(table.table_name)}"


def column_ref(alias: str, column: Optional[str]) -> str:
    return f"{alias}.{escape(column)}"


def quote_literal(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"
