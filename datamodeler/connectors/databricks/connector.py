import asyncio
import logging
import time
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional

from databricks import sql as databricks_sql
from databricks.sql.exc import Error as DatabricksError

from datamodeler.connectors.base import QueryResult, WarehouseConnector, WarehouseSession
from datamodeler.connectors.config import DatabricksConnectionConfig
from datamodeler.errors.connector_errors import AuthError, ConnectorError
from datamodeler.graph.model import Column
from datamodeler.query.identifiers import escape, quote_compound

_AUTH_MARKERS = ("401", "403", "invalid access token", "unauthorized", "forbidden")
_NO_UNITY_CATALOG_MARKERS = ("not_found", "not supported")
DEFAULT_CATALOG = "hive_metastore"


def _is_auth_failure(exc: Exception) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in _AUTH_MARKERS)


class DatabricksSession(WarehouseSession):
    def __init__(self, connection: Any, logger: logging.Logger) -> None:
        self._connection = connection
        self._logger = logger

    def execute(self, sql: str) -> QueryResult:
        self._logger.debug("Executing statement on Databricks: %s", sql)
        start = time.perf_counter()
        try:
            with self._connection.cursor() as cursor:
                cursor.execute(sql)
                rows = cursor.fetchall()
                columns = [description[0] for description in cursor.description or []]
        except DatabricksError as exc:
            self._logger.error("Statement failed on Databricks: %s", exc)
            raise ConnectorError(f"SQL execution failed on Databricks: {exc}") from exc

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        normalized = [list(row) for row in rows]
        self._logger.debug("Statement completed (rows=%s elapsed_ms=%s)", len(normalized), elapsed_ms)
        return QueryResult(
            columns=columns,
            rows=normalized,
            rowcount=len(normalized),
            elapsed_ms=elapsed_ms,
            sql=sql,
        )


class DatabricksConnector(WarehouseConnector):
    """
    Databricks SQL warehouse adapter. A fresh connection is opened per
    session and always closed when the session scope exits.
    """

    DIALECT = "databricks"

    def __init__(
        self,
        config: DatabricksConnectionConfig,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(logger=logger or logging.getLogger(__name__))
        self._config = config

    @contextmanager
    def session(self) -> Iterator[DatabricksSession]:
        try:
            connection = databricks_sql.connect(
                server_hostname=self._config.host,
                http_path=self._config.http_path,
                access_token=self._config.token,
            )
        except DatabricksError as exc:
            self.logger.error("Unable to connect to Databricks host %s: %s", self._config.host, exc)
            if _is_auth_failure(exc):
                raise AuthError(f"Databricks rejected the access token: {exc}") from exc
            raise ConnectorError(f"Unable to connect to Databricks: {exc}") from exc

        try:
            yield DatabricksSession(connection, self.logger)
        finally:
            connection.close()

    async def fetch_catalogs(self) -> List[str]:
        try:
            result = await self.execute("SHOW CATALOGS")
        except ConnectorError as exc:
            message = str(exc).lower()
            if any(marker in message for marker in _NO_UNITY_CATALOG_MARKERS):
                return [DEFAULT_CATALOG]
            raise
        return [_first_present(record, "catalog", "CATALOG_NAME") for record in result.records()]

    async def fetch_schemas(self, catalog: Optional[str] = None) -> List[str]:
        sql = f"SHOW SCHEMAS IN {escape(catalog)}" if catalog else "SHOW SCHEMAS"
        result = await self.execute(sql)
        return [
            _first_present(record, "databaseName", "SCHEMA_NAME", "namespace")
            for record in result.records()
        ]

    async def fetch_tables(self, catalog: Optional[str], schema: str) -> List[str]:
        qualified = quote_compound(f"{catalog}.{schema}" if catalog else schema)
        result = await self.execute(f"SHOW TABLES IN {qualified}")
        return [_first_present(record, "tableName", "TABLE_NAME") for record in result.records()]

    async def fetch_columns(self, schema: str, table: str) -> List[Column]:
        qualified = quote_compound(schema)
        target = f"{qualified}.{escape(table)}" if qualified else escape(table)
        result = await self.execute(f"DESCRIBE TABLE {target}")
        columns: List[Column] = []
        for record in result.records():
            name = _first_present(record, "col_name", "COLUMN_NAME")
            # DESCRIBE appends partition/detail sections after a blank or '#' row.
            if not name or str(name).startswith("#"):
                break
            columns.append(
                Column(
                    name=str(name),
                    type=_first_present(record, "data_type", "DATA_TYPE"),
                    comment=record.get("comment"),
                )
            )
        return columns

    async def execute(self, sql: str) -> QueryResult:
        self.logger.info("Running Databricks statement on %s", self._config.host)
        return await asyncio.to_thread(self.execute_sync, sql)


def _first_present(record: dict, *keys: str) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None
