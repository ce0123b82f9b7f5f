from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from databricks.sql.exc import Error as DatabricksError

import datamodeler.connectors.databricks.connector as connector_module
from datamodeler.connectors.config import DatabricksConnectionConfig
from datamodeler.connectors.databricks import DatabricksConnector
from datamodeler.errors.connector_errors import AuthError, ConnectorError
from datamodeler.graph.model import Column


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeCursor:
    def __init__(self, responses):
        self._responses = responses
        self.description = None
        self._rows = []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True
        return False

    def execute(self, sql: str) -> None:
        response = self._responses[sql] if sql in self._responses else self._responses["*"]
        if isinstance(response, Exception):
            raise response
        columns, rows = response
        self.description = [(column, "string", None, None, None, None, None) for column in columns]
        self._rows = rows

    def fetchall(self):
        return self._rows


class FakeConnection:
    def __init__(self, responses):
        self._responses = responses
        self.cursors: list[FakeCursor] = []
        self.close = MagicMock()

    def cursor(self) -> FakeCursor:
        cursor = FakeCursor(self._responses)
        self.cursors.append(cursor)
        return cursor


def _config() -> DatabricksConnectionConfig:
    return DatabricksConnectionConfig(
        host="https://adb-123.azuredatabricks.net/",
        httpPath="/sql/1.0/warehouses/abc",
        token="dapi-secret",
    )


def _install(monkeypatch, responses):
    connection = FakeConnection(responses)
    calls = []

    def fake_connect(**kwargs):
        calls.append(kwargs)
        return connection

    monkeypatch.setattr(connector_module, "databricks_sql", SimpleNamespace(connect=fake_connect))
    return connection, calls


def test_config_normalises_host_and_hides_token() -> None:
    config = _config()

    assert config.host == "adb-123.azuredatabricks.net"
    assert config.http_path == "/sql/1.0/warehouses/abc"
    assert "dapi-secret" not in repr(config)


def test_execute_returns_rows_aligned_with_columns(monkeypatch) -> None:
    connection, calls = _install(monkeypatch, {"*": (["id", "name"], [(1, "a"), (2, "b")])})

    result = DatabricksConnector(_config()).execute_sync("SELECT id, name FROM t")

    assert result.columns == ["id", "name"]
    assert result.rows == [[1, "a"], [2, "b"]]
    assert result.rowcount == 2
    assert calls == [
        {
            "server_hostname": "adb-123.azuredatabricks.net",
            "http_path": "/sql/1.0/warehouses/abc",
            "access_token": "dapi-secret",
        }
    ]
    assert connection.cursors[0].closed
    connection.close.assert_called_once()


def test_statement_failure_closes_connection(monkeypatch) -> None:
    connection, _ = _install(monkeypatch, {"*": DatabricksError("TABLE_OR_VIEW_NOT_FOUND")})

    with pytest.raises(ConnectorError, match="TABLE_OR_VIEW_NOT_FOUND"):
        DatabricksConnector(_config()).execute_sync("SELECT * FROM missing")

    assert connection.cursors[0].closed
    connection.close.assert_called_once()


def test_rejected_token_raises_auth_error(monkeypatch) -> None:
    def fake_connect(**kwargs):
        raise DatabricksError("Invalid access token (403)")

    monkeypatch.setattr(connector_module, "databricks_sql", SimpleNamespace(connect=fake_connect))

    with pytest.raises(AuthError):
        DatabricksConnector(_config()).execute_sync("SELECT 1")


@pytest.mark.anyio
async def test_fetch_catalogs_falls_back_without_unity_catalog(monkeypatch) -> None:
    _install(monkeypatch, {"SHOW CATALOGS": DatabricksError("[NOT_FOUND] Catalog listing is unavailable")})

    assert await DatabricksConnector(_config()).fetch_catalogs() == ["hive_metastore"]


@pytest.mark.anyio
async def test_fetch_catalogs_lists_catalog_column(monkeypatch) -> None:
    _install(monkeypatch, {"SHOW CATALOGS": (["catalog"], [("main",), ("samples",)])})

    assert await DatabricksConnector(_config()).fetch_catalogs() == ["main", "samples"]


@pytest.mark.anyio
async def test_fetch_schemas_and_tables_quote_identifiers(monkeypatch) -> None:
    _install(
        monkeypatch,
        {
            "SHOW SCHEMAS IN `main`": (["databaseName"], [("sales",)]),
            "SHOW TABLES IN `main`.`sales`": (["database", "tableName", "isTemporary"], [("sales", "orders", False)]),
        },
    )
    connector = DatabricksConnector(_config())

    assert await connector.fetch_schemas("main") == ["sales"]
    assert await connector.fetch_tables("main", "sales") == ["orders"]


@pytest.mark.anyio
async def test_fetch_columns_stops_at_describe_detail_rows(monkeypatch) -> None:
    _install(
        monkeypatch,
        {
            "DESCRIBE TABLE `main`.`sales`.`orders`": (
                ["col_name", "data_type", "comment"],
                [
                    ("id", "bigint", None),
                    ("amount", "decimal(10,2)", "gross"),
                    ("", "", ""),
                    ("# Partition Information", "", ""),
                    ("region", "string", None),
                ],
            )
        },
    )

    columns = await DatabricksConnector(_config()).fetch_columns("main.sales", "orders")

    assert columns == [
        Column(name="id", type="bigint"),
        Column(name="amount", type="decimal(10,2)", comment="gross"),
    ]
