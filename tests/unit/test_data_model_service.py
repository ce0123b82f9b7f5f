from contextlib import contextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from datamodeler.config import settings
from datamodeler.connectors.base import QueryResult, WarehouseConnector, WarehouseSession
from datamodeler.connectors.config import DatabricksConnectionConfig
from datamodeler.errors.application_errors import (
    BusinessValidationError,
    QueryExecutionError,
    ResourceNotFound,
)
from datamodeler.errors.connector_errors import ConnectorError
from datamodeler.graph.loader import DataModelRecord
from datamodeler.models.data_modeling import (
    DraftExecutionRequest,
    EdgeValidationRequest,
    ModelValidationRequest,
    SaveModelRequest,
)
from datamodeler.services.data_model_service import DataModelService


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeSession(WarehouseSession):
    def __init__(self, outcomes):
        self._outcomes = list(outcomes)
        self.executed: list[str] = []

    def execute(self, sql: str) -> QueryResult:
        self.executed.append(sql)
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeConnector(WarehouseConnector):
    def __init__(self, outcomes=()):
        super().__init__()
        self.fake_session = FakeSession(outcomes)

    @contextmanager
    def session(self):
        yield self.fake_session


def _result(columns, rows) -> QueryResult:
    return QueryResult(columns=columns, rows=rows, rowcount=len(rows), elapsed_ms=3, sql="")


def _connection() -> DatabricksConnectionConfig:
    return DatabricksConnectionConfig(id="c1", host="adb.example.net", http_path="/sql/1.0/x", token="t")


def _graph() -> dict:
    return {
        "tables": [
            {"id": "a", "tableName": "customers", "selectedColumns": [{"name": "id"}]},
            {"id": "b", "tableName": "orders"},
        ],
        "relationships": [
            {"id": "e1", "fromTableId": "a", "toTableId": "b", "fromColumn": "id", "toColumn": "customer_id"},
        ],
    }


def _build_service(outcomes=(), record=None, connection=None):
    connector = FakeConnector(outcomes)
    model_repository = SimpleNamespace(
        get_model=AsyncMock(return_value=record),
        replace_model=AsyncMock(),
        delete_model=AsyncMock(return_value=True),
        commit=AsyncMock(),
    )
    connection_repository = SimpleNamespace(
        get_connection=AsyncMock(return_value=connection or _connection()),
    )
    connector_factory = MagicMock(return_value=connector)
    service = DataModelService(
        model_repository=model_repository,
        connection_repository=connection_repository,
        connector_factory=connector_factory,
    )
    return service, model_repository, connection_repository, connector_factory, connector


@pytest.mark.anyio
async def test_execute_model_runs_compiled_sql_with_default_limit() -> None:
    record = DataModelRecord.model_validate({"id": "m1", "connectionId": "c1", **_graph()})
    service, _, connection_repository, connector_factory, connector = _build_service(
        outcomes=[_result(["id"], [[1], [2]])], record=record
    )

    result = await service.execute_model("m1")

    assert result.sql == (
        "SELECT t1.`id`\n"
        "FROM `customers` AS t1\n"
        "LEFT JOIN `orders` AS t2 ON t1.`id` = t2.`customer_id` LIMIT 100"
    )
    assert result.columns == ["id"]
    assert result.rows == [[1], [2]]
    assert connector.fake_session.executed == [result.sql]
    connection_repository.get_connection.assert_awaited_once_with("c1")
    connector_factory.assert_called_once_with(_connection())


@pytest.mark.anyio
async def test_execute_model_missing_model_raises_not_found() -> None:
    service, *_ = _build_service(record=None)

    with pytest.raises(ResourceNotFound):
        await service.execute_model("missing")


@pytest.mark.anyio
async def test_execute_model_requires_tables() -> None:
    record = DataModelRecord(id="m1", connection_id="c1")
    service, *_ = _build_service(record=record)

    with pytest.raises(BusinessValidationError, match="at least one table"):
        await service.execute_model("m1")


@pytest.mark.anyio
async def test_execute_model_requires_connection() -> None:
    record = DataModelRecord.model_validate({"id": "m1", "connectionId": "c1", **_graph()})
    service, _, connection_repository, *_ = _build_service(record=record)
    connection_repository.get_connection.return_value = None

    with pytest.raises(ResourceNotFound, match="Connection not found"):
        await service.execute_model("m1")


@pytest.mark.anyio
async def test_warehouse_failure_surfaces_message_and_sql() -> None:
    service, *_ = _build_service(outcomes=[ConnectorError("PARSE_SYNTAX_ERROR near JOIN")])
    request = DraftExecutionRequest.model_validate({**_graph(), "connectionId": "c1", "rowLimit": 5})

    with pytest.raises(QueryExecutionError) as exc_info:
        await service.execute_draft(request)

    payload = exc_info.value.to_payload()
    assert payload["message"] == "PARSE_SYNTAX_ERROR near JOIN"
    assert payload["sql"].endswith("LIMIT 5")


@pytest.mark.anyio
async def test_draft_row_limit_is_clamped(monkeypatch) -> None:
    monkeypatch.setattr(settings, "MAX_ROW_LIMIT", 500)
    service, *_ = _build_service(outcomes=[_result(["id"], [])])
    request = DraftExecutionRequest.model_validate({**_graph(), "connectionId": "c1", "rowLimit": 1_000_000})

    result = await service.execute_draft(request)

    assert result.sql.endswith("LIMIT 500")


@pytest.mark.anyio
async def test_draft_manual_sql_keeps_its_own_limit() -> None:
    service, *_ = _build_service(outcomes=[_result(["n"], [[1]])])
    request = DraftExecutionRequest.model_validate(
        {
            "connectionId": "c1",
            "filters": {"isManual": True, "manualSql": "SELECT count(*) AS n FROM orders LIMIT 10"},
        }
    )

    result = await service.execute_draft(request)

    assert result.sql == "SELECT count(*) AS n FROM orders LIMIT 10"


@pytest.mark.anyio
async def test_draft_requires_connection_id() -> None:
    service, *_ = _build_service()

    with pytest.raises(BusinessValidationError, match="Connection ID required"):
        await service.execute_draft(DraftExecutionRequest.model_validate(_graph()))


@pytest.mark.anyio
async def test_draft_without_tables_is_rejected() -> None:
    service, *_ = _build_service()

    with pytest.raises(BusinessValidationError, match="No tables configured"):
        await service.execute_draft(DraftExecutionRequest(connection_id="c1"))


@pytest.mark.anyio
async def test_read_only_guard_blocks_mutating_manual_sql() -> None:
    service, *_, connector = _build_service(outcomes=[_result([], [])])
    request = DraftExecutionRequest.model_validate(
        {"connectionId": "c1", "filters": {"isManual": True, "manualSql": "DROP TABLE orders"}}
    )

    with pytest.raises(QueryExecutionError) as exc_info:
        await service.execute_draft(request)

    assert exc_info.value.sql.startswith("DROP TABLE orders")
    assert connector.fake_session.executed == []


@pytest.mark.anyio
async def test_validate_edge_classifies_relationship() -> None:
    service, *_ = _build_service(
        outcomes=[_result(["side", "total_rows", "distinct_keys"], [["source", 100, 100], ["target", 50, 10]])]
    )
    request = EdgeValidationRequest.model_validate(
        {
            "connectionId": "c1",
            "sourceTable": {"tableName": "customers", "schema": "main.crm"},
            "targetTable": {"tableName": "orders", "schema": "main.sales"},
            "conditions": [{"fromColumn": "id", "toColumn": "customer_id"}],
        }
    )

    result = await service.validate_edge(request)

    assert result.model_dump(by_alias=True, mode="json") == {
        "source": {"isMany": False, "totalRows": 100, "distinctKeys": 100},
        "target": {"isMany": True, "totalRows": 50, "distinctKeys": 10},
        "detectedCardinality": "ONE_TO_MANY",
    }


@pytest.mark.anyio
async def test_validate_edge_rejects_missing_parameters() -> None:
    service, *_ = _build_service()
    request = EdgeValidationRequest.model_validate(
        {"connectionId": "c1", "sourceTable": {"tableName": "customers"}, "conditions": []}
    )

    with pytest.raises(BusinessValidationError, match="Missing parameters"):
        await service.validate_edge(request)


@pytest.mark.anyio
async def test_validate_edge_failure_carries_statistics_sql() -> None:
    service, *_ = _build_service(outcomes=[ConnectorError("warehouse stopped")])
    request = EdgeValidationRequest.model_validate(
        {
            "connectionId": "c1",
            "sourceTable": {"tableName": "customers"},
            "targetTable": {"tableName": "orders"},
            "conditions": [{"fromColumn": "id", "toColumn": "customer_id"}],
        }
    )

    with pytest.raises(QueryExecutionError) as exc_info:
        await service.validate_edge(request)

    assert "UNION ALL" in exc_info.value.sql


@pytest.mark.anyio
async def test_validate_model_short_circuits_on_empty_input() -> None:
    service, _, connection_repository, connector_factory, _ = _build_service()

    result = await service.validate_model(ModelValidationRequest(connection_id="c1", tables=[], relationships=[]))

    assert result.model_dump(by_alias=True) == {"issues": [], "reports": [], "validated": True}
    connection_repository.get_connection.assert_not_awaited()
    connector_factory.assert_not_called()


@pytest.mark.anyio
async def test_validate_model_flags_many_to_many() -> None:
    service, *_ = _build_service(
        outcomes=[_result(["side", "total_rows", "distinct_keys"], [["source", 9, 3], ["target", 8, 2]])]
    )
    request = ModelValidationRequest.model_validate({"connectionId": "c1", **_graph()})

    result = await service.validate_model(request)

    assert [issue.id for issue in result.issues] == ["e1"]
    assert result.issues[0].type == "MANY_TO_MANY"


@pytest.mark.anyio
async def test_save_model_requires_group_and_name() -> None:
    service, *_ = _build_service()

    with pytest.raises(BusinessValidationError, match="groupId"):
        await service.save_model(SaveModelRequest(name="Revenue"))
    with pytest.raises(BusinessValidationError, match="model name"):
        await service.save_model(SaveModelRequest(group_id="g1"))


@pytest.mark.anyio
async def test_save_model_drops_dangling_relationships_and_commits() -> None:
    service, model_repository, *_ = _build_service()
    graph = _graph()
    graph["relationships"].append({"id": "e2", "fromTableId": "a", "toTableId": "deleted"})
    model_repository.replace_model.side_effect = lambda record: record.model_copy(update={"id": "m-new"})

    saved = await service.save_model(SaveModelRequest.model_validate({**graph, "name": "Revenue", "groupId": "g1"}))

    stored_record = model_repository.replace_model.await_args.args[0]
    assert [relationship.id for relationship in stored_record.relationships] == ["e1"]
    assert stored_record.relationships[0].join_type == "LEFT"
    assert stored_record.relationships[0].cardinality == "ONE_TO_MANY"
    model_repository.commit.assert_awaited_once()
    assert saved.id == "m-new"
    assert [edge.id for edge in saved.edges] == ["e1"]


@pytest.mark.anyio
async def test_save_model_with_unknown_id_raises_not_found() -> None:
    service, *_ = _build_service(record=None)

    with pytest.raises(ResourceNotFound):
        await service.save_model(SaveModelRequest(id="missing", name="Revenue", group_id="g1"))


@pytest.mark.anyio
async def test_delete_model_unknown_id_raises_not_found() -> None:
    service, model_repository, *_ = _build_service()
    model_repository.delete_model.return_value = False

    with pytest.raises(ResourceNotFound):
        await service.delete_model("missing")


@pytest.mark.anyio
async def test_catalog_browsing_wraps_warehouse_errors() -> None:
    service, _, _, connector_factory, _ = _build_service()
    connector_factory.return_value = SimpleNamespace(
        fetch_schemas=AsyncMock(side_effect=ConnectorError("no permission"))
    )

    with pytest.raises(QueryExecutionError, match="no permission"):
        await service.list_schemas("c1", "main")


@pytest.mark.anyio
async def test_catalog_browsing_delegates_to_connector() -> None:
    service, _, _, connector_factory, _ = _build_service()
    connector_factory.return_value = SimpleNamespace(
        fetch_catalogs=AsyncMock(return_value=["main"]),
        fetch_tables=AsyncMock(return_value=["orders"]),
    )

    assert await service.list_catalogs("c1") == ["main"]
    assert await service.list_tables("c1", "sales", catalog="main") == ["orders"]
    connector_factory.return_value.fetch_tables.assert_awaited_once_with("main", "sales")


def test_sync_manual_sql_delegates_to_advisory_sync() -> None:
    service, *_ = _build_service()
    model = service._load(_graph())

    result = service.sync_manual_sql(model, "SELECT t2.status FROM orders AS t2")

    assert result.model.tables[1].selected_columns[0].name == "status"


@pytest.mark.anyio
async def test_refresh_cardinalities_saves_detected_values() -> None:
    record = DataModelRecord.model_validate({"id": "m1", "groupId": "g1", "name": "Revenue", "connectionId": "c1", **_graph()})
    service, model_repository, *_ = _build_service(
        outcomes=[_result(["side", "total_rows", "distinct_keys"], [["source", 9, 3], ["target", 8, 8]])],
        record=record,
    )

    result = await service.refresh_cardinalities("m1")

    assert result.reports[0].cardinality == "MANY_TO_ONE"
    stored_record = model_repository.replace_model.await_args.args[0]
    assert stored_record.id == "m1"
    assert stored_record.relationships[0].cardinality == "MANY_TO_ONE"
    model_repository.commit.assert_awaited_once()


@pytest.mark.anyio
async def test_refresh_cardinalities_without_relationships_saves_nothing() -> None:
    record = DataModelRecord.model_validate(
        {"id": "m1", "connectionId": "c1", "tables": [{"id": "a", "tableName": "customers"}]}
    )
    service, model_repository, _, connector_factory, _ = _build_service(record=record)

    result = await service.refresh_cardinalities("m1")

    assert result.reports == []
    model_repository.replace_model.assert_not_awaited()
    connector_factory.assert_not_called()


@pytest.mark.anyio
async def test_list_models_summarises_group_entries() -> None:
    service, model_repository, *_ = _build_service()
    model_repository.list_for_group = AsyncMock(
        return_value=[
            SimpleNamespace(
                id="m1", name="Revenue", description=None, group_id="g1", connection_id="c1", updated_at=None
            )
        ]
    )

    summaries = await service.list_models("g1")

    assert [summary.model_dump(by_alias=True) for summary in summaries] == [
        {
            "id": "m1",
            "name": "Revenue",
            "description": None,
            "groupId": "g1",
            "connectionId": "c1",
            "updatedAt": None,
        }
    ]
    model_repository.list_for_group.assert_awaited_once_with("g1")
