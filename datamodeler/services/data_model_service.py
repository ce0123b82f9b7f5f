import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from datamodeler.config import settings
from datamodeler.connectors.base import WarehouseConnector, ensure_select_statement
from datamodeler.connectors.config import DatabricksConnectionConfig
from datamodeler.connectors.databricks import DatabricksConnector
from datamodeler.errors.application_errors import (
    BusinessValidationError,
    QueryExecutionError,
    ResourceNotFound,
)
from datamodeler.errors.connector_errors import ConnectorError
from datamodeler.graph.loader import DataModelError, dump_data_model, load_data_model
from datamodeler.graph.model import Column, DataModel
from datamodeler.models.data_modeling import (
    DataModelSummary,
    DraftExecutionRequest,
    EdgeValidationRequest,
    ModelExecutionResult,
    ModelValidationRequest,
    SaveModelRequest,
)
from datamodeler.query.assembler import CompiledQuery, SqlAssembler, apply_row_limit
from datamodeler.query.sql_sync import SqlSyncResult, sync_model_from_sql
from datamodeler.repositories.connection_repository import ConnectionRepository
from datamodeler.repositories.data_model_repository import DataModelRepository
from datamodeler.validation.cardinality import (
    CardinalityValidator,
    EdgeValidationResult,
    ModelValidationResult,
    build_stats_sql,
    with_detected_cardinalities,
)

ConnectorFactory = Callable[[DatabricksConnectionConfig], WarehouseConnector]
T = TypeVar("T")


class DataModelService:
    """
    Compiles, previews, validates and stores data models. This is the layer
    that turns warehouse failures into `QueryExecutionError` carrying the SQL
    that was attempted.
    """

    def __init__(
        self,
        model_repository: DataModelRepository,
        connection_repository: ConnectionRepository,
        connector_factory: ConnectorFactory = DatabricksConnector,
        assembler: Optional[SqlAssembler] = None,
        validator: Optional[CardinalityValidator] = None,
    ):
        self._model_repository = model_repository
        self._connection_repository = connection_repository
        self._connector_factory = connector_factory
        self._assembler = assembler or SqlAssembler()
        self._validator = validator or CardinalityValidator()
        self._logger = logging.getLogger(__name__)

    def compile_model(self, model: DataModel) -> Optional[CompiledQuery]:
        return self._assembler.compile(model)

    async def execute_model(self, model_id: str, row_limit: Optional[int] = None) -> ModelExecutionResult:
        record = await self._model_repository.get_model(model_id)
        if record is None:
            raise ResourceNotFound(f"Data model {model_id} not found")
        model = self._load(record)

        connection = await self._get_connection(model.connection_id)
        if not model.tables:
            raise BusinessValidationError("Model must have at least one table")

        compiled = self._assembler.compile(model)
        if compiled is None:
            raise BusinessValidationError("Model must have at least one table")
        return await self._run(connection, compiled, row_limit)

    async def execute_draft(self, request: DraftExecutionRequest) -> ModelExecutionResult:
        if not request.connection_id:
            raise BusinessValidationError("Connection ID required for preview")
        connection = await self._get_connection(request.connection_id)

        model = self._load(request.graph())
        compiled = self._assembler.compile(model)
        if compiled is None:
            raise BusinessValidationError("No tables configured")
        return await self._run(connection, compiled, request.row_limit)

    async def validate_edge(self, request: EdgeValidationRequest) -> EdgeValidationResult:
        if (
            not request.connection_id
            or request.source_table is None
            or request.target_table is None
            or not request.conditions
        ):
            raise BusinessValidationError("Missing parameters for validation")
        connection = await self._get_connection(request.connection_id)

        source = request.source_table.to_node()
        target = request.target_table.to_node()
        connector = self._connector_factory(connection)
        try:
            return await asyncio.to_thread(
                self._validator.validate_edge, connector, source, target, request.conditions
            )
        except ConnectorError as exc:
            sql = build_stats_sql(source, target, request.conditions)
            self._logger.error("Cardinality validation failed: %s\nSQL: %s", exc, sql)
            raise QueryExecutionError(str(exc), sql=sql) from exc

    async def validate_model(self, request: ModelValidationRequest) -> ModelValidationResult:
        if not request.connection_id or not request.tables or not request.relationships:
            return ModelValidationResult()
        connection = await self._get_connection(request.connection_id)

        model = self._load({"tables": request.tables, "relationships": request.relationships})
        return await self._validate_graph(connection, model)

    async def refresh_cardinalities(self, model_id: str) -> ModelValidationResult:
        """Validate a stored model and save the detected cardinalities onto its relationships."""
        record = await self._model_repository.get_model(model_id)
        if record is None:
            raise ResourceNotFound(f"Data model {model_id} not found")
        model = self._load(record)
        connection = await self._get_connection(model.connection_id)
        if not model.tables or not model.edges:
            return ModelValidationResult()

        result = await self._validate_graph(connection, model)
        if result.reports:
            updated = with_detected_cardinalities(model, result)
            await self._model_repository.replace_model(dump_data_model(updated))
            await self._model_repository.commit()
            self._logger.info("Updated cardinalities of %s relationships on model %s", len(result.reports), model_id)
        return result

    async def list_models(self, group_id: str) -> List[DataModelSummary]:
        entries = await self._model_repository.list_for_group(group_id)
        return [
            DataModelSummary(
                id=entry.id,
                name=entry.name,
                description=entry.description,
                group_id=entry.group_id,
                connection_id=entry.connection_id,
                updated_at=entry.updated_at,
            )
            for entry in entries
        ]

    async def save_model(self, request: SaveModelRequest) -> DataModel:
        if not request.group_id:
            raise BusinessValidationError("Missing groupId")
        if not request.name:
            raise BusinessValidationError("Missing model name")
        if request.id and await self._model_repository.get_model(request.id) is None:
            raise ResourceNotFound(f"Data model {request.id} not found")

        model = self._load(
            {
                **request.graph(),
                "id": request.id,
                "name": request.name,
                "description": request.description,
                "groupId": request.group_id,
                "connectionId": request.connection_id,
            }
        )
        table_ids = {table.id for table in model.tables}
        edges = []
        for edge in model.edges:
            if edge.from_table_id in table_ids and edge.to_table_id in table_ids:
                edges.append(edge)
            else:
                self._logger.info("Dropping relationship %s: endpoint not in the saved tables", edge.report_id)
        model = model.model_copy(update={"edges": edges})

        stored = await self._model_repository.replace_model(dump_data_model(model))
        await self._model_repository.commit()
        self._logger.info("Saved data model %s (%s tables, %s relationships)", stored.id, len(stored.tables), len(stored.relationships))
        return self._load(stored)

    async def delete_model(self, model_id: str) -> None:
        if not await self._model_repository.delete_model(model_id):
            raise ResourceNotFound(f"Data model {model_id} not found")
        await self._model_repository.commit()

    def sync_manual_sql(self, model: DataModel, sql: str) -> SqlSyncResult:
        return sync_model_from_sql(model, sql)

    async def list_catalogs(self, connection_id: str) -> List[str]:
        connector = await self._connector_for(connection_id)
        return await self._browse(connector.fetch_catalogs())

    async def list_schemas(self, connection_id: str, catalog: Optional[str] = None) -> List[str]:
        connector = await self._connector_for(connection_id)
        return await self._browse(connector.fetch_schemas(catalog))

    async def list_tables(self, connection_id: str, schema: str, catalog: Optional[str] = None) -> List[str]:
        connector = await self._connector_for(connection_id)
        return await self._browse(connector.fetch_tables(catalog, schema))

    async def list_columns(self, connection_id: str, schema: str, table: str) -> List[Column]:
        connector = await self._connector_for(connection_id)
        return await self._browse(connector.fetch_columns(schema, table))

    async def _run(
        self,
        connection: DatabricksConnectionConfig,
        compiled: CompiledQuery,
        row_limit: Optional[int],
    ) -> ModelExecutionResult:
        sql = apply_row_limit(compiled.sql, self._resolve_row_limit(row_limit))
        self._logger.info("Executing data model SQL:\n%s", sql)

        connector = self._connector_factory(connection)
        try:
            if settings.ENFORCE_READ_ONLY:
                ensure_select_statement(sql)
            result = await connector.execute(sql)
        except ConnectorError as exc:
            self._logger.error("Execution failed: %s\nSQL: %s", exc, sql)
            raise QueryExecutionError(str(exc), sql=sql) from exc

        payload = result.json_safe()
        return ModelExecutionResult(
            sql=sql,
            columns=payload["columns"],
            rows=payload["rows"],
            warnings=ModelExecutionResult.warning_messages(compiled.warnings),
        )

    async def _validate_graph(
        self, connection: DatabricksConnectionConfig, model: DataModel
    ) -> ModelValidationResult:
        connector = self._connector_factory(connection)
        try:
            return await asyncio.to_thread(
                self._validator.validate_model, connector, model.tables, model.edges
            )
        except ConnectorError as exc:
            self._logger.error("Batch validation failed: %s", exc)
            raise QueryExecutionError(str(exc)) from exc

    @staticmethod
    def _resolve_row_limit(row_limit: Optional[int]) -> int:
        if row_limit is None or row_limit <= 0:
            return settings.DEFAULT_ROW_LIMIT
        return min(row_limit, settings.MAX_ROW_LIMIT)

    async def _get_connection(self, connection_id: Optional[str]) -> DatabricksConnectionConfig:
        connection = None
        if connection_id:
            connection = await self._connection_repository.get_connection(connection_id)
        if connection is None:
            raise ResourceNotFound("Connection not found")
        return connection

    async def _connector_for(self, connection_id: str) -> WarehouseConnector:
        return self._connector_factory(await self._get_connection(connection_id))

    async def _browse(self, call: Awaitable[T]) -> T:
        try:
            return await call
        except ConnectorError as exc:
            self._logger.error("Catalog browsing failed: %s", exc)
            raise QueryExecutionError(str(exc)) from exc

    @staticmethod
    def _load(source: Any) -> DataModel:
        try:
            return load_data_model(source)
        except DataModelError as exc:
            raise BusinessValidationError(str(exc)) from exc
