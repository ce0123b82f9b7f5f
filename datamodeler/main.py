import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from datamodeler.config import settings
from datamodeler.connectors.config import DatabricksConnectionConfig
from datamodeler.db import (
    async_session_scope,
    create_async_engine_for_url,
    create_async_session_factory,
    initialize_database,
)
from datamodeler.errors.application_errors import (
    BusinessValidationError,
    QueryExecutionError,
    ResourceNotFound,
)
from datamodeler.graph.loader import DataModelError, load_data_model
from datamodeler.models.data_modeling import (
    DraftExecutionRequest,
    ModelValidationRequest,
    SaveModelRequest,
)
from datamodeler.query.assembler import SqlAssembler, apply_row_limit
from datamodeler.repositories import ConnectionRepository, DataModelRepository
from datamodeler.services import DataModelService
from datamodeler.utils.logger import setup_logging

logger = logging.getLogger("datamodeler.cli")

SETTINGS_CONNECTION_ID = "settings"


class _ConnectionSource:
    """Stored connections, plus the `settings` id for the environment-configured warehouse."""

    def __init__(self, repository: ConnectionRepository):
        self._repository = repository

    async def get_connection(self, connection_id: str) -> Optional[DatabricksConnectionConfig]:
        if connection_id == SETTINGS_CONNECTION_ID:
            if not settings.DATABRICKS_HOST:
                return None
            return DatabricksConnectionConfig.from_settings()
        return await self._repository.get_connection(connection_id)


def _read_payload(path: str) -> dict[str, Any]:
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise BusinessValidationError(f"Unable to parse {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise BusinessValidationError(f"{path} must contain a JSON object")
    return payload


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, default=str))


def _compile(args: argparse.Namespace) -> int:
    try:
        model = load_data_model(Path(args.model))
    except DataModelError as exc:
        raise BusinessValidationError(str(exc)) from exc

    compiled = SqlAssembler().compile(model)
    if compiled is None:
        print("Model has no tables; nothing to compile.", file=sys.stderr)
        return 1
    for warning in compiled.warnings:
        print(f"warning: relationship {warning.edge_id}: {warning.message}", file=sys.stderr)
    print(apply_row_limit(compiled.sql, args.row_limit))
    return 0


async def _with_service(args: argparse.Namespace) -> int:
    engine = create_async_engine_for_url(settings.DATABASE_URL)
    await initialize_database(engine)
    session_factory = create_async_session_factory(engine)
    try:
        async with async_session_scope(session_factory) as session:
            connections = ConnectionRepository(session)
            service = DataModelService(
                model_repository=DataModelRepository(session),
                connection_repository=_ConnectionSource(connections),  # type: ignore[arg-type]
            )
            return await _dispatch(args, service, connections)
    finally:
        await engine.dispose()


async def _dispatch(args: argparse.Namespace, service: DataModelService, connections: ConnectionRepository) -> int:
    if args.command == "execute":
        payload = _read_payload(args.model)
        request = DraftExecutionRequest.model_validate(
            {**payload, "connectionId": args.connection_id, "rowLimit": args.row_limit}
        )
        result = await service.execute_draft(request)
        for warning in result.warnings:
            print(f"warning: relationship {warning}", file=sys.stderr)
        _print_json(result.model_dump(by_alias=True, mode="json", exclude={"warnings"}))
        return 0

    if args.command == "validate":
        payload = _read_payload(args.model)
        request = ModelValidationRequest.model_validate({**payload, "connectionId": args.connection_id})
        result = await service.validate_model(request)
        _print_json(result.model_dump(by_alias=True, mode="json"))
        return 1 if result.issues else 0

    if args.command == "save":
        payload = _read_payload(args.model)
        if args.group_id:
            payload["groupId"] = args.group_id
        saved = await service.save_model(SaveModelRequest.model_validate(payload))
        print(saved.id)
        return 0

    if args.command == "run":
        result = await service.execute_model(args.model_id, row_limit=args.row_limit)
        _print_json(result.model_dump(by_alias=True, mode="json"))
        return 0

    if args.command == "refresh":
        result = await service.refresh_cardinalities(args.model_id)
        _print_json(result.model_dump(by_alias=True, mode="json"))
        return 1 if result.issues else 0

    if args.command == "list":
        summaries = await service.list_models(args.group_id)
        _print_json([summary.model_dump(by_alias=True, mode="json") for summary in summaries])
        return 0

    if args.command == "add-connection":
        config = DatabricksConnectionConfig(
            name=args.name,
            host=args.host or settings.DATABRICKS_HOST,
            http_path=args.http_path or settings.DATABRICKS_HTTP_PATH,
            token=settings.DATABRICKS_TOKEN,
        )
        stored = await connections.save_connection(config)
        await connections.commit()
        print(stored.id)
        return 0

    raise BusinessValidationError(f"Unknown command {args.command}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compile, preview and validate data models.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    compile_parser = subparsers.add_parser("compile", help="Print the SQL for a model file.")
    compile_parser.add_argument("model", help="Path to a data model JSON file.")
    compile_parser.add_argument("--row-limit", type=int, default=None)

    execute_parser = subparsers.add_parser("execute", help="Run a model file against the warehouse.")
    execute_parser.add_argument("model")
    execute_parser.add_argument("--row-limit", type=int, default=None)
    execute_parser.add_argument("--connection-id", default=SETTINGS_CONNECTION_ID)

    validate_parser = subparsers.add_parser("validate", help="Check join cardinalities of a model file.")
    validate_parser.add_argument("model")
    validate_parser.add_argument("--connection-id", default=SETTINGS_CONNECTION_ID)

    save_parser = subparsers.add_parser("save", help="Store a model file in the model database.")
    save_parser.add_argument("model")
    save_parser.add_argument("--group-id", default=None)

    run_parser = subparsers.add_parser("run", help="Execute a stored model.")
    run_parser.add_argument("model_id")
    run_parser.add_argument("--row-limit", type=int, default=None)

    refresh_parser = subparsers.add_parser(
        "refresh", help="Validate a stored model and save the detected cardinalities."
    )
    refresh_parser.add_argument("model_id")

    list_parser = subparsers.add_parser("list", help="List the stored models of a group.")
    list_parser.add_argument("--group-id", required=True)

    connection_parser = subparsers.add_parser(
        "add-connection", help="Store a warehouse connection (token read from DATABRICKS_TOKEN)."
    )
    connection_parser.add_argument("--name", required=True)
    connection_parser.add_argument("--host", default=None)
    connection_parser.add_argument("--http-path", default=None)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()

    try:
        if args.command == "compile":
            return _compile(args)
        return asyncio.run(_with_service(args))
    except QueryExecutionError as exc:
        logger.error("Command %s failed: %s", args.command, exc)
        _print_json(exc.to_payload())
        return 1
    except (BusinessValidationError, ResourceNotFound) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
