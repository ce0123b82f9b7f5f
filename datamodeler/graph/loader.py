from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from datamodeler.constants import DEFAULT_CARDINALITY, DEFAULT_JOIN_TYPE
from .codec import decode_join_key, encode_join_key, pairs_to_join_key
from .model import DataModel, FilterSet, JoinEdge, SimpleJoinKey, TableNode

logger = logging.getLogger(__name__)


class DataModelError(ValueError):
    """Raised when a data model payload cannot be parsed."""


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class TableRecord(_Record):
    id: str
    table_name: Optional[str] = None
    schema_path: Optional[str] = Field(default=None, alias="schema")
    alias: Optional[str] = None
    columns: Optional[List[dict[str, Any]]] = None
    selected_columns: Optional[List[dict[str, Any]]] = None
    x: Optional[float] = 0
    y: Optional[float] = 0


class RelationshipRecord(_Record):
    id: Optional[str] = None
    from_table_id: str
    to_table_id: str
    from_column: Optional[str] = None
    to_column: Optional[str] = None
    join_type: Optional[str] = DEFAULT_JOIN_TYPE
    cardinality: Optional[str] = DEFAULT_CARDINALITY


class DataModelRecord(_Record):
    """The stored shape of a model, as the persistence collaborator keeps it."""

    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    group_id: Optional[str] = None
    connection_id: Optional[str] = None
    tables: List[TableRecord] = Field(default_factory=list)
    relationships: List[RelationshipRecord] = Field(default_factory=list)
    filters: Any = None
    is_group_by_all: bool = False


def load_data_model(source: DataModelRecord | Mapping[str, Any] | str | Path) -> DataModel:
    if isinstance(source, Path):
        return load_data_model(source.read_text(encoding="utf-8"))
    if isinstance(source, str):
        try:
            source = json.loads(source)
        except json.JSONDecodeError as exc:
            raise DataModelError(f"Unable to parse data model payload: {exc}") from exc
    if isinstance(source, DataModelRecord):
        payload: dict[str, Any] = source.model_dump(by_alias=True)
    elif isinstance(source, Mapping):
        payload = dict(source)
    else:
        raise DataModelError("Data model payload must be a mapping.")

    try:
        return DataModel(
            id=_optional_str(payload.get("id")),
            name=payload.get("name"),
            description=payload.get("description"),
            group_id=_optional_str(payload.get("groupId", payload.get("group_id"))),
            connection_id=_optional_str(payload.get("connectionId", payload.get("connection_id"))),
            tables=[TableNode.model_validate(table) for table in payload.get("tables") or []],
            edges=[_parse_edge(rel) for rel in payload.get("relationships") or []],
            filters=parse_filters(payload.get("filters")),
            is_group_by_all=bool(payload.get("isGroupByAll", payload.get("is_group_by_all", False))),
        )
    except ValidationError as exc:
        raise DataModelError(f"Data model failed validation: {exc}") from exc


def parse_filters(raw: Any) -> FilterSet:
    """Filters are stored either as a bare condition list or a manual-override object."""
    if raw is None:
        return FilterSet()
    if isinstance(raw, FilterSet):
        return raw
    if isinstance(raw, list):
        return FilterSet.model_validate({"conditions": raw})
    if isinstance(raw, Mapping):
        return FilterSet.model_validate(
            {
                "conditions": raw.get("conditions") or [],
                "isManual": bool(raw.get("isManual", raw.get("is_manual", False))),
                "manualSql": raw.get("manualSql", raw.get("manual_sql")),
            }
        )
    raise DataModelError("Filters must be a list of conditions or an object.")


def _parse_edge(raw: Any) -> JoinEdge:
    if isinstance(raw, JoinEdge):
        return raw
    if not isinstance(raw, Mapping):
        raise DataModelError("Relationships must be mappings.")

    conditions = raw.get("conditions")
    if conditions:
        try:
            key = pairs_to_join_key(conditions)
        except (ValueError, ValidationError) as exc:
            logger.warning("Relationship %s has incomplete join conditions: %s", raw.get("id"), exc)
            key = SimpleJoinKey(decode_error=f"Join conditions are incomplete: {exc}")
    else:
        key = decode_join_key(
            raw.get("fromColumn", raw.get("from_column")),
            raw.get("toColumn", raw.get("to_column")),
        )

    return JoinEdge(
        id=_optional_str(raw.get("id")),
        from_table_id=_optional_str(raw.get("fromTableId", raw.get("from_table_id"))) or "",
        to_table_id=_optional_str(raw.get("toTableId", raw.get("to_table_id"))) or "",
        join_type=raw.get("joinType", raw.get("join_type")),
        cardinality=raw.get("cardinality"),
        key=key,
    )


def dump_data_model(model: DataModel) -> DataModelRecord:
    relationships = []
    for edge in model.edges:
        from_column, to_column = encode_join_key(edge.key)
        relationships.append(
            RelationshipRecord(
                id=edge.id,
                from_table_id=edge.from_table_id,
                to_table_id=edge.to_table_id,
                from_column=from_column,
                to_column=to_column,
                join_type=edge.join_type.value,
                cardinality=edge.cardinality.value,
            )
        )

    filters: Any
    if model.filters.is_manual:
        filters = model.filters.model_dump(by_alias=True, mode="json")
    else:
        filters = [condition.model_dump(by_alias=True, mode="json") for condition in model.filters.conditions]

    return DataModelRecord(
        id=model.id,
        name=model.name,
        description=model.description,
        group_id=model.group_id,
        connection_id=model.connection_id,
        tables=[
            TableRecord(
                id=table.id,
                table_name=table.table_name,
                schema_path=table.schema_path,
                alias=table.alias,
                x=table.x,
                y=table.y,
                columns=[column.model_dump(by_alias=True, mode="json") for column in table.columns],
                selected_columns=[
                    selected.model_dump(by_alias=True, mode="json") for selected in table.selected_columns
                ],
            )
            for table in model.tables
        ],
        relationships=relationships,
        filters=filters,
        is_group_by_all=model.is_group_by_all,
    )


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)
