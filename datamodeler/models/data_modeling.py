from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from datamodeler.graph.model import JoinPair, TableNode
from datamodeler.query.join_resolver import JoinWarning

from .base import _Base


class ModelPayload(_Base):
    """Editor graph as posted by the canvas: raw tables, relationships and filters."""

    tables: List[Dict[str, Any]] = Field(default_factory=list)
    relationships: List[Dict[str, Any]] = Field(default_factory=list)
    filters: Any = None
    is_group_by_all: bool = False

    def graph(self) -> Dict[str, Any]:
        return {
            "tables": self.tables,
            "relationships": self.relationships,
            "filters": self.filters,
            "isGroupByAll": self.is_group_by_all,
        }


class DraftExecutionRequest(ModelPayload):
    connection_id: Optional[str] = None
    row_limit: Optional[int] = None


class SaveModelRequest(ModelPayload):
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    group_id: Optional[str] = None
    connection_id: Optional[str] = None


class TableReference(_Base):
    id: Optional[str] = None
    table_name: Optional[str] = None
    schema_path: Optional[str] = Field(default=None, alias="schema")

    def to_node(self) -> TableNode:
        return TableNode(
            id=self.id or self.table_name or "",
            table_name=self.table_name,
            schema_path=self.schema_path,
        )


class EdgeValidationRequest(_Base):
    connection_id: Optional[str] = None
    source_table: Optional[TableReference] = None
    target_table: Optional[TableReference] = None
    conditions: List[JoinPair] = Field(default_factory=list)


class ModelValidationRequest(_Base):
    connection_id: Optional[str] = None
    tables: List[Dict[str, Any]] = Field(default_factory=list)
    relationships: List[Dict[str, Any]] = Field(default_factory=list)


class ModelExecutionResult(_Base):
    sql: str
    columns: List[str] = Field(default_factory=list)
    rows: List[List[Any]] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @staticmethod
    def warning_messages(warnings: tuple[JoinWarning, ...]) -> List[str]:
        return [f"{warning.edge_id}: {warning.message}" for warning in warnings]


class DataModelSummary(_Base):
    id: str
    name: str
    description: Optional[str] = None
    group_id: str
    connection_id: Optional[str] = None
    updated_at: Optional[datetime] = None
