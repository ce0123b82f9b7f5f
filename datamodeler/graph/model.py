from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from datamodeler.constants import (
    DEFAULT_CARDINALITY,
    DEFAULT_JOIN_COLUMN,
    DEFAULT_JOIN_TYPE,
)


class _Base(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        frozen=True,
    )


class Aggregation(str, Enum):
    NONE = "NONE"
    SUM = "SUM"
    AVG = "AVG"
    MIN = "MIN"
    MAX = "MAX"
    COUNT = "COUNT"


class JoinType(str, Enum):
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    INNER = "INNER"
    FULL = "FULL"


class Cardinality(str, Enum):
    ONE_TO_ONE = "ONE_TO_ONE"
    ONE_TO_MANY = "ONE_TO_MANY"
    MANY_TO_ONE = "MANY_TO_ONE"
    MANY_TO_MANY = "MANY_TO_MANY"


class FilterOperator(str, Enum):
    EQ = "EQ"
    NEQ = "NEQ"
    GT = "GT"
    LT = "LT"
    GTE = "GTE"
    LTE = "LTE"
    LIKE = "LIKE"
    IN = "IN"
    IS_NULL = "IS_NULL"
    IS_NOT_NULL = "IS_NOT_NULL"


def parse_join_type(value: Any) -> JoinType:
    """Unknown or missing join types fall back to the default."""
    try:
        return JoinType(str(value).strip().upper())
    except ValueError:
        return JoinType(DEFAULT_JOIN_TYPE)


def parse_cardinality(value: Any) -> Cardinality:
    try:
        return Cardinality(str(value).strip().upper())
    except ValueError:
        return Cardinality(DEFAULT_CARDINALITY)


class Column(_Base):
    name: str
    type: Optional[str] = None
    comment: Optional[str] = None


class SelectedColumn(_Base):
    name: str
    aggregation: Aggregation = Aggregation.NONE
    alias: Optional[str] = None
    hidden: bool = False

    @field_validator("aggregation", mode="before")
    @classmethod
    def _normalize_aggregation(cls, value: Any) -> Any:
        if value is None or value == "":
            return Aggregation.NONE
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @property
    def is_aggregated(self) -> bool:
        return self.aggregation != Aggregation.NONE


class TableNode(_Base):
    id: str
    table_name: Optional[str] = None
    schema_path: Optional[str] = Field(default=None, alias="schema")
    alias: Optional[str] = None
    columns: List[Column] = Field(default_factory=list)
    selected_columns: List[SelectedColumn] = Field(default_factory=list)
    # Canvas position, carried through saves untouched.
    x: float = 0
    y: float = 0

    @field_validator("columns", "selected_columns", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return value or []

    @field_validator("x", "y", mode="before")
    @classmethod
    def _none_as_origin(cls, value: Any) -> Any:
        return value or 0


class JoinPair(_Base):
    from_column: str
    to_column: str


class SimpleJoinKey(_Base):
    kind: Literal["simple"] = "simple"
    from_column: str = DEFAULT_JOIN_COLUMN
    to_column: str = DEFAULT_JOIN_COLUMN
    # Set when a stored composite key could not be decoded and this key is the fallback.
    decode_error: Optional[str] = None

    @property
    def pairs(self) -> List[JoinPair]:
        return [JoinPair(from_column=self.from_column, to_column=self.to_column)]


class CompositeJoinKey(_Base):
    kind: Literal["composite"] = "composite"
    pairs: List[JoinPair] = Field(min_length=1)


JoinKey = Annotated[Union[SimpleJoinKey, CompositeJoinKey], Field(discriminator="kind")]


class JoinEdge(_Base):
    id: Optional[str] = None
    from_table_id: str
    to_table_id: str
    join_type: JoinType = JoinType(DEFAULT_JOIN_TYPE)
    cardinality: Cardinality = Cardinality(DEFAULT_CARDINALITY)
    key: JoinKey = Field(default_factory=SimpleJoinKey)

    @field_validator("join_type", mode="before")
    @classmethod
    def _normalize_join_type(cls, value: Any) -> JoinType:
        return parse_join_type(value)

    @field_validator("cardinality", mode="before")
    @classmethod
    def _normalize_cardinality(cls, value: Any) -> Cardinality:
        return parse_cardinality(value)

    @property
    def report_id(self) -> str:
        return self.id or f"e_{self.from_table_id}_{self.to_table_id}"


class FilterCondition(_Base):
    # Half-edited filters load with blank fields and are dropped at compile time.
    table_id: str = ""
    column: str = ""
    # Kept as text so that unknown operators survive loading and are dropped at compile time.
    operator: str = ""
    value: Any = None

    @field_validator("table_id", "column", mode="before")
    @classmethod
    def _none_as_blank(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("operator", mode="before")
    @classmethod
    def _normalize_operator(cls, value: Any) -> str:
        return str(value or "").strip().upper()


class FilterSet(_Base):
    conditions: List[FilterCondition] = Field(default_factory=list)
    is_manual: bool = False
    manual_sql: Optional[str] = None

    @property
    def manual_override(self) -> Optional[str]:
        if self.is_manual and self.manual_sql:
            return self.manual_sql
        return None


class DataModel(_Base):
    """The aggregate root handed to the compiler and the validator."""

    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    group_id: Optional[str] = None
    connection_id: Optional[str] = None
    tables: List[TableNode] = Field(default_factory=list)
    edges: List[JoinEdge] = Field(default_factory=list, alias="relationships")
    filters: FilterSet = Field(default_factory=FilterSet)
    is_group_by_all: bool = False

    def table(self, table_id: str) -> Optional[TableNode]:
        for table in self.tables:
            if table.id == table_id:
                return table
        return None
