from .model import (
    Aggregation,
    Cardinality,
    Column,
    CompositeJoinKey,
    DataModel,
    FilterCondition,
    FilterOperator,
    FilterSet,
    JoinEdge,
    JoinKey,
    JoinPair,
    JoinType,
    SelectedColumn,
    SimpleJoinKey,
    TableNode,
)
from .codec import decode_join_key, encode_join_key, pairs_to_join_key
from .loader import DataModelError, DataModelRecord, dump_data_model, load_data_model

__all__ = [
    "Aggregation",
    "Cardinality",
    "Column",
    "CompositeJoinKey",
    "DataModel",
    "FilterCondition",
    "FilterOperator",
    "FilterSet",
    "JoinEdge",
    "JoinKey",
    "JoinPair",
    "JoinType",
    "SelectedColumn",
    "SimpleJoinKey",
    "TableNode",
    "decode_join_key",
    "encode_join_key",
    "pairs_to_join_key",
    "DataModelError",
    "DataModelRecord",
    "dump_data_model",
    "load_data_model",
]
