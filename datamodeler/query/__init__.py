from .assembler import CompiledQuery, SqlAssembler, apply_row_limit
from .identifiers import escape, qualify
from .join_resolver import JoinFragment, JoinPlan, JoinResolver, JoinWarning
from .sql_sync import SqlSyncResult, sync_model_from_sql

__all__ = [
    "CompiledQuery",
    "SqlAssembler",
    "apply_row_limit",
    "escape",
    "qualify",
    "JoinFragment",
    "JoinPlan",
    "JoinResolver",
    "JoinWarning",
    "SqlSyncResult",
    "sync_model_from_sql",
]
