from .base import QueryResult, WarehouseConnector, WarehouseSession, ensure_select_statement
from .config import DatabricksConnectionConfig
from .databricks import DatabricksConnector, DatabricksSession

__all__ = [
    "QueryResult",
    "WarehouseConnector",
    "WarehouseSession",
    "ensure_select_statement",
    "DatabricksConnectionConfig",
    "DatabricksConnector",
    "DatabricksSession",
]
