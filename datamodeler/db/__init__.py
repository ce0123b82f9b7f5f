from .base import Base
from .data_model import (
    DataModelEntry,
    DataModelRelationshipEntry,
    DataModelTableEntry,
    WarehouseConnection,
)
from .session import (
    async_session_scope,
    create_async_engine_for_url,
    create_async_session_factory,
    initialize_database,
)

__all__ = [
    "Base",
    "DataModelEntry",
    "DataModelRelationshipEntry",
    "DataModelTableEntry",
    "WarehouseConnection",
    "async_session_scope",
    "create_async_engine_for_url",
    "create_async_session_factory",
    "initialize_database",
]
