from .base import AsyncBaseRepository
from .connection_repository import ConnectionRepository
from .data_model_repository import DataModelRepository

__all__ = [
    "AsyncBaseRepository",
    "ConnectionRepository",
    "DataModelRepository",
]
