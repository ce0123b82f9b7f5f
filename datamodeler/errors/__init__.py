from .application_errors import (
    BusinessValidationError,
    QueryExecutionError,
    ResourceNotFound,
)
from .connector_errors import (
    AuthError,
    ConnectorError,
    QueryValidationError,
)

__all__ = [
    "BusinessValidationError",
    "QueryExecutionError",
    "ResourceNotFound",
    "AuthError",
    "ConnectorError",
    "QueryValidationError",
]
