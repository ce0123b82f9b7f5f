class ConnectorError(RuntimeError):
    """Base error for warehouse connector issues."""


class AuthError(ConnectorError):
    """Raised when the warehouse rejects the supplied credentials."""


class QueryValidationError(ConnectorError):
    """Raised when an invalid or unsafe query is detected."""
