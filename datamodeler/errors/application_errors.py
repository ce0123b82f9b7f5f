from typing import Any, Dict, Optional


class ResourceNotFound(Exception):
    pass

class BusinessValidationError(Exception):
    def __init__(self, message: str, errors: Optional[Dict] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or {}

    def __str__(self):
        if not self.errors:
            return self.message
        return f"{self.message} - {self.errors}"

class QueryExecutionError(BusinessValidationError):
    """A warehouse failure, carrying the SQL that was attempted."""

    def __init__(self, message: str, sql: Optional[str] = None, errors: Optional[Dict] = None):
        super().__init__(message, errors)
        self.sql = sql

    def to_payload(self) -> Dict[str, Any]:
        return {"message": self.message, "sql": self.sql}
