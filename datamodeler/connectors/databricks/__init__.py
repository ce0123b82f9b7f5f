from .connector import DatabricksConnector, DatabricksSession

__all__ = ["DatabricksConnector", "DatabricksSession"]
