from .data_model_service import DataModelService

__all__ = ["DataModelService"]
