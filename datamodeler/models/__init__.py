from .data_modeling import (
    DataModelSummary,
    DraftExecutionRequest,
    EdgeValidationRequest,
    ModelExecutionResult,
    ModelPayload,
    ModelValidationRequest,
    SaveModelRequest,
    TableReference,
)

__all__ = [
    "DataModelSummary",
    "DraftExecutionRequest",
    "EdgeValidationRequest",
    "ModelExecutionResult",
    "ModelPayload",
    "ModelValidationRequest",
    "SaveModelRequest",
    "TableReference",
]
