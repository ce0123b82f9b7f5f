from .cardinality import (
    CardinalityValidator,
    EdgeReport,
    EdgeValidationResult,
    ModelValidationResult,
    SideStats,
    StatsSummary,
    ValidationIssue,
    build_stats_sql,
    classify_cardinality,
    with_detected_cardinalities,
)

__all__ = [
    "CardinalityValidator",
    "EdgeReport",
    "EdgeValidationResult",
    "ModelValidationResult",
    "SideStats",
    "StatsSummary",
    "ValidationIssue",
    "build_stats_sql",
    "classify_cardinality",
    "with_detected_cardinalities",
]
