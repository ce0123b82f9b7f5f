"""
Join cardinality inference from live row and distinct-key counts.

For an edge the validator counts the rows and the distinct join-key tuples on
each side with a single two-branch statement. A side is "many" when it has
more rows than distinct keys; the pair of flags gives the cardinality.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from datamodeler.connectors.base import QueryResult, WarehouseConnector
from datamodeler.errors.connector_errors import ConnectorError
from datamodeler.graph.model import (
    Cardinality,
    DataModel,
    JoinEdge,
    JoinPair,
    SimpleJoinKey,
    TableNode,
)
from datamodeler.query.identifiers import escape, qualify, quote_literal

SOURCE_SIDE = "source"
TARGET_SIDE = "target"
MANY_TO_MANY_ISSUE = "MANY_TO_MANY"


class _Result(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SideStats(_Result):
    is_many: bool
    total_rows: int
    distinct_keys: int

    @classmethod
    def from_counts(cls, total_rows: int, distinct_keys: int) -> "SideStats":
        return cls(
            is_many=total_rows > distinct_keys,
            total_rows=total_rows,
            distinct_keys=distinct_keys,
        )


class EdgeValidationResult(_Result):
    source: SideStats
    target: SideStats
    detected_cardinality: Cardinality


class StatsSummary(_Result):
    total: int
    distinct: int


class EdgeReport(_Result):
    id: str
    source_label: Optional[str] = None
    target_label: Optional[str] = None
    source_stats: StatsSummary
    target_stats: StatsSummary
    cardinality: Cardinality
    warning: Optional[str] = None


class ValidationIssue(EdgeReport):
    type: str = MANY_TO_MANY_ISSUE


class ModelValidationResult(_Result):
    issues: List[ValidationIssue] = []
    reports: List[EdgeReport] = []
    validated: bool = True


def build_stats_sql(source: TableNode, target: TableNode, pairs: Sequence[JoinPair]) -> str:
    if not pairs:
        raise ValueError("At least one join column pair is required.")
    source_keys = ", ".join(escape(pair.from_column) for pair in pairs)
    target_keys = ", ".join(escape(pair.to_column) for pair in pairs)
    return "\n".join(
        [
            _stats_branch(SOURCE_SIDE, source_keys, qualify(source)),
            "UNION ALL",
            _stats_branch(TARGET_SIDE, target_keys, qualify(target)),
        ]
    )


def _stats_branch(side: str, keys: str, qualified_table: str) -> str:
    return (
        f"SELECT {quote_literal(side)} AS side, count(*) AS total_rows, "
        f"count(DISTINCT {keys}) AS distinct_keys FROM {qualified_table}"
    )


def classify_cardinality(source: SideStats, target: SideStats) -> Cardinality:
    if source.is_many and target.is_many:
        return Cardinality.MANY_TO_MANY
    if source.is_many:
        return Cardinality.MANY_TO_ONE
    if target.is_many:
        return Cardinality.ONE_TO_MANY
    return Cardinality.ONE_TO_ONE


def read_side_stats(result: QueryResult) -> Tuple[Optional[SideStats], Optional[SideStats]]:
    by_side: Dict[str, SideStats] = {}
    for record in result.records():
        side = str(record.get("side") or "").lower()
        if side in by_side:
            continue
        by_side[side] = SideStats.from_counts(
            int(record.get("total_rows") or 0),
            int(record.get("distinct_keys") or 0),
        )
    return by_side.get(SOURCE_SIDE), by_side.get(TARGET_SIDE)


class CardinalityValidator:
    """
    Runs the statistics queries. Single-edge checks open their own session;
    a model batch runs every edge sequentially on one shared session and is
    aborted by the first warehouse failure.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    def validate_edge(
        self,
        connector: WarehouseConnector,
        source: TableNode,
        target: TableNode,
        pairs: Sequence[JoinPair],
    ) -> EdgeValidationResult:
        sql = build_stats_sql(source, target, pairs)
        self._logger.info("Validating cardinality %s -> %s", source.table_name, target.table_name)
        with connector.session() as session:
            result = session.execute(sql)

        source_stats, target_stats = read_side_stats(result)
        if source_stats is None or target_stats is None:
            raise ConnectorError("Statistics query did not return counts for both tables.")
        return EdgeValidationResult(
            source=source_stats,
            target=target_stats,
            detected_cardinality=classify_cardinality(source_stats, target_stats),
        )

    def validate_model(
        self,
        connector: WarehouseConnector,
        tables: Sequence[TableNode],
        edges: Sequence[JoinEdge],
    ) -> ModelValidationResult:
        if not tables or not edges:
            return ModelValidationResult()

        tables_by_id: Dict[str, TableNode] = {}
        for table in tables:
            tables_by_id.setdefault(table.id, table)

        reports: List[EdgeReport] = []
        issues: List[ValidationIssue] = []
        with connector.session() as session:
            for edge in edges:
                source = tables_by_id.get(edge.from_table_id)
                target = tables_by_id.get(edge.to_table_id)
                if source is None or target is None:
                    self._logger.debug("Skipping relationship %s: endpoint not supplied", edge.report_id)
                    continue

                result = session.execute(build_stats_sql(source, target, edge.key.pairs))
                source_stats, target_stats = read_side_stats(result)
                if source_stats is None or target_stats is None:
                    self._logger.warning(
                        "Skipping relationship %s: statistics missing for one side", edge.report_id
                    )
                    continue

                report = EdgeReport(
                    id=edge.report_id,
                    source_label=source.table_name,
                    target_label=target.table_name,
                    source_stats=StatsSummary(
                        total=source_stats.total_rows, distinct=source_stats.distinct_keys
                    ),
                    target_stats=StatsSummary(
                        total=target_stats.total_rows, distinct=target_stats.distinct_keys
                    ),
                    cardinality=classify_cardinality(source_stats, target_stats),
                    warning=_decode_warning(edge),
                )
                reports.append(report)
                if report.cardinality == Cardinality.MANY_TO_MANY:
                    issues.append(ValidationIssue(**report.model_dump()))

        self._logger.info(
            "Validated %s relationships (%s many-to-many)", len(reports), len(issues)
        )
        return ModelValidationResult(issues=issues, reports=reports, validated=True)


def _decode_warning(edge: JoinEdge) -> Optional[str]:
    if isinstance(edge.key, SimpleJoinKey) and edge.key.decode_error:
        return f"{edge.key.decode_error} Validated on id = id instead."
    return None


def with_detected_cardinalities(model: DataModel, result: ModelValidationResult) -> DataModel:
    """Copy of the model with each validated edge's cardinality replaced by the detected one."""
    detected = {report.id: report.cardinality for report in result.reports}
    edges = [
        edge.model_copy(update={"cardinality": detected[edge.report_id]})
        if edge.report_id in detected
        else edge
        for edge in model.edges
    ]
    return model.model_copy(update={"edges": edges})
