import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Tuple

from datamodeler.graph.model import DataModel
from .identifiers import qualify
from .join_resolver import JoinPlan, JoinResolver, JoinWarning
from .select_compiler import render_group_by_clause, render_select_clause, render_where_clause

logger = logging.getLogger(__name__)

TRAILING_LIMIT_RE = re.compile(r"\blimit\s+\d+\s*$", re.IGNORECASE)


@dataclass(frozen=True)
class CompiledQuery:
    sql: str
    is_manual: bool = False
    join_plan: Optional[JoinPlan] = None
    warnings: Tuple[JoinWarning, ...] = field(default_factory=tuple)


def apply_row_limit(sql: str, row_limit: Optional[int]) -> str:
    """
    Append `LIMIT n` unless the statement already ends in its own LIMIT clause.
    """
    if row_limit is None or row_limit <= 0:
        return sql
    base = sql.strip()
    if base.endswith(";"):
        base = base[:-1].rstrip()
    if TRAILING_LIMIT_RE.search(base):
        return sql
    return f"{base} LIMIT {int(row_limit)}"


class SqlAssembler:
    """Compiles a data model graph into warehouse SQL. Pure and synchronous."""

    def __init__(self, resolver: Optional[JoinResolver] = None) -> None:
        self._resolver = resolver or JoinResolver()

    def compile(self, model: DataModel) -> Optional[CompiledQuery]:
        manual_sql = model.filters.manual_override
        if manual_sql is not None:
            return CompiledQuery(sql=manual_sql, is_manual=True)

        if not model.tables:
            return None

        plan = self._resolver.resolve(model.tables, model.edges)
        base = model.tables[0]

        parts = [
            f"SELECT {render_select_clause(model.tables, plan.aliases)}",
            f"FROM {qualify(base)} AS {plan.base_alias}",
        ]
        parts.extend(fragment.sql() for fragment in plan.fragments)

        where_clause = render_where_clause(model.filters.conditions, plan.aliases)
        if where_clause:
            parts.append(where_clause)

        group_by_clause = render_group_by_clause(model)
        if group_by_clause:
            parts.append(group_by_clause)

        for warning in plan.warnings:
            logger.warning("Relationship %s: %s", warning.edge_id, warning.message)

        return CompiledQuery(sql="\n".join(parts), join_plan=plan, warnings=plan.warnings)

    def compile_sql(self, model: DataModel, row_limit: Optional[int] = None) -> Optional[str]:
        compiled = self.compile(model)
        if compiled is None:
            return None
        return apply_row_limit(compiled.sql, row_limit)
