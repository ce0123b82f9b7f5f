"""
Advisory synchronisation from a hand-edited SELECT back onto the graph.

This is not an inverse of the compiler: only plain or aggregated column
projections, AND-ed column/literal predicates and the `GROUP BY ALL` marker
are understood. Anything else (subqueries, window functions, OR predicates,
multi-column expressions) leaves that part of the graph as it was and is
reported in `SqlSyncResult.unresolved`.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from datamodeler.graph.model import (
    Aggregation,
    DataModel,
    FilterCondition,
    FilterOperator,
    SelectedColumn,
    TableNode,
)
from .join_resolver import build_alias_map

logger = logging.getLogger(__name__)

DIALECT = "databricks"

_AGGREGATES: Dict[type, Aggregation] = {
    exp.Sum: Aggregation.SUM,
    exp.Avg: Aggregation.AVG,
    exp.Min: Aggregation.MIN,
    exp.Max: Aggregation.MAX,
    exp.Count: Aggregation.COUNT,
}

_COMPARISONS: Dict[type, FilterOperator] = {
    exp.EQ: FilterOperator.EQ,
    exp.NEQ: FilterOperator.NEQ,
    exp.GT: FilterOperator.GT,
    exp.LT: FilterOperator.LT,
    exp.GTE: FilterOperator.GTE,
    exp.LTE: FilterOperator.LTE,
    exp.Like: FilterOperator.LIKE,
}


class _Unresolved(Exception):
    pass


@dataclass(frozen=True)
class SqlSyncResult:
    model: DataModel
    parsed: bool = True
    selections_synced: bool = False
    filters_synced: bool = False
    is_group_by_all: bool = False
    unresolved: Tuple[str, ...] = field(default_factory=tuple)


def sync_model_from_sql(model: DataModel, sql: str) -> SqlSyncResult:
    try:
        tree = sqlglot.parse_one(sql, read=DIALECT)
    except SqlglotError as exc:
        logger.info("Manual SQL could not be parsed; graph left unchanged: %s", exc)
        return SqlSyncResult(model=model, parsed=False, unresolved=(f"parse error: {exc}",))

    if not isinstance(tree, exp.Select):
        return SqlSyncResult(
            model=model,
            parsed=False,
            unresolved=(f"unsupported statement: {tree.key}",),
        )

    unresolved: List[str] = []
    table_aliases = _map_table_aliases(model, tree, unresolved)

    selections, selection_gaps = _parse_projections(tree, table_aliases, unresolved)
    tables = _apply_selections(model.tables, selections, has_gaps=selection_gaps)

    conditions = _parse_where(tree, table_aliases, unresolved)
    filters = model.filters
    if conditions is not None:
        filters = filters.model_copy(update={"conditions": conditions})

    is_group_by_all = _has_group_by_all(tree)
    updated = model.model_copy(
        update={"tables": tables, "filters": filters, "is_group_by_all": is_group_by_all}
    )
    return SqlSyncResult(
        model=updated,
        selections_synced=not selection_gaps,
        filters_synced=conditions is not None,
        is_group_by_all=is_group_by_all,
        unresolved=tuple(unresolved),
    )


def _owned_by(node: exp.Expression, select: exp.Select) -> bool:
    return node.find_ancestor(exp.Select) is select


def _map_table_aliases(model: DataModel, select: exp.Select, unresolved: List[str]) -> Dict[str, str]:
    """SQL alias (or bare table name) -> graph table id."""
    compiled_aliases = build_alias_map(model.tables)
    by_compiled_alias = {alias: table_id for table_id, alias in compiled_aliases.items()}

    mapping: Dict[str, str] = {}
    claimed: set = set()
    for table_expr in select.find_all(exp.Table):
        if not _owned_by(table_expr, select):
            unresolved.append(f"table inside a subquery: {table_expr.sql(dialect=DIALECT)}")
            continue
        table_id = _match_table(model.tables, table_expr, by_compiled_alias, claimed)
        if table_id is None:
            unresolved.append(f"table not in model: {table_expr.sql(dialect=DIALECT)}")
            continue
        claimed.add(table_id)
        mapping[table_expr.alias_or_name] = table_id
    return mapping


def _match_table(
    tables: List[TableNode],
    table_expr: exp.Table,
    by_compiled_alias: Dict[str, str],
    claimed: set,
) -> Optional[str]:
    name = table_expr.name
    schema = ".".join(part for part in (table_expr.catalog, table_expr.db) if part)

    def _same_table(table: TableNode) -> bool:
        if table.table_name != name:
            return False
        return not schema or (table.schema_path or "") == schema

    candidate_id = by_compiled_alias.get(table_expr.alias)
    if candidate_id and candidate_id not in claimed:
        candidate = next(table for table in tables if table.id == candidate_id)
        if _same_table(candidate):
            return candidate_id

    for table in tables:
        if table.id not in claimed and _same_table(table):
            return table.id
    return None


def _resolve_column(column: exp.Column, table_aliases: Dict[str, str]) -> Tuple[str, str]:
    qualifier = column.table
    if qualifier:
        table_id = table_aliases.get(qualifier)
        if table_id is None:
            raise _Unresolved(f"unknown table alias '{qualifier}'")
        return table_id, column.name
    if len(set(table_aliases.values())) == 1:
        return next(iter(table_aliases.values())), column.name
    raise _Unresolved(f"unqualified column '{column.name}'")


def _parse_projections(
    select: exp.Select,
    table_aliases: Dict[str, str],
    unresolved: List[str],
) -> Tuple[Dict[str, List[SelectedColumn]], bool]:
    selections: Dict[str, List[SelectedColumn]] = {}
    gaps = False
    for projection in select.expressions:
        if isinstance(projection, exp.Star):
            continue
        try:
            table_id, selected = _parse_projection(projection, table_aliases)
        except _Unresolved as exc:
            unresolved.append(f"select item {projection.sql(dialect=DIALECT)}: {exc}")
            gaps = True
            continue
        selections.setdefault(table_id, []).append(selected)
    return selections, gaps


def _parse_projection(
    projection: exp.Expression,
    table_aliases: Dict[str, str],
) -> Tuple[str, SelectedColumn]:
    alias: Optional[str] = None
    node = projection
    if isinstance(node, exp.Alias):
        alias = node.alias
        node = node.this

    aggregation = Aggregation.NONE
    for agg_type, agg in _AGGREGATES.items():
        if type(node) is agg_type:
            aggregation = agg
            node = node.this
            break

    if not isinstance(node, exp.Column) or isinstance(node.this, exp.Star):
        raise _Unresolved("not a plain column reference")

    table_id, column_name = _resolve_column(node, table_aliases)
    if aggregation != Aggregation.NONE and alias == f"{aggregation.value.lower()}_{column_name}":
        # The compiler's default alias; keep the graph annotation minimal.
        alias = None
    return table_id, SelectedColumn(name=column_name, aggregation=aggregation, alias=alias)


def _apply_selections(
    tables: List[TableNode],
    selections: Dict[str, List[SelectedColumn]],
    *,
    has_gaps: bool,
) -> List[TableNode]:
    updated: List[TableNode] = []
    for table in tables:
        hidden = [selected for selected in table.selected_columns if selected.hidden]
        if table.id in selections:
            visible = selections[table.id]
        elif has_gaps:
            updated.append(table)
            continue
        else:
            visible = []
        updated.append(table.model_copy(update={"selected_columns": visible + hidden}))
    return updated


def _flatten_and(node: exp.Expression) -> List[exp.Expression]:
    if isinstance(node, exp.And):
        return _flatten_and(node.left) + _flatten_and(node.right)
    if isinstance(node, exp.Paren):
        return _flatten_and(node.this)
    return [node]


def _parse_where(
    select: exp.Select,
    table_aliases: Dict[str, str],
    unresolved: List[str],
) -> Optional[List[FilterCondition]]:
    """None means the WHERE clause could not be fully understood."""
    where = select.args.get("where")
    if where is None:
        return []

    conditions: List[FilterCondition] = []
    for predicate in _flatten_and(where.this):
        try:
            conditions.append(_parse_predicate(predicate, table_aliases))
        except _Unresolved as exc:
            unresolved.append(f"predicate {predicate.sql(dialect=DIALECT)}: {exc}")
            return None
    return conditions


def _parse_predicate(predicate: exp.Expression, table_aliases: Dict[str, str]) -> FilterCondition:
    if isinstance(predicate, exp.Not) and isinstance(predicate.this, exp.Is):
        return _null_condition(predicate.this, FilterOperator.IS_NOT_NULL, table_aliases)
    if isinstance(predicate, exp.Is):
        return _null_condition(predicate, FilterOperator.IS_NULL, table_aliases)

    if isinstance(predicate, exp.In):
        column = predicate.this
        if not isinstance(column, exp.Column) or not predicate.expressions:
            raise _Unresolved("IN must compare a column with a value list")
        table_id, column_name = _resolve_column(column, table_aliases)
        values = [value.sql(dialect=DIALECT) for value in predicate.expressions]
        return FilterCondition(
            table_id=table_id, column=column_name, operator=FilterOperator.IN.value, value=values
        )

    operator = _COMPARISONS.get(type(predicate))
    if operator is None:
        raise _Unresolved(f"unsupported predicate {predicate.key}")
    column, literal = predicate.this, predicate.expression
    if not isinstance(column, exp.Column):
        raise _Unresolved("left side must be a column")
    table_id, column_name = _resolve_column(column, table_aliases)
    return FilterCondition(
        table_id=table_id,
        column=column_name,
        operator=operator.value,
        value=_literal_value(literal),
    )


def _null_condition(
    predicate: exp.Is,
    operator: FilterOperator,
    table_aliases: Dict[str, str],
) -> FilterCondition:
    column = predicate.this
    if not isinstance(column, exp.Column) or not isinstance(predicate.expression, exp.Null):
        raise _Unresolved("IS must compare a column with NULL")
    table_id, column_name = _resolve_column(column, table_aliases)
    return FilterCondition(table_id=table_id, column=column_name, operator=operator.value)


def _literal_value(node: exp.Expression) -> Any:
    if isinstance(node, exp.Null):
        return None
    if isinstance(node, exp.Boolean):
        return bool(node.this)
    if isinstance(node, exp.Neg) and isinstance(node.this, exp.Literal) and not node.this.is_string:
        return -_number(node.this.this)
    if isinstance(node, exp.Literal):
        if node.is_string:
            return node.this
        return _number(node.this)
    raise _Unresolved("right side must be a literal")


def _number(text: str) -> Any:
    try:
        return int(text)
    except ValueError:
        return float(text)


def _has_group_by_all(select: exp.Select) -> bool:
    group = select.args.get("group")
    if group is None:
        return False
    if group.args.get("all"):
        return True
    return any(
        isinstance(item, (exp.Column, exp.Var)) and item.name.upper() == "ALL"
        for item in group.expressions
    )
