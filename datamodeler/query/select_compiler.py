import logging
from typing import Any, List, Mapping, Optional, Sequence

from datamodeler.constants import GROUP_BY_ALL
from datamodeler.graph.model import (
    Aggregation,
    DataModel,
    FilterCondition,
    FilterOperator,
    SelectedColumn,
    TableNode,
)
from .identifiers import column_ref, escape, quote_literal

logger = logging.getLogger(__name__)

SELECT_ALL = "*"

_COMPARISON_SQL = {
    FilterOperator.EQ: "=",
    FilterOperator.NEQ: "<>",
    FilterOperator.GT: ">",
    FilterOperator.LT: "<",
    FilterOperator.GTE: ">=",
    FilterOperator.LTE: "<=",
    FilterOperator.LIKE: "LIKE",
}


def default_alias(selected: SelectedColumn) -> Optional[str]:
    if selected.alias:
        return selected.alias
    if selected.is_aggregated:
        return f"{selected.aggregation.value.lower()}_{selected.name}"
    return None


def render_select_item(alias: str, selected: SelectedColumn) -> str:
    expression = column_ref(alias, selected.name)
    if selected.aggregation != Aggregation.NONE:
        expression = f"{selected.aggregation.value}({expression})"
    output_alias = default_alias(selected)
    if output_alias:
        return f"{expression} AS {escape(output_alias)}"
    return expression


def build_select_list(tables: Sequence[TableNode], aliases: Mapping[str, str]) -> List[str]:
    """
    Non-hidden selections in table-then-selection order. Duplicates are kept.
    """
    items: List[str] = []
    for table in tables:
        alias = aliases.get(table.id)
        if alias is None:
            continue
        for selected in table.selected_columns:
            if selected.hidden:
                continue
            items.append(render_select_item(alias, selected))
    return items


def render_select_clause(tables: Sequence[TableNode], aliases: Mapping[str, str]) -> str:
    items = build_select_list(tables, aliases)
    if not items:
        return SELECT_ALL
    return ",\n       ".join(items)


def render_value(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, str):
        return quote_literal(value)
    return str(value)


def render_condition(condition: FilterCondition, aliases: Mapping[str, str]) -> Optional[str]:
    alias = aliases.get(condition.table_id)
    if alias is None:
        logger.debug("Dropping filter on unknown table %s", condition.table_id)
        return None
    if not condition.column:
        logger.debug("Dropping filter without a column on table %s", condition.table_id)
        return None
    try:
        operator = FilterOperator(condition.operator)
    except ValueError:
        logger.debug("Dropping filter with unsupported operator %s", condition.operator)
        return None

    column = column_ref(alias, condition.column)
    if operator == FilterOperator.IS_NULL:
        return f"{column} IS NULL"
    if operator == FilterOperator.IS_NOT_NULL:
        return f"{column} IS NOT NULL"
    if operator == FilterOperator.IN:
        # IN-list literals are passed through as given; callers pre-format them.
        values = condition.value if isinstance(condition.value, (list, tuple)) else [condition.value]
        values = [value for value in values if value is not None and value != ""]
        if not values:
            logger.debug("Dropping IN filter on %s with no values", column)
            return None
        return f"{column} IN ({', '.join(str(value) for value in values)})"
    if isinstance(condition.value, (list, tuple, dict)):
        logger.debug("Dropping %s filter on %s with a non-scalar value", operator.value, column)
        return None
    if operator == FilterOperator.LIKE:
        return f"{column} LIKE {quote_literal(str(condition.value or ''))}"
    return f"{column} {_COMPARISON_SQL[operator]} {render_value(condition.value)}"


def build_where_conditions(
    conditions: Sequence[FilterCondition],
    aliases: Mapping[str, str],
) -> List[str]:
    rendered = (render_condition(condition, aliases) for condition in conditions)
    return [clause for clause in rendered if clause is not None]


def render_where_clause(
    conditions: Sequence[FilterCondition],
    aliases: Mapping[str, str],
) -> Optional[str]:
    clauses = build_where_conditions(conditions, aliases)
    if not clauses:
        return None
    return f"WHERE {' AND '.join(clauses)}"


def render_group_by_clause(model: DataModel) -> Optional[str]:
    if model.is_group_by_all:
        return GROUP_BY_ALL
    return None
