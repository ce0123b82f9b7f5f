import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Mapping, Optional, Sequence, Tuple

from datamodeler.constants import BASE_ALIAS_PREFIX
from datamodeler.graph.model import JoinEdge, SimpleJoinKey, TableNode
from .identifiers import column_ref, qualify

logger = logging.getLogger(__name__)

CROSS_JOIN = "CROSS"


@dataclass(frozen=True)
class JoinFragment:
    join_type: str
    table_id: str
    qualified_table: str
    alias: str
    on_clause: Optional[str] = None
    edge_id: Optional[str] = None

    def sql(self) -> str:
        clause = f"{self.join_type} JOIN {self.qualified_table} AS {self.alias}"
        if self.on_clause:
            return f"{clause} ON {self.on_clause}"
        return clause


@dataclass(frozen=True)
class JoinWarning:
    edge_id: str
    message: str


@dataclass(frozen=True)
class JoinPlan:
    base_table_id: Optional[str]
    base_alias: Optional[str]
    aliases: Mapping[str, str]
    fragments: Tuple[JoinFragment, ...] = ()
    orphan_table_ids: Tuple[str, ...] = ()
    cyclic_edge_ids: Tuple[str, ...] = ()
    unreachable_edge_ids: Tuple[str, ...] = ()
    dangling_edge_ids: Tuple[str, ...] = ()
    warnings: Tuple[JoinWarning, ...] = ()

    @property
    def joined_table_ids(self) -> Tuple[str, ...]:
        """Tables reached through an edge, in join order (base and orphans excluded)."""
        return tuple(
            fragment.table_id for fragment in self.fragments if fragment.join_type != CROSS_JOIN
        )

    def sql(self) -> str:
        return "\n".join(fragment.sql() for fragment in self.fragments)


@dataclass(frozen=True)
class _ResolverState:
    joined: FrozenSet[str]
    pending: Tuple[JoinEdge, ...]
    fragments: Tuple[JoinFragment, ...] = field(default_factory=tuple)


def build_alias_map(tables: Sequence[TableNode]) -> Dict[str, str]:
    aliases: Dict[str, str] = {}
    for index, table in enumerate(tables, start=1):
        aliases.setdefault(table.id, f"{BASE_ALIAS_PREFIX}{index}")
    return aliases


class JoinResolver:
    """
    Turns the edge set into a linear JOIN sequence rooted at the first table.

    An edge is emitted once exactly one of its endpoints has been joined; edges
    whose endpoints are both joined close a cycle and are never emitted. Tables
    the edges cannot reach are CROSS JOINed in input order. Never raises for a
    malformed graph.
    """

    def resolve(self, tables: Sequence[TableNode], edges: Sequence[JoinEdge]) -> JoinPlan:
        if not tables:
            return JoinPlan(base_table_id=None, base_alias=None, aliases={})

        aliases = build_alias_map(tables)
        tables_by_id: Dict[str, TableNode] = {}
        for table in tables:
            tables_by_id.setdefault(table.id, table)
        base = tables[0]

        dangling = tuple(
            edge for edge in edges
            if edge.from_table_id not in tables_by_id or edge.to_table_id not in tables_by_id
        )
        for edge in dangling:
            logger.warning(
                "Skipping relationship %s: endpoint %s -> %s is not in the model",
                edge.report_id,
                edge.from_table_id,
                edge.to_table_id,
            )

        state = _ResolverState(
            joined=frozenset({base.id}),
            pending=tuple(edge for edge in edges if edge not in dangling),
        )
        while True:
            advanced = self._advance(state, tables_by_id, aliases)
            if len(advanced.pending) == len(state.pending):
                break
            state = advanced

        cyclic = tuple(
            edge.report_id for edge in state.pending
            if edge.from_table_id in state.joined and edge.to_table_id in state.joined
        )
        unreachable = tuple(
            edge.report_id for edge in state.pending
            if edge.from_table_id not in state.joined and edge.to_table_id not in state.joined
        )

        orphan_ids: Tuple[str, ...] = ()
        fragments = state.fragments
        for table_id, table in tables_by_id.items():
            if table_id in state.joined:
                continue
            orphan_ids += (table_id,)
            fragments += (
                JoinFragment(
                    join_type=CROSS_JOIN,
                    table_id=table_id,
                    qualified_table=qualify(table),
                    alias=aliases[table_id],
                ),
            )

        return JoinPlan(
            base_table_id=base.id,
            base_alias=aliases[base.id],
            aliases=aliases,
            fragments=fragments,
            orphan_table_ids=orphan_ids,
            cyclic_edge_ids=cyclic,
            unreachable_edge_ids=unreachable,
            dangling_edge_ids=tuple(edge.report_id for edge in dangling),
            warnings=self._decode_warnings(edges, tables_by_id),
        )

    def _advance(
        self,
        state: _ResolverState,
        tables_by_id: Mapping[str, TableNode],
        aliases: Mapping[str, str],
    ) -> _ResolverState:
        """One pass over the pending edges; tables joined earlier in the pass count."""
        joined = state.joined
        fragments = state.fragments
        pending: Tuple[JoinEdge, ...] = ()

        for edge in state.pending:
            from_joined = edge.from_table_id in joined
            to_joined = edge.to_table_id in joined
            if from_joined == to_joined:
                pending += (edge,)
                continue

            target_id = edge.to_table_id if from_joined else edge.from_table_id
            fragments += (
                JoinFragment(
                    join_type=edge.join_type.value,
                    table_id=target_id,
                    qualified_table=qualify(tables_by_id[target_id]),
                    alias=aliases[target_id],
                    on_clause=build_on_clause(edge, aliases),
                    edge_id=edge.id,
                ),
            )
            joined = joined | {target_id}

        return _ResolverState(joined=joined, pending=pending, fragments=fragments)

    @staticmethod
    def _decode_warnings(
        edges: Sequence[JoinEdge],
        tables_by_id: Mapping[str, TableNode],
    ) -> Tuple[JoinWarning, ...]:
        warnings: Tuple[JoinWarning, ...] = ()
        for edge in edges:
            if edge.from_table_id not in tables_by_id or edge.to_table_id not in tables_by_id:
                continue
            if isinstance(edge.key, SimpleJoinKey) and edge.key.decode_error:
                warnings += (
                    JoinWarning(
                        edge_id=edge.report_id,
                        message=f"{edge.key.decode_error} Joined on id = id instead.",
                    ),
                )
        return warnings


def build_on_clause(edge: JoinEdge, aliases: Mapping[str, str]) -> str:
    from_alias = aliases[edge.from_table_id]
    to_alias = aliases[edge.to_table_id]
    return " AND ".join(
        f"{column_ref(from_alias, pair.from_column)} = {column_ref(to_alias, pair.to_column)}"
        for pair in edge.key.pairs
    )
