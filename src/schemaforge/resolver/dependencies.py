"""
Table dependency ordering

A table depends on every table its outgoing relationships point at.
Creation order lists each table after its dependencies; edges that close
a cycle are ignored for ordering and reported separately.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Sequence, Set, Tuple

from ..schema.models import Relationship, Schema, Table
from ..utils import get_logger

logger = get_logger(__name__)


@dataclass
class DependencyOrder:
    """Result of dependency resolution"""
    order: List[str] = field(default_factory=list)
    cycles: List[List[str]] = field(default_factory=list)

    @property
    def has_cycles(self) -> bool:
        return bool(self.cycles)

    def position(self, table_name: str) -> int:
        try:
            return self.order.index(table_name)
        except ValueError:
            return len(self.order)

    def sort_tables(self, tables: Sequence[Table]) -> List[Table]:
        return sorted(tables, key=lambda t: self.position(t.name))

    def sort_relationships(self, relationships: Sequence[Relationship]) -> List[Relationship]:
        """Order relationships by the creation order of their source tables"""
        return sorted(relationships, key=lambda r: self.position(r.source_table))

    def reverse(self) -> List[str]:
        """Order in which tables can be dropped"""
        return list(reversed(self.order))

    def to_dict(self) -> Dict[str, List]:
        return {"order": list(self.order), "cycles": [list(c) for c in self.cycles]}


class DependencyResolver:
    """Depth-first dependency resolver with an explicit in-progress set"""

    def __init__(self, schema: Schema):
        self.schema = schema
        self.table_names: List[str] = []
        for table in schema.tables:
            if table.name not in self.table_names:
                self.table_names.append(table.name)
        self.dependencies = self._build_dependencies()

    def _build_dependencies(self) -> Dict[str, List[str]]:
        known = set(self.table_names)
        deps: Dict[str, List[str]] = {name: [] for name in self.table_names}
        for rel in self.schema.relationships:
            if rel.source_table not in known or rel.target_table not in known:
                continue
            # self references never block creation
            if rel.is_self_reference:
                continue
            if rel.target_table not in deps[rel.source_table]:
                deps[rel.source_table].append(rel.target_table)
        return deps

    def resolve(self) -> DependencyOrder:
        order: List[str] = []
        cycles: List[List[str]] = []
        seen_cycles: Set[Tuple[str, ...]] = set()
        done: Set[str] = set()

        for root in self.table_names:
            if root in done:
                continue

            in_progress = {root}
            stack: List[Tuple[str, Iterator[str]]] = [(root, iter(self.dependencies[root]))]

            while stack:
                name, pending = stack[-1]
                dep = next(pending, None)

                if dep is None:
                    stack.pop()
                    in_progress.discard(name)
                    done.add(name)
                    order.append(name)
                    continue

                if dep in done:
                    continue

                if dep in in_progress:
                    path = [n for n, _ in stack]
                    cycle = path[path.index(dep):] + [dep]
                    key = self._canonical(cycle)
                    if key not in seen_cycles:
                        seen_cycles.add(key)
                        cycles.append(cycle)
                        logger.warning(
                            f"Circular dependency: {' -> '.join(cycle)}",
                            extra={"extra_fields": {"cycle": cycle}},
                        )
                    continue

                in_progress.add(dep)
                stack.append((dep, iter(self.dependencies[dep])))

        return DependencyOrder(order=order, cycles=cycles)

    @staticmethod
    def _canonical(cycle: List[str]) -> Tuple[str, ...]:
        """Rotation-independent identity of a cycle path"""
        nodes = cycle[:-1]
        start = nodes.index(min(nodes))
        return tuple(nodes[start:] + nodes[:start])


def resolve_dependencies(schema: Schema) -> DependencyOrder:
    """Compute a creation order for the schema's tables"""
    return DependencyResolver(schema).resolve()
