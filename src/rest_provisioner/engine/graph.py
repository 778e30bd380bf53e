"""Dependency ordering for objects declared with ``depends_on``."""

from __future__ import annotations

import heapq
from typing import TYPE_CHECKING

from rest_provisioner.engine.errors import DependencyCycleError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


class DependencyGraph:
    """A directed graph where addresses depend on other addresses.

    Edges to addresses outside the graph are dropped.
    """

    def __init__(self, nodes: Iterable[str], dependencies: Mapping[str, Iterable[str]]) -> None:
        self._nodes = set(nodes)
        self._deps: dict[str, set[str]] = {
            node: {d for d in dependencies.get(node, ()) if d in self._nodes and d != node}
            for node in self._nodes
        }

    def topological_order(self) -> list[str]:
        """Dependencies first; ties broken lexicographically."""
        waiting = {node: len(deps) for node, deps in self._deps.items()}
        dependents: dict[str, list[str]] = {n: [] for n in self._nodes}
        for node, deps in self._deps.items():
            for dep in deps:
                dependents[dep].append(node)

        ready = [n for n, count in waiting.items() if count == 0]
        heapq.heapify(ready)
        order: list[str] = []
        while ready:
            node = heapq.heappop(ready)
            order.append(node)
            for child in dependents[node]:
                waiting[child] -= 1
                if waiting[child] == 0:
                    heapq.heappush(ready, child)

        if len(order) != len(self._nodes):
            raise DependencyCycleError(sorted(self._nodes - set(order)))
        return order

    def reverse_topological_order(self) -> list[str]:
        """Dependents first (deletion order)."""
        return self.topological_order()[::-1]
