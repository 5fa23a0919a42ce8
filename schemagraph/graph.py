"""Weighted graph over opaque, hashable node identifiers.

Edges are kept in a :class:`~schemagraph.tables.Table` keyed
``source -> target -> Edge``. A directed edge occupies one slot; an undirected
edge is mirrored into both slots and shares a single :class:`Edge` object.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional, Set

from .priority_queue import PriorityQueue
from .tables import Table

logger = logging.getLogger(__name__)

DEFAULT_EDGE_WEIGHT = 10

CostFunction = Callable[[Optional[float]], float]


@dataclass(frozen=True)
class Edge:
    source: Hashable
    target: Hashable
    weight: float = DEFAULT_EDGE_WEIGHT
    directed: bool = True
    properties: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


def weight_cost(weight: Optional[float]) -> float:
    """Use the raw weight as the traversal cost."""
    return math.inf if weight is None else weight


def impassable_when_missing(weight: Optional[float]) -> float:
    """Treat absent or zero weights as edges that cannot be crossed."""
    return weight if weight else math.inf


class Graph:
    def __init__(self) -> None:
        self._nodes: Dict[Hashable, None] = {}
        self._edges = Table()

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def add_node(self, node: Hashable) -> None:
        self._nodes.setdefault(node, None)

    def add_nodes(self, nodes: Iterable[Hashable]) -> None:
        if isinstance(nodes, (str, bytes)) or not isinstance(nodes, Iterable):
            raise TypeError("add_nodes() expects an iterable of nodes")
        for node in nodes:
            self.add_node(node)

    def remove_node(self, node: Hashable) -> None:
        if node not in self._nodes:
            return
        del self._nodes[node]
        self._edges.delete(node)
        for _, targets in self._edges:
            targets.pop(node, None)

    def has_node(self, node: Hashable) -> bool:
        return node in self._nodes

    def nodes(self) -> List[Hashable]:
        return list(self._nodes)

    def num_nodes(self) -> int:
        return len(self._nodes)

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def add_edge(
        self,
        source: Hashable,
        target: Hashable,
        weight: float = DEFAULT_EDGE_WEIGHT,
        directed: bool = True,
        **properties: Any,
    ) -> Edge:
        self.add_node(source)
        self.add_node(target)
        previous = self._edges.get(source, target)
        # An overwritten undirected edge takes its mirror with it.
        if previous is not None and not previous.directed and self._edges.get(target, source) is previous:
            self._edges.delete(target, source)
        edge = Edge(source, target, weight, directed, dict(properties))
        self._edges.set(source, target, edge)
        if not directed:
            self._edges.set(target, source, edge)
        return edge

    def remove_edge(self, source: Hashable, target: Hashable) -> bool:
        edge = self._edges.get(source, target)
        if edge is None:
            return False
        self._edges.delete(source, target)
        if not edge.directed and self._edges.get(target, source) is edge:
            self._edges.delete(target, source)
        return True

    def get_edge(self, source: Hashable, target: Hashable) -> Optional[float]:
        """Weight of the edge ``source -> target``, or ``None``."""
        edge = self._edges.get(source, target)
        return None if edge is None else edge.weight

    def get_edge_data(self, source: Hashable, target: Hashable) -> Optional[Edge]:
        return self._edges.get(source, target)

    def has_edge(self, source: Hashable, target: Hashable) -> bool:
        return self._edges.has(source, target)

    def edges(self) -> Iterator[Edge]:
        """Each logical edge once, mirrored undirected edges included."""
        seen: Set[int] = set()
        for _, targets in self._edges:
            for edge in targets.values():
                if id(edge) not in seen:
                    seen.add(id(edge))
                    yield edge

    def get_neighboring_nodes(self, node: Hashable) -> List[Hashable]:
        targets = self._edges.get_map(node)
        return list(targets) if targets else []

    def clear(self) -> None:
        self._nodes.clear()
        self._edges.clear()

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def get_path(
        self,
        start: Hashable,
        end: Hashable,
        cost_fn: Optional[CostFunction] = None,
    ) -> List[Hashable]:
        """Shortest path from *start* to *end* (Dijkstra).

        ``cost_fn`` maps an edge weight to the cost of crossing it; an infinite
        cost makes the edge impassable. Returns the nodes from *start* to *end*
        inclusive, or an empty list when the two are not connected. Among
        equal-cost routes the first settled predecessor wins.
        """
        if not self.has_node(start) or not self.has_node(end):
            return []
        if start == end:
            return [start]

        cost_fn = cost_fn or weight_cost
        distances: Dict[Hashable, float] = {start: 0}
        previous: Dict[Hashable, Hashable] = {}
        settled: Set[Hashable] = set()

        queue = PriorityQueue()
        queue.insert(0, start)
        while queue:
            node = queue.extract_top()
            if node == end:
                break
            settled.add(node)
            for neighbor in self.get_neighboring_nodes(node):
                if neighbor in settled:
                    continue
                cost = cost_fn(self.get_edge(node, neighbor))
                if cost < 0:
                    raise ValueError(f"Negative cost {cost} on edge {node!r} -> {neighbor!r}")
                if cost == math.inf:
                    continue
                candidate = distances[node] + cost
                if candidate < distances.get(neighbor, math.inf):
                    distances[neighbor] = candidate
                    previous[neighbor] = node
                    queue.upsert(candidate, neighbor)

        if end not in previous:
            logger.debug("No path from %r to %r", start, end)
            return []

        path = [end]
        while path[-1] != start:
            path.append(previous[path[-1]])
        path.reverse()
        return path
