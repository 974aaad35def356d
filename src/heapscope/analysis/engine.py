"""Heap analysis engine interface and the bundled dominator-tree engine.

The leak ranker only needs four things from an analysis pass: per-node
retained sizes, per-node distances from the root, per-class aggregates and
global statistics.  Anything that produces an :class:`EngineResult` from a
:class:`HeapGraph` can be plugged into the orchestrator, either an object
with an ``analyze(graph)`` method or a plain callable.

:class:`DominatorEngine` is the default implementation:

* distances come from a breadth-first walk from the root that ignores
  ``weak`` edges; nodes the walk never reaches get
  :data:`UNREACHABLE_DISTANCE`;
* retained sizes come from the dominator tree of the retaining graph
  (iterative Cooper/Harvey/Kennedy), where ``weak`` edges are ignored and
  ``shortcut`` edges are only followed out of the root.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field, asdict
from typing import Callable, Dict, List, Optional, Protocol, Union

from heapscope.snapshot.graph import HeapGraph
from heapscope.snapshot.schema import EdgeType, NodeType

logger = logging.getLogger(__name__)

# Distance assigned to nodes not reachable from the root.
UNREACHABLE_DISTANCE: int = 100_000_000


# ============================================================================
# Data classes
# ============================================================================


@dataclass
class AggregateStats:
    """Totals for all nodes sharing one class name."""

    name: str
    type: str
    count: int = 0
    self_size: int = 0
    max_ret: int = 0
    distance: int = UNREACHABLE_DISTANCE
    indexes: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> AggregateStats:
        raw_indexes = data.get("indexes", [])
        return cls(
            name=str(data.get("name", "")),
            type=str(data.get("type", "")),
            count=int(data.get("count", 0)),  # type: ignore[arg-type]
            self_size=int(data.get("self_size", 0)),  # type: ignore[arg-type]
            max_ret=int(data.get("max_ret", 0)),  # type: ignore[arg-type]
            distance=int(data.get("distance", UNREACHABLE_DISTANCE)),  # type: ignore[arg-type]
            indexes=[int(i) for i in raw_indexes] if isinstance(raw_indexes, list) else [],
        )


@dataclass
class GlobalStats:
    """Heap-wide byte totals by category."""

    total: int = 0
    native: int = 0
    code: int = 0
    strings: int = 0
    js_arrays: int = 0
    system: int = 0
    node_count: int = 0
    edge_count: int = 0

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> GlobalStats:
        return cls(**{
            key: int(data.get(key, 0))  # type: ignore[arg-type]
            for key in cls.__dataclass_fields__
        })


@dataclass
class EngineResult:
    """Output of one analysis pass, index-aligned with ``graph.heap_array``."""

    retained_sizes: List[int]
    distances: List[int]
    aggregates: Dict[str, AggregateStats] = field(default_factory=dict)
    statistics: GlobalStats = field(default_factory=GlobalStats)

    def to_dict(self) -> Dict[str, object]:
        return {
            "retained_sizes": list(self.retained_sizes),
            "distances": list(self.distances),
            "aggregates": {k: v.to_dict() for k, v in self.aggregates.items()},
            "statistics": self.statistics.to_dict(),
        }


class HeapAnalysisEngine(Protocol):
    """Anything that can compute retained sizes and distances for a graph."""

    def analyze(self, graph: HeapGraph) -> EngineResult:
        ...


EngineLike = Union[HeapAnalysisEngine, Callable[[HeapGraph], EngineResult]]


def run_engine(engine: EngineLike, graph: HeapGraph) -> EngineResult:
    """Invoke *engine* on *graph*, whether it is an engine object or a callable."""
    analyze = getattr(engine, "analyze", None)
    if callable(analyze):
        return analyze(graph)
    if callable(engine):
        return engine(graph)
    raise TypeError(
        f"engine must provide analyze(graph) or be callable, got {type(engine).__name__}"
    )


# ============================================================================
# Dominator engine
# ============================================================================


# Node kinds aggregated under their own name rather than "(<type>)".
_NAMED_KINDS = frozenset({
    NodeType.object.value,
    NodeType.native.value,
    NodeType.closure.value,
    NodeType.regexp.value,
})

_STRING_KINDS = frozenset({
    NodeType.string.value,
    NodeType.concatenated_string.value,
    NodeType.sliced_string.value,
})


class DominatorEngine:
    """Compute retained sizes, distances and statistics for a heap graph.

    Usage::

        engine = DominatorEngine()
        result = engine.analyze(graph)
        print(result.retained_sizes[graph.root_index])
    """

    def __call__(self, graph: HeapGraph) -> EngineResult:
        return self.analyze(graph)

    def analyze(self, graph: HeapGraph) -> EngineResult:
        """Run the full analysis pass over *graph*."""
        start = time.perf_counter()
        n = len(graph)
        if n == 0:
            return EngineResult(retained_sizes=[], distances=[])

        distances = self.compute_distances(graph)
        idom, postorder = self.compute_dominators(graph)
        retained = self.compute_retained_sizes(graph, idom, postorder)
        aggregates = self.compute_aggregates(graph, retained, distances)
        statistics = self.compute_statistics(graph, retained)

        logger.debug(
            "Analyzed %d nodes in %.3f s (%d reachable).",
            n, time.perf_counter() - start, len(postorder),
        )
        return EngineResult(
            retained_sizes=retained,
            distances=distances,
            aggregates=aggregates,
            statistics=statistics,
        )

    # ------------------------------------------------------------------
    # Distances
    # ------------------------------------------------------------------

    @staticmethod
    def compute_distances(graph: HeapGraph) -> List[int]:
        """Shortest hop count from the root over non-weak edges."""
        distances = [UNREACHABLE_DISTANCE] * len(graph)
        root = graph.root_index
        distances[root] = 0
        queue = deque([root])
        while queue:
            current = queue.popleft()
            next_distance = distances[current] + 1
            for edge in graph.heap_array[current].children:
                if edge.type == EdgeType.weak.value:
                    continue
                if distances[edge.index] == UNREACHABLE_DISTANCE:
                    distances[edge.index] = next_distance
                    queue.append(edge.index)
        return distances

    # ------------------------------------------------------------------
    # Dominators
    # ------------------------------------------------------------------

    @staticmethod
    def _retaining_successors(graph: HeapGraph, index: int) -> List[int]:
        result = []
        for edge in graph.heap_array[index].children:
            if edge.type == EdgeType.weak.value:
                continue
            if edge.type == EdgeType.shortcut.value and index != graph.root_index:
                continue
            result.append(edge.index)
        return result

    def compute_dominators(self, graph: HeapGraph) -> tuple:
        """Return ``(idom, postorder)`` for the nodes reachable from the root.

        ``idom[i]`` is the immediate dominator of node ``i`` (the root
        dominates itself) or ``None`` for unreachable nodes.  ``postorder``
        lists reachable node indexes in depth-first postorder.
        """
        n = len(graph)
        root = graph.root_index
        successors = [self._retaining_successors(graph, i) for i in range(n)]

        # Iterative depth-first search for the postorder.
        postorder: List[int] = []
        visited = [False] * n
        visited[root] = True
        stack = [(root, iter(successors[root]))]
        while stack:
            node, children = stack[-1]
            advanced = False
            for child in children:
                if not visited[child]:
                    visited[child] = True
                    stack.append((child, iter(successors[child])))
                    advanced = True
                    break
            if not advanced:
                stack.pop()
                postorder.append(node)

        order = [-1] * n
        for position, node in enumerate(postorder):
            order[node] = position

        predecessors: List[List[int]] = [[] for _ in range(n)]
        for node in postorder:
            for child in successors[node]:
                predecessors[child].append(node)

        idom: List[Optional[int]] = [None] * n
        idom[root] = root

        def intersect(a: int, b: int) -> int:
            while a != b:
                while order[a] < order[b]:
                    a = idom[a]  # type: ignore[assignment]
                while order[b] < order[a]:
                    b = idom[b]  # type: ignore[assignment]
            return a

        changed = True
        while changed:
            changed = False
            for node in reversed(postorder):
                if node == root:
                    continue
                new_idom: Optional[int] = None
                for pred in predecessors[node]:
                    if idom[pred] is None:
                        continue
                    new_idom = pred if new_idom is None else intersect(pred, new_idom)
                if new_idom is not None and idom[node] != new_idom:
                    idom[node] = new_idom
                    changed = True

        return idom, postorder

    @staticmethod
    def compute_retained_sizes(
        graph: HeapGraph, idom: List[Optional[int]], postorder: List[int],
    ) -> List[int]:
        """Sum self sizes up the dominator tree."""
        retained = [node.self_size for node in graph.heap_array]
        root = graph.root_index
        # A dominator finishes after everything it dominates.
        for node in postorder:
            if node == root:
                continue
            parent = idom[node]
            if parent is not None:
                retained[parent] += retained[node]
        return retained

    # ------------------------------------------------------------------
    # Aggregates & statistics
    # ------------------------------------------------------------------

    @staticmethod
    def compute_aggregates(
        graph: HeapGraph, retained: List[int], distances: List[int],
    ) -> Dict[str, AggregateStats]:
        """Group nodes by class name."""
        aggregates: Dict[str, AggregateStats] = {}
        for node in graph.heap_array:
            key = node.name if node.type in _NAMED_KINDS else f"({node.type})"
            stats = aggregates.get(key)
            if stats is None:
                stats = aggregates[key] = AggregateStats(name=key, type=node.type)
            stats.count += 1
            stats.self_size += node.self_size
            stats.max_ret = max(stats.max_ret, retained[node.index])
            stats.distance = min(stats.distance, distances[node.index])
            stats.indexes.append(node.index)
        return aggregates

    @staticmethod
    def compute_statistics(graph: HeapGraph, retained: List[int]) -> GlobalStats:
        """Split the heap into code, strings, arrays, native and system bytes."""
        stats = GlobalStats(
            total=retained[graph.root_index],
            node_count=len(graph),
            edge_count=graph.edge_count,
        )
        for node in graph.heap_array:
            if node.type == NodeType.code.value:
                stats.code += node.self_size
            elif node.type in _STRING_KINDS:
                stats.strings += node.self_size
            elif node.type == NodeType.native.value:
                stats.native += node.self_size
            elif node.type == NodeType.object.value and node.name == "Array":
                stats.js_arrays += node.self_size
                for edge in node.children:
                    if edge.type == EdgeType.internal.value and edge.name_or_index == "elements":
                        stats.js_arrays += graph.heap_array[edge.index].self_size
        stats.system = max(
            stats.total - stats.code - stats.strings - stats.native - stats.js_arrays, 0,
        )
        return stats
