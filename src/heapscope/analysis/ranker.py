"""Rank heap nodes that most likely retain leaked memory.

A good leak suspect retains a lot of memory while sitting deep enough in
the graph that it is not simply a global.  The ranker therefore walks the
nodes in graph order and

* skips the root;
* skips nodes at distance <= 1 (the root's own properties);
* skips nodes at distance >= ``10**8``, the engine's marker for objects
  unreachable from the root (garbage waiting to be collected);
* keeps the ``limit`` largest retained sizes seen so far.

When the shortlist is full a newcomer only displaces the current smallest
entry if it is strictly larger, so among equal sizes the node seen first
wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from typing import Dict, List, Sequence

from heapscope.analysis.engine import UNREACHABLE_DISTANCE
from heapscope.errors import EngineOutputMismatchError
from heapscope.snapshot.graph import Node

logger = logging.getLogger(__name__)


# ============================================================================
# Data classes
# ============================================================================


@dataclass(frozen=True)
class LeakCandidate:
    """A node singled out as a suspected leak retainer."""

    index: int
    id: str
    size: int  # retained size in bytes

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> LeakCandidate:
        return cls(
            index=int(data.get("index", 0)),  # type: ignore[arg-type]
            id=str(data.get("id", "")),
            size=int(data.get("size", 0)),  # type: ignore[arg-type]
        )


@dataclass
class RankingResult:
    """Output of :meth:`LeakRanker.rank`."""

    leak_candidates: List[LeakCandidate]
    limit: int
    considered: int = 0  # nodes that passed the distance filters

    def to_dict(self) -> Dict[str, object]:
        return {
            "leak_candidates": [c.to_dict() for c in self.leak_candidates],
            "limit": self.limit,
            "considered": self.considered,
        }


# ============================================================================
# Shortlist
# ============================================================================


class CandidateShortlist:
    """At most ``limit`` candidates with the largest sizes offered so far."""

    def __init__(self, limit: int) -> None:
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        self._limit = limit
        self._entries: List[LeakCandidate] = []

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def full(self) -> bool:
        return len(self._entries) >= self._limit

    def offer(self, candidate: LeakCandidate) -> bool:
        """Add *candidate* if it belongs in the shortlist.  Returns True if kept."""
        if not self.full:
            self._entries.append(candidate)
            return True
        # Stable sort: among equal sizes the earlier entry stays in front.
        self._entries.sort(key=lambda c: c.size, reverse=True)
        if candidate.size > self._entries[-1].size:
            self._entries.pop()
            self._entries.append(candidate)
            return True
        return False

    def finalize(self) -> List[LeakCandidate]:
        """The kept candidates, largest first."""
        return sorted(self._entries, key=lambda c: c.size, reverse=True)


# ============================================================================
# Leak Ranker
# ============================================================================


class LeakRanker:
    """Select the top-K leak candidates from engine output.

    Usage::

        ranker = LeakRanker(limit=10)
        result = ranker.rank(graph.root_index, engine_result.retained_sizes,
                             engine_result.distances, graph.heap_map)
        for candidate in result.leak_candidates:
            print(candidate.id, candidate.size)
    """

    DEFAULT_LIMIT: int = 5

    # Nodes at or below this distance are too shallow to be interesting.
    MIN_DISTANCE: int = 1

    # Engine marker for nodes unreachable from the root.
    UNREACHABLE_DISTANCE: int = UNREACHABLE_DISTANCE

    def __init__(self, limit: int = DEFAULT_LIMIT) -> None:
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        self._limit = limit

    @property
    def limit(self) -> int:
        return self._limit

    def rank(
        self,
        root_index: int,
        retained_sizes: Sequence[int],
        distances: Sequence[int],
        heap_map: Dict[int, Node],
    ) -> RankingResult:
        """Annotate every node and pick the leak candidates.

        ``retain_size``, ``retained_size`` and ``distance`` are written onto
        each node of *heap_map* as a side effect.

        Raises
        ------
        EngineOutputMismatchError
            If *retained_sizes* or *distances* is not index-aligned with
            *heap_map*.  Nothing is annotated in that case.
        """
        self._check_alignment(retained_sizes, distances, heap_map)

        shortlist = CandidateShortlist(self._limit)
        considered = 0

        for index, size in enumerate(retained_sizes):
            node = heap_map[index]
            distance = distances[index]
            node.retain_size = size
            node.retained_size = size
            node.distance = distance

            if index == root_index:
                continue
            if distance <= self.MIN_DISTANCE or distance >= self.UNREACHABLE_DISTANCE:
                continue

            considered += 1
            shortlist.offer(LeakCandidate(index=index, id=node.id, size=size))

        candidates = shortlist.finalize()
        logger.debug(
            "Ranked %d of %d nodes; kept %d candidates (limit %d).",
            considered, len(heap_map), len(candidates), self._limit,
        )
        return RankingResult(
            leak_candidates=candidates,
            limit=self._limit,
            considered=considered,
        )

    @staticmethod
    def _check_alignment(
        retained_sizes: Sequence[int],
        distances: Sequence[int],
        heap_map: Dict[int, Node],
    ) -> None:
        node_count = len(heap_map)
        if len(retained_sizes) != node_count or len(distances) != node_count:
            raise EngineOutputMismatchError(
                "engine output is not aligned with the graph",
                {
                    "node_count": node_count,
                    "retained_sizes": len(retained_sizes),
                    "distances": len(distances),
                },
            )
        missing = next((i for i in range(node_count) if i not in heap_map), None)
        if missing is not None:
            raise EngineOutputMismatchError(
                "heap map is not indexed 0..N-1", {"missing_index": missing},
            )


def rank(
    root_index: int,
    retained_sizes: Sequence[int],
    distances: Sequence[int],
    heap_map: Dict[int, Node],
    limit: int = LeakRanker.DEFAULT_LIMIT,
) -> RankingResult:
    """Shortcut for ``LeakRanker(limit).rank(...)``."""
    return LeakRanker(limit=limit).rank(root_index, retained_sizes, distances, heap_map)
