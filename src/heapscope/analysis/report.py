"""Compose decoding, engine analysis and leak ranking into one report."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from heapscope.analysis.engine import (
    AggregateStats,
    EngineLike,
    GlobalStats,
    run_engine,
)
from heapscope.analysis.ranker import LeakCandidate, LeakRanker
from heapscope.snapshot.decoder import SnapshotDecoder
from heapscope.snapshot.graph import HeapGraph, Node
from heapscope.snapshot.schema import describe

logger = logging.getLogger(__name__)


# ============================================================================
# Data classes
# ============================================================================


@dataclass
class HeapReport:
    """Diagnostic report for one snapshot."""

    heap_map: Dict[int, Node]
    leak_candidates: List[LeakCandidate]
    statistics: GlobalStats
    root_index: int
    aggregates: Dict[str, AggregateStats] = field(default_factory=dict)
    graph: Optional[HeapGraph] = None

    def to_dict(self, include_nodes: bool = True) -> Dict[str, object]:
        """Plain-dict form.  Nodes are listed without their edge lists."""
        data: Dict[str, object] = {
            "root_index": self.root_index,
            "leak_candidates": [c.to_dict() for c in self.leak_candidates],
            "statistics": self.statistics.to_dict(),
            "aggregates": {k: v.to_dict() for k, v in self.aggregates.items()},
        }
        if self.graph is not None and self.graph.schema is not None:
            data["schema"] = describe(self.graph.schema)
        if include_nodes:
            data["heap_map"] = {
                str(index): node.to_dict(include_children=False)
                for index, node in self.heap_map.items()
            }
        return data


# ============================================================================
# Orchestrator
# ============================================================================


class Orchestrator:
    """Decode a snapshot, analyze it with an injected engine, rank suspects.

    The engine is any object with ``analyze(graph)`` or any callable taking
    the graph; see :mod:`heapscope.analysis.engine`.

    Usage::

        orchestrator = Orchestrator(engine=DominatorEngine())
        report = orchestrator.produce_report(raw_snapshot, limit=10)
    """

    def __init__(
        self,
        engine: EngineLike,
        decoder: Optional[SnapshotDecoder] = None,
        limit: int = LeakRanker.DEFAULT_LIMIT,
    ) -> None:
        self._engine = engine
        self._decoder = decoder or SnapshotDecoder()
        self._limit = limit

    def produce_report(
        self, raw: Mapping[str, Any], limit: Optional[int] = None,
    ) -> HeapReport:
        """Run the full pipeline on *raw*.

        Every error raised by the decoder, the engine or the ranker
        propagates unchanged; no partial report is produced.
        """
        graph = self._decoder.decode(raw)
        analysis = run_engine(self._engine, graph)
        ranking = LeakRanker(limit=limit if limit is not None else self._limit).rank(
            graph.root_index,
            analysis.retained_sizes,
            analysis.distances,
            graph.heap_map,
        )
        logger.debug(
            "Report ready: %d nodes, %d leak candidates.",
            len(graph), len(ranking.leak_candidates),
        )
        return HeapReport(
            heap_map=graph.heap_map,
            leak_candidates=ranking.leak_candidates,
            statistics=analysis.statistics,
            root_index=graph.root_index,
            aggregates=analysis.aggregates,
            graph=graph,
        )


def produce_report(
    raw: Mapping[str, Any],
    engine: EngineLike,
    limit: int = LeakRanker.DEFAULT_LIMIT,
) -> HeapReport:
    """Shortcut for ``Orchestrator(engine).produce_report(raw, limit)``."""
    return Orchestrator(engine=engine, limit=limit).produce_report(raw)
