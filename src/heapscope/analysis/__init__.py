"""Leak analysis: engine interface, ranking, report assembly and rendering."""

from heapscope.analysis.engine import (
    AggregateStats,
    DominatorEngine,
    EngineResult,
    GlobalStats,
    HeapAnalysisEngine,
)
from heapscope.analysis.ranker import LeakCandidate, LeakRanker, RankingResult
from heapscope.analysis.report import HeapReport, Orchestrator, produce_report
from heapscope.analysis.report_generator import ReportGenerator

__all__ = [
    "AggregateStats",
    "DominatorEngine",
    "EngineResult",
    "GlobalStats",
    "HeapAnalysisEngine",
    "LeakCandidate",
    "LeakRanker",
    "RankingResult",
    "HeapReport",
    "Orchestrator",
    "produce_report",
    "ReportGenerator",
]
