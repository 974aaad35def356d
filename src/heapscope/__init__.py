"""heapscope - decode V8 heap snapshots and rank likely leak retainers."""

__version__ = "0.1.0"
