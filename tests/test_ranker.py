"""Tests for heapscope.analysis.ranker."""

import pytest

from heapscope.analysis.engine import UNREACHABLE_DISTANCE
from heapscope.analysis.ranker import (
    CandidateShortlist,
    LeakCandidate,
    LeakRanker,
    RankingResult,
    rank,
)
from heapscope.errors import EngineOutputMismatchError
from heapscope.snapshot.graph import Node


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _heap_map(n: int) -> dict:
    return {
        i: Node(index=i, type="object", name=f"N{i}", id=f"@{i * 2 + 1}",
                self_size=1, retain_size=1, edge_count=0)
        for i in range(n)
    }


# ---------------------------------------------------------------------------
# LeakCandidate / RankingResult
# ---------------------------------------------------------------------------

class TestLeakCandidate:
    def test_to_dict_from_dict_roundtrip(self):
        candidate = LeakCandidate(index=2, id="@5", size=1000)
        assert LeakCandidate.from_dict(candidate.to_dict()) == candidate

    def test_frozen(self):
        candidate = LeakCandidate(index=2, id="@5", size=1000)
        with pytest.raises(AttributeError):
            candidate.size = 1  # type: ignore[misc]

    def test_result_to_dict(self):
        result = RankingResult(leak_candidates=[LeakCandidate(1, "@3", 10)], limit=5, considered=1)
        data = result.to_dict()
        assert data["leak_candidates"] == [{"index": 1, "id": "@3", "size": 10}]
        assert data["limit"] == 5


# ---------------------------------------------------------------------------
# CandidateShortlist
# ---------------------------------------------------------------------------

class TestCandidateShortlist:
    def test_appends_until_full(self):
        shortlist = CandidateShortlist(2)
        assert shortlist.offer(LeakCandidate(1, "@1", 1))
        assert shortlist.offer(LeakCandidate(2, "@2", 2))
        assert shortlist.full
        assert len(shortlist) == 2

    def test_evicts_smallest_when_strictly_larger(self):
        shortlist = CandidateShortlist(2)
        shortlist.offer(LeakCandidate(1, "@1", 10))
        shortlist.offer(LeakCandidate(2, "@2", 20))
        assert shortlist.offer(LeakCandidate(3, "@3", 15))
        assert [c.index for c in shortlist.finalize()] == [2, 3]

    def test_equal_size_does_not_evict(self):
        shortlist = CandidateShortlist(2)
        shortlist.offer(LeakCandidate(1, "@1", 10))
        shortlist.offer(LeakCandidate(2, "@2", 20))
        assert not shortlist.offer(LeakCandidate(3, "@3", 10))
        assert [c.index for c in shortlist.finalize()] == [2, 1]

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            CandidateShortlist(0)


# ---------------------------------------------------------------------------
# LeakRanker
# ---------------------------------------------------------------------------

class TestLeakRanker:
    def test_three_node_chain(self):
        heap_map = _heap_map(3)
        result = LeakRanker(limit=5).rank(0, [1010, 1000, 1000], [0, 1, 2], heap_map)
        assert [c.to_dict() for c in result.leak_candidates] == [
            {"index": 2, "id": "@5", "size": 1000},
        ]

    def test_default_limit(self):
        assert LeakRanker().limit == 5

    def test_unreachable_marker_matches_engine(self):
        assert LeakRanker.UNREACHABLE_DISTANCE == UNREACHABLE_DISTANCE

    def test_annotates_every_node(self):
        heap_map = _heap_map(3)
        LeakRanker().rank(0, [1010, 1000, 1000], [0, 1, 2], heap_map)
        assert [n.retained_size for n in heap_map.values()] == [1010, 1000, 1000]
        assert [n.distance for n in heap_map.values()] == [0, 1, 2]
        assert [n.retain_size for n in heap_map.values()] == [1010, 1000, 1000]

    def test_root_never_included(self):
        heap_map = _heap_map(3)
        # The root is deep and huge here, yet must still be skipped.
        result = LeakRanker().rank(1, [5, 999, 7], [2, 5, 2], heap_map)
        assert 1 not in [c.index for c in result.leak_candidates]
        assert [c.index for c in result.leak_candidates] == [2, 0]

    def test_shallow_nodes_excluded(self):
        heap_map = _heap_map(4)
        result = LeakRanker().rank(0, [100, 90, 80, 70], [0, 1, 0, 2], heap_map)
        assert [c.index for c in result.leak_candidates] == [3]

    def test_unreachable_nodes_excluded(self):
        heap_map = _heap_map(4)
        distances = [0, 100_000_000, 100_000_001, 99_999_999]
        result = LeakRanker().rank(0, [1, 500, 600, 10], distances, heap_map)
        assert [c.index for c in result.leak_candidates] == [3]
        assert result.considered == 1

    def test_never_exceeds_limit(self):
        n = 50
        heap_map = _heap_map(n)
        sizes = [(i * 37) % 101 for i in range(n)]
        result = LeakRanker(limit=3).rank(0, sizes, [0] + [2] * (n - 1), heap_map)
        assert len(result.leak_candidates) == 3
        assert [c.size for c in result.leak_candidates] == sorted(sizes[1:], reverse=True)[:3]

    def test_sorted_descending(self):
        heap_map = _heap_map(6)
        sizes = [0, 5, 50, 20, 40, 10]
        result = LeakRanker(limit=10).rank(0, sizes, [0, 2, 2, 2, 2, 2], heap_map)
        assert [c.size for c in result.leak_candidates] == [50, 40, 20, 10, 5]

    def test_first_seen_wins_ties(self):
        heap_map = _heap_map(5)
        result = LeakRanker(limit=2).rank(
            0, [0, 100, 100, 100, 100], [0, 2, 2, 2, 2], heap_map,
        )
        assert [c.index for c in result.leak_candidates] == [1, 2]

    def test_tie_with_minimum_after_eviction(self):
        heap_map = _heap_map(5)
        result = LeakRanker(limit=2).rank(
            0, [0, 50, 100, 100, 100], [0, 2, 2, 2, 2], heap_map,
        )
        # Node 3 evicts node 1 (strictly larger); node 4 only ties and is dropped.
        assert [c.index for c in result.leak_candidates] == [2, 3]

    def test_equal_sizes_keep_encounter_order(self):
        heap_map = _heap_map(4)
        result = LeakRanker(limit=5).rank(0, [0, 7, 7, 7], [0, 3, 3, 3], heap_map)
        assert [c.index for c in result.leak_candidates] == [1, 2, 3]

    def test_no_candidates(self):
        heap_map = _heap_map(2)
        result = LeakRanker().rank(0, [10, 10], [0, 1], heap_map)
        assert result.leak_candidates == []
        assert result.considered == 0

    def test_retained_sizes_length_mismatch(self):
        heap_map = _heap_map(3)
        with pytest.raises(EngineOutputMismatchError) as excinfo:
            LeakRanker().rank(0, [1, 2], [0, 1, 2], heap_map)
        assert excinfo.value.context["retained_sizes"] == 2
        assert excinfo.value.context["node_count"] == 3

    def test_distances_length_mismatch(self):
        heap_map = _heap_map(3)
        with pytest.raises(EngineOutputMismatchError):
            LeakRanker().rank(0, [1, 2, 3], [0, 1, 2, 3], heap_map)

    def test_mismatch_leaves_nodes_untouched(self):
        heap_map = _heap_map(3)
        with pytest.raises(EngineOutputMismatchError):
            LeakRanker().rank(0, [1, 2], [0, 1], heap_map)
        assert all(n.retained_size is None for n in heap_map.values())

    def test_heap_map_not_dense(self):
        heap_map = _heap_map(3)
        heap_map[5] = heap_map.pop(2)
        with pytest.raises(EngineOutputMismatchError):
            LeakRanker().rank(0, [1, 2, 3], [0, 2, 2], heap_map)

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            LeakRanker(limit=0)

    def test_module_shortcut(self):
        result = rank(0, [1010, 1000, 1000], [0, 1, 2], _heap_map(3), limit=1)
        assert result.limit == 1
        assert [c.index for c in result.leak_candidates] == [2]
