"""Bidirectional adjacency index built while a snapshot is decoded."""

from __future__ import annotations

import logging
from typing import Dict, List

from heapscope.snapshot.graph import EdgeLinks, EdgeRef, Node

logger = logging.getLogger(__name__)


class GraphIndexer:
    """Record, for every node, which nodes point to it and which it points to.

    Links are keyed by integer node index while decoding and resolved to
    ``"@<address>"`` identity strings only in :meth:`edges_map`, so the hot
    loop never builds string keys.  Entries are created on first reference.

    Usage::

        indexer = GraphIndexer()
        indexer.record(owner_index=0, target_index=3, edge_type="property", label="foo")
        edges_map = indexer.edges_map(heap_array)
    """

    def __init__(self) -> None:
        self._from: Dict[int, List[tuple]] = {}
        self._to: Dict[int, List[tuple]] = {}

    def record(self, owner_index: int, target_index: int, edge_type: str, label: str) -> None:
        """Register one decoded edge ``owner -> target``."""
        self._from.setdefault(target_index, []).append((owner_index, edge_type, label))
        self._to.setdefault(owner_index, []).append((target_index, edge_type, label))

    def __len__(self) -> int:
        return len(self._from.keys() | self._to.keys())

    def edges_map(self, heap_array: List[Node]) -> Dict[str, EdgeLinks]:
        """Resolve the index-keyed links to identity-keyed :class:`EdgeLinks`."""
        result: Dict[str, EdgeLinks] = {}
        for index in sorted(self._from.keys() | self._to.keys()):
            # Nodes sharing an identity end up in one entry.
            links = result.setdefault(heap_array[index].id, EdgeLinks())
            links.from_ids.extend(
                EdgeRef(id=heap_array[other].id, type=edge_type, name_or_index=label)
                for other, edge_type, label in self._from.get(index, [])
            )
            links.to_ids.extend(
                EdgeRef(id=heap_array[other].id, type=edge_type, name_or_index=label)
                for other, edge_type, label in self._to.get(index, [])
            )
        logger.debug("Indexed links for %d nodes.", len(result))
        return result
