"""Decoded heap graph data classes."""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from heapscope.snapshot.schema import FieldSchema


# ============================================================================
# Data classes
# ============================================================================


@dataclass(frozen=True)
class Edge:
    """One outgoing reference of a node."""

    index: int  # target node index
    type: str
    name_or_index: str
    to_node: str  # target node identity

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class EdgeRef:
    """The other endpoint of an edge, as stored in the edges map."""

    id: str
    type: str
    name_or_index: str

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass
class EdgeLinks:
    """Incoming (``from_ids``) and outgoing (``to_ids``) links of one node."""

    from_ids: List[EdgeRef] = field(default_factory=list)
    to_ids: List[EdgeRef] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "from_ids": [ref.to_dict() for ref in self.from_ids],
            "to_ids": [ref.to_dict() for ref in self.to_ids],
        }


@dataclass
class Node:
    """One object instance in the captured graph.

    ``retain_size`` starts out equal to ``self_size`` and is overwritten with
    the engine's retained size once the ranker attaches engine output.
    ``retained_size`` and ``distance`` stay ``None`` until then.
    """

    index: int
    type: str
    name: str
    id: str
    self_size: int
    retain_size: int
    edge_count: int
    trace_node_id: Any = 0
    children: List[Edge] = field(default_factory=list)
    retained_size: Optional[int] = None
    distance: Optional[int] = None

    def to_dict(self, include_children: bool = True) -> Dict[str, object]:
        data: Dict[str, object] = {
            "index": self.index,
            "type": self.type,
            "name": self.name,
            "id": self.id,
            "self_size": self.self_size,
            "retain_size": self.retain_size,
            "edge_count": self.edge_count,
            "trace_node_id": self.trace_node_id,
            "retained_size": self.retained_size,
            "distance": self.distance,
        }
        if include_children:
            data["children"] = [edge.to_dict() for edge in self.children]
        return data


@dataclass
class HeapGraph:
    """A fully decoded snapshot.

    ``heap_array`` and ``heap_map`` hold the same :class:`Node` objects;
    ``heap_array[i].index == i`` for every node.
    """

    heap_array: List[Node]
    heap_map: Dict[int, Node]
    edges_map: Dict[str, EdgeLinks]
    root_id: str
    root_index: int
    schema: Optional[FieldSchema] = None
    _by_id: Optional[Dict[str, Node]] = field(
        default=None, init=False, repr=False, compare=False,
    )

    def __len__(self) -> int:
        return len(self.heap_array)

    @property
    def edge_count(self) -> int:
        return sum(node.edge_count for node in self.heap_array)

    def node_by_id(self, node_id: str) -> Optional[Node]:
        """Look up a node by its ``"@<address>"`` identity."""
        if self._by_id is None:
            self._by_id = {node.id: node for node in self.heap_array}
        return self._by_id.get(node_id)

    def retainers(self, node_id: str) -> List[EdgeRef]:
        """Nodes holding a reference to *node_id*."""
        links = self.edges_map.get(node_id)
        return list(links.from_ids) if links is not None else []

    def references(self, node_id: str) -> List[EdgeRef]:
        """Nodes referenced by *node_id*."""
        links = self.edges_map.get(node_id)
        return list(links.to_ids) if links is not None else []
