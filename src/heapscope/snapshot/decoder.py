"""Decode a raw V8 heap snapshot into an addressable :class:`HeapGraph`.

The ``nodes`` array is walked in strides of the node field width.  Each
node's outgoing edges are the next ``edge_count * edge_field_width`` values
of the ``edges`` array, so a running cursor is advanced node by node; edge
spans are variable length and can only be located cumulatively.

Every value read from the flat arrays is validated: counts and sizes must
be non-negative integers, and every index into the string table, a type
table, or the node array must be in bounds.  Any violation aborts the whole
decode with a :mod:`heapscope.errors` exception naming the offending node
and offset.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict, List, Mapping, Sequence

from heapscope.errors import (
    CorruptReferenceError,
    MalformedSchemaError,
    TruncatedSnapshotError,
)
from heapscope.snapshot.graph import Edge, HeapGraph, Node
from heapscope.snapshot.indexer import GraphIndexer
from heapscope.snapshot.schema import EdgeType, FieldSchema

logger = logging.getLogger(__name__)


# ============================================================================
# Value coercion
# ============================================================================


def _as_count(value: Any, what: str, **context: Any) -> int:
    """Return *value* as a non-negative int or raise CorruptReferenceError."""
    if isinstance(value, bool):
        raise CorruptReferenceError(f"{what} must be a non-negative integer", dict(context, value=value))
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or value < 0:
        raise CorruptReferenceError(f"{what} must be a non-negative integer", dict(context, value=value))
    return value


def _lookup(table: Sequence[str], value: Any, what: str, **context: Any) -> str:
    """Resolve *value* as an index into *table*, bounds-checked."""
    index = _as_count(value, what, **context)
    if index >= len(table):
        raise CorruptReferenceError(
            f"{what} is out of range", dict(context, value=index, table_size=len(table)),
        )
    return table[index]


# ============================================================================
# Decoder
# ============================================================================


class SnapshotDecoder:
    """Turn a parsed ``.heapsnapshot`` document into a :class:`HeapGraph`.

    Usage::

        graph = SnapshotDecoder().decode(json.load(fp))
        root = graph.heap_map[graph.root_index]
        for ref in graph.retainers("@1234"):
            print(ref.id, ref.type, ref.name_or_index)

    With ``strict_schema=True`` the type columns are checked against the
    enumerations before decoding starts, and an overflowing type index is
    reported as a :class:`MalformedSchemaError` for the whole snapshot.
    """

    def __init__(self, strict_schema: bool = False) -> None:
        self._strict_schema = strict_schema

    def decode(self, raw: Mapping[str, Any]) -> HeapGraph:
        """Decode *raw* into a new graph.  *raw* is never modified.

        Raises
        ------
        MalformedSchemaError
            Missing top-level sections or bad ``snapshot.meta``.
        CorruptReferenceError
            A field indexes outside the string table, a type table or the
            node array, or holds an invalid count/size.
        TruncatedSnapshotError
            The ``nodes`` or ``edges`` array does not exactly cover the
            declared records.
        """
        snapshot, nodes, edges, strings = self._sections(raw)
        schema = FieldSchema.from_meta(snapshot.get("meta"))
        if self._strict_schema:
            schema.validate_type_references(nodes, edges)

        node_width = schema.node_field_count
        edge_width = schema.edge_field_count
        if len(nodes) % node_width:
            raise TruncatedSnapshotError(
                "nodes array length is not a multiple of the node field width",
                {"nodes_length": len(nodes), "node_field_width": node_width},
            )
        node_count = len(nodes) // node_width

        root_index = _as_count(snapshot.get("root_index", 0) or 0, "root_index")
        if node_count and root_index >= node_count:
            raise CorruptReferenceError(
                "root_index is out of range", {"root_index": root_index, "node_count": node_count},
            )

        n_type = schema.node_offset("type")
        n_name = schema.node_offset("name")
        n_id = schema.node_offset("id")
        n_size = schema.node_offset("self_size")
        n_edges = schema.node_offset("edge_count")
        n_trace = schema.node_offset("trace_node_id")
        e_type = schema.edge_offset("type")
        e_name = schema.edge_offset("name_or_index")
        e_to = schema.edge_offset("to_node")

        # Identities first: edges may point forward to nodes not yet decoded.
        ids: List[str] = [
            "@%d" % _as_count(nodes[i * node_width + n_id], "node id", node_index=i)
            for i in range(node_count)
        ]

        heap_array: List[Node] = []
        heap_map: Dict[int, Node] = {}
        indexer = GraphIndexer()
        offset = 0

        for index in range(node_count):
            base = index * node_width
            record = nodes[base:base + node_width]
            edge_count = _as_count(record[n_edges], "edge_count", node_index=index)
            self_size = _as_count(record[n_size], "self_size", node_index=index)
            node = Node(
                index=index,
                type=_lookup(schema.node_types, record[n_type], "node type", node_index=index),
                name=_lookup(strings, record[n_name], "node name", node_index=index),
                id=ids[index],
                self_size=self_size,
                retain_size=self_size,
                edge_count=edge_count,
                trace_node_id=record[n_trace] if n_trace is not None else 0,
            )
            end = offset + edge_count * edge_width
            if end > len(edges):
                raise TruncatedSnapshotError(
                    "edge span exceeds the edges array",
                    {"node_index": index, "offset": offset, "span_end": end, "edges_length": len(edges)},
                )

            for edge_offset in range(offset, end, edge_width):
                edge_record = edges[edge_offset:edge_offset + edge_width]
                context = {"node_index": index, "offset": edge_offset}
                edge_type = _lookup(schema.edge_types, edge_record[e_type], "edge type", **context)

                if EdgeType.is_indexed(edge_type):
                    label = "[%d]" % _as_count(edge_record[e_name], "edge index", **context)
                else:
                    label = _lookup(strings, edge_record[e_name], "edge name", **context)

                target_offset = _as_count(edge_record[e_to], "to_node", **context)
                if target_offset % node_width or target_offset // node_width >= node_count:
                    raise CorruptReferenceError(
                        "to_node does not address a node record",
                        dict(context, value=target_offset, node_field_width=node_width),
                    )
                target = target_offset // node_width

                node.children.append(
                    Edge(index=target, type=edge_type, name_or_index=label, to_node=ids[target]),
                )
                indexer.record(index, target, edge_type, label)

            heap_array.append(node)
            heap_map[index] = node
            offset = end

        if offset != len(edges):
            raise TruncatedSnapshotError(
                "edges array is longer than the declared edge counts",
                {"consumed": offset, "edges_length": len(edges)},
            )

        duplicates = [node_id for node_id, n in Counter(ids).items() if n > 1]
        if duplicates:
            logger.warning(
                "%d node identities are shared by more than one node (first: %s); "
                "their edge links are merged.",
                len(duplicates), duplicates[0],
            )

        logger.debug(
            "Decoded %d nodes and %d edges (root %d, %d linked nodes).",
            node_count, offset // edge_width, root_index, len(indexer),
        )
        return HeapGraph(
            heap_array=heap_array,
            heap_map=heap_map,
            edges_map=indexer.edges_map(heap_array),
            root_id=ids[root_index] if node_count else "",
            root_index=root_index,
            schema=schema,
        )

    @staticmethod
    def _sections(raw: Mapping[str, Any]) -> tuple:
        if not isinstance(raw, Mapping):
            raise MalformedSchemaError("snapshot document must be an object")
        snapshot = raw.get("snapshot")
        if not isinstance(snapshot, Mapping):
            raise MalformedSchemaError("snapshot document has no 'snapshot' header")
        sections = []
        for key in ("nodes", "edges", "strings"):
            value = raw.get(key)
            if not isinstance(value, (list, tuple)):
                raise MalformedSchemaError(f"snapshot document has no '{key}' array")
            sections.append(value)
        return (snapshot, *sections)


def decode(raw: Mapping[str, Any], strict_schema: bool = False) -> HeapGraph:
    """Decode *raw* with a fresh :class:`SnapshotDecoder`."""
    return SnapshotDecoder(strict_schema=strict_schema).decode(raw)
