"""Snapshot decoding: field schema, graph data classes, decoder and indexer."""

from heapscope.snapshot.schema import EdgeType, FieldSchema, NodeType
from heapscope.snapshot.graph import Edge, EdgeLinks, EdgeRef, HeapGraph, Node
from heapscope.snapshot.indexer import GraphIndexer
from heapscope.snapshot.decoder import SnapshotDecoder, decode
from heapscope.snapshot.loader import load_snapshot

__all__ = [
    "EdgeType",
    "FieldSchema",
    "NodeType",
    "Edge",
    "EdgeLinks",
    "EdgeRef",
    "HeapGraph",
    "Node",
    "GraphIndexer",
    "SnapshotDecoder",
    "decode",
    "load_snapshot",
]
