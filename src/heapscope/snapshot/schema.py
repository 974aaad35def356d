"""Self-described field layout of a V8 heap snapshot.

A snapshot carries its own record layout in ``snapshot.meta``:

* ``node_fields`` / ``edge_fields`` name the columns of one node or edge
  record in the flat ``nodes`` / ``edges`` arrays;
* ``node_types`` / ``edge_types`` hold, at the position of the ``type``
  column, the enumeration that maps a small integer to a kind name.

:class:`FieldSchema` resolves that block once so the decoder can read
columns by offset instead of assuming the V8 default ordering.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from heapscope.errors import MalformedSchemaError

logger = logging.getLogger(__name__)


# ============================================================================
# Enums
# ============================================================================


class EdgeType(str, Enum):
    """Reference kinds emitted by V8 (``v8-profiler.h`` HeapGraphEdge)."""

    context = "context"
    element = "element"
    property = "property"
    internal = "internal"
    hidden = "hidden"
    shortcut = "shortcut"
    weak = "weak"

    @staticmethod
    def is_indexed(edge_type: str) -> bool:
        """True for kinds whose ``name_or_index`` is a number, not a string."""
        return edge_type in (EdgeType.element.value, EdgeType.hidden.value)


class NodeType(str, Enum):
    """Object kinds emitted by V8 (``v8-profiler.h`` HeapGraphNode)."""

    hidden = "hidden"
    array = "array"
    string = "string"
    object = "object"
    code = "code"
    closure = "closure"
    regexp = "regexp"
    number = "number"
    native = "native"
    synthetic = "synthetic"
    concatenated_string = "concatenated string"
    sliced_string = "sliced string"
    symbol = "symbol"
    bigint = "bigint"


# Columns the decoder cannot work without.
REQUIRED_NODE_FIELDS: Tuple[str, ...] = ("type", "name", "id", "self_size", "edge_count")
REQUIRED_EDGE_FIELDS: Tuple[str, ...] = ("type", "name_or_index", "to_node")


# ============================================================================
# Field schema
# ============================================================================


@dataclass(frozen=True)
class FieldSchema:
    """Resolved node/edge record layout and type enumerations."""

    node_fields: Tuple[str, ...]
    edge_fields: Tuple[str, ...]
    node_types: Tuple[str, ...]
    edge_types: Tuple[str, ...]

    @property
    def node_field_count(self) -> int:
        return len(self.node_fields)

    @property
    def edge_field_count(self) -> int:
        return len(self.edge_fields)

    def node_offset(self, name: str) -> Optional[int]:
        """Column of *name* within a node record, or ``None`` if absent."""
        try:
            return self.node_fields.index(name)
        except ValueError:
            return None

    def edge_offset(self, name: str) -> Optional[int]:
        """Column of *name* within an edge record, or ``None`` if absent."""
        try:
            return self.edge_fields.index(name)
        except ValueError:
            return None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_meta(cls, meta: Any) -> FieldSchema:
        """Build a schema from a snapshot's ``meta`` block.

        Raises
        ------
        MalformedSchemaError
            If any of the four metadata arrays is missing or empty, a
            required column is absent, or a type enumeration is not a
            non-empty list of strings.
        """
        if not isinstance(meta, Mapping):
            raise MalformedSchemaError("snapshot.meta must be an object")

        node_fields = _field_names(meta, "node_fields")
        edge_fields = _field_names(meta, "edge_fields")

        for name in REQUIRED_NODE_FIELDS:
            if name not in node_fields:
                raise MalformedSchemaError(
                    "node_fields is missing a required column", {"field": name},
                )
        for name in REQUIRED_EDGE_FIELDS:
            if name not in edge_fields:
                raise MalformedSchemaError(
                    "edge_fields is missing a required column", {"field": name},
                )

        node_types = _type_table(meta, "node_types", node_fields.index("type"))
        edge_types = _type_table(meta, "edge_types", edge_fields.index("type"))

        schema = cls(
            node_fields=node_fields,
            edge_fields=edge_fields,
            node_types=node_types,
            edge_types=edge_types,
        )
        logger.debug(
            "Resolved schema: %d node fields, %d edge fields, %d node types, %d edge types.",
            schema.node_field_count, schema.edge_field_count,
            len(node_types), len(edge_types),
        )
        return schema

    def validate_type_references(
        self, nodes: Sequence[Any], edges: Sequence[Any],
    ) -> None:
        """Check that no record references a type beyond the enumerations.

        This is the "fewer type names than the largest type index in use"
        consistency check.  The decoder performs the same check record by
        record; this variant scans up front and reports the largest value.
        """
        self._check_max_type(nodes, self.node_field_count, self.node_fields.index("type"),
                             self.node_types, "node_types")
        self._check_max_type(edges, self.edge_field_count, self.edge_fields.index("type"),
                             self.edge_types, "edge_types")

    @staticmethod
    def _check_max_type(
        values: Sequence[Any],
        stride: int,
        column: int,
        table: Tuple[str, ...],
        table_name: str,
    ) -> None:
        largest = max(
            (v for v in values[column::stride] if isinstance(v, int)), default=None,
        )
        if largest is not None and largest >= len(table):
            raise MalformedSchemaError(
                f"{table_name} has fewer entries than the largest type index in use",
                {"max_type_index": largest, "table_size": len(table)},
            )


# ============================================================================
# Helpers
# ============================================================================


def _field_names(meta: Mapping[str, Any], key: str) -> Tuple[str, ...]:
    raw = meta.get(key)
    if not isinstance(raw, list) or not raw:
        raise MalformedSchemaError(f"snapshot.meta.{key} is missing or empty")
    if not all(isinstance(name, str) for name in raw):
        raise MalformedSchemaError(f"snapshot.meta.{key} must contain only strings")
    if len(set(raw)) != len(raw):
        raise MalformedSchemaError(f"snapshot.meta.{key} has duplicate names")
    return tuple(raw)


def _type_table(meta: Mapping[str, Any], key: str, type_column: int) -> Tuple[str, ...]:
    raw = meta.get(key)
    if not isinstance(raw, list) or not raw:
        raise MalformedSchemaError(f"snapshot.meta.{key} is missing or empty")
    if type_column >= len(raw):
        raise MalformedSchemaError(
            f"snapshot.meta.{key} has no enumeration for the type column",
            {"type_column": type_column, "entries": len(raw)},
        )
    table = raw[type_column]
    if not isinstance(table, list) or not table:
        raise MalformedSchemaError(
            f"snapshot.meta.{key} type enumeration is missing or empty",
        )
    if not all(isinstance(name, str) for name in table):
        raise MalformedSchemaError(
            f"snapshot.meta.{key} type enumeration must contain only strings",
        )
    return tuple(table)


def describe(schema: FieldSchema) -> Dict[str, List[str]]:
    """Plain-dict view of a schema, used in JSON reports."""
    return {
        "node_fields": list(schema.node_fields),
        "edge_fields": list(schema.edge_fields),
        "node_types": list(schema.node_types),
        "edge_types": list(schema.edge_types),
    }
