"""Error taxonomy for snapshot decoding and leak analysis.

Every error is fatal for the call that raised it: the decoder never returns
a partial graph and the ranker never ranks misaligned engine output.  Each
exception carries a ``context`` mapping with the offending node index,
offset, or lengths so a malformed capture can be diagnosed from the message
alone.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class HeapSnapshotError(Exception):
    """Base class for all heapscope errors.

    Attributes
    ----------
    message:
        Human-readable error description.
    context:
        Diagnostic key/value pairs (node index, offset, lengths, ...).
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})
        if self.context:
            details = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            super().__init__(f"{message} ({details})")
        else:
            super().__init__(message)


class MalformedSchemaError(HeapSnapshotError):
    """The snapshot's field-layout metadata is missing or inconsistent."""


class CorruptReferenceError(HeapSnapshotError):
    """A node or edge field points outside the string table, a type table,
    or the node array, or holds a value that is not a valid count/size."""


class TruncatedSnapshotError(HeapSnapshotError):
    """The flat arrays do not cover the declared nodes and edges exactly."""


class EngineOutputMismatchError(HeapSnapshotError):
    """Analysis engine output is not index-aligned 1:1 with the graph."""
