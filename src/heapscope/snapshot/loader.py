"""Read ``.heapsnapshot`` files from disk."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

from heapscope.errors import MalformedSchemaError

logger = logging.getLogger(__name__)


def load_snapshot(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a heap snapshot JSON document.

    Parameters
    ----------
    path:
        Path to a ``.heapsnapshot`` file as written by Chrome DevTools,
        ``node --heapsnapshot-signal`` or ``v8.writeHeapSnapshot()``.

    Returns
    -------
    dict
        The parsed document, ready for :class:`SnapshotDecoder`.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    MalformedSchemaError
        If the file is not valid JSON or its top level is not an object.
    """
    filepath = Path(path)
    if not filepath.is_file():
        raise FileNotFoundError(f"Snapshot file not found: {path}")

    text = filepath.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedSchemaError(
            "snapshot file is not valid JSON", {"path": str(path), "line": exc.lineno},
        ) from exc

    if not isinstance(data, dict):
        raise MalformedSchemaError("snapshot file must hold a JSON object", {"path": str(path)})

    logger.debug("Loaded %s (%d bytes).", filepath, len(text))
    return data
