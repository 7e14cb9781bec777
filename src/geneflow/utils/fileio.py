"""
Atomic file writes for run outputs.

params.json and the HTML report are written to a temporary file in the
destination directory and moved into place with ``os.replace()``, so an
interrupted run never leaves a half-written record next to valid results.
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import date, datetime
from pathlib import Path
from typing import Any

import numpy as np

__all__ = ['atomic_write_json', 'atomic_write_text']


def _json_default(obj: Any) -> Any:
    """Serialize numpy scalars/arrays, paths, sets and timestamps."""
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, (Path, os.PathLike)):
        return os.fspath(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _replace_atomically(path: str | os.PathLike, content: str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w", dir=path.parent, suffix=".tmp", delete=False, encoding="utf-8"
        ) as tmp:
            tmp_path = tmp.name
            tmp.write(content)
        os.replace(tmp_path, path)
    except BaseException:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
    return path


def atomic_write_json(path: str | os.PathLike, data: Any, *, indent: int = 2) -> Path:
    """Write *data* as JSON via temp-file + rename.

    numpy scalars, arrays, paths, sets and datetimes are converted to their
    JSON equivalents.

    Parameters
    ----------
    path:
        Destination file path. Parent directories are created.
    data:
        Object to serialize.
    indent:
        JSON indentation (default 2).
    """
    return _replace_atomically(path, json.dumps(data, indent=indent, default=_json_default))


def atomic_write_text(path: str | os.PathLike, content: str) -> Path:
    """Write *content* as UTF-8 text via temp-file + rename."""
    return _replace_atomically(path, content)
