"""
JSON file helpers shared by the file-backed stores.
Writes go to a temp file in the target directory and are renamed into place,
so readers never observe a half-written file.
"""
import json
import os
import tempfile
from pathlib import Path
from typing import Any

from .exceptions import StorageError

_MISSING = object()


def read_json(path: Path, default: Any = _MISSING) -> Any:
    """
    Load a JSON document.
    If `default` is given it is returned when the file does not exist;
    any other failure raises StorageError.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        if default is _MISSING:
            raise StorageError(f"File not found: {path}")
        return default
    except (OSError, json.JSONDecodeError) as e:
        raise StorageError(f"Could not read {path}: {e}") from e


def write_json_atomic(path: Path, data: Any, indent: int = 2) -> None:
    """Serialize `data` to `path` atomically."""
    write_bytes_atomic(path, (json.dumps(data, indent=indent) + "\n").encode("utf-8"))


def write_bytes_atomic(path: Path, content: bytes, mode: int = None) -> None:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp"
        )
    except OSError as e:
        raise StorageError(f"Could not write {path}: {e}") from e

    try:
        with os.fdopen(temp_fd, "wb") as tmp:
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
        if mode is not None:
            os.chmod(temp_path, mode)
        os.replace(temp_path, path)
    except OSError as e:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise StorageError(f"Could not write {path}: {e}") from e
