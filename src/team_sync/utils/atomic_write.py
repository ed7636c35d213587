"""Atomic JSON writes for the file-backed stores.

Document histories and the local key-value file are replaced with a
temp file + rename so readers never observe a partially written file.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def dumps_deterministic(data: Any) -> str:
    """Serialize to JSON with sorted keys and 2-space indent, plus trailing newline."""
    return json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


def atomic_write_json(data: Any, target_path: str | Path) -> None:
    """Write data to target_path as deterministic JSON atomically.

    1. Write to a temporary file in the target's directory
    2. Rename the temp file over the target (atomic on the same filesystem)
    3. Remove the temp file on any failure

    Args:
        data: JSON-serializable object
        target_path: Destination file path

    Raises:
        OSError: If write or rename fails
        TypeError: If data is not JSON-serializable
    """
    target_path = Path(target_path)
    dir_path = target_path.parent
    dir_path.mkdir(parents=True, exist_ok=True)

    # Serialize first so a TypeError never leaves a temp file behind
    payload = dumps_deterministic(data)

    fd, temp_path = tempfile.mkstemp(dir=dir_path, prefix=".tmp_", suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
        os.chmod(temp_path, 0o644)
        os.replace(temp_path, target_path)
    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise
