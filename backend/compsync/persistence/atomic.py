"""
Atomic JSON file storage.

Writers never leave a partially written file visible: data goes to a
sibling ``.tmp`` file first and is then renamed over the real file.
"""

import json
import os
from pathlib import Path
from typing import Any, Optional

from .errors import LoadError, SaveError


def atomic_write_json(path: Path, data: Any, indent: Optional[int] = 2) -> None:
    """
    Write JSON to ``path`` via temp file + rename.

    Args:
        path: Destination file
        data: JSON-serialisable object
        indent: Indentation for readability (None for compact output)

    Raises:
        SaveError: If the directory cannot be created or the write fails
    """
    path = Path(path)
    temp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent)
        os.replace(temp_path, path)
    except (OSError, TypeError, ValueError) as e:
        raise SaveError(f"Failed to write {path}: {e}") from e


def read_json(path: Path) -> Optional[Any]:
    """
    Read a JSON file.

    Returns:
        Parsed content, or None if the file does not exist

    Raises:
        LoadError: If the file exists but cannot be read or parsed
    """
    path = Path(path)
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise LoadError(f"Failed to read {path}: {e}") from e
