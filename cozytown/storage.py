import json
import os
import tempfile
from typing import Any, Dict, Optional

from .errors import StorageError


def save_state(state: Dict[str, Any], path: str) -> None:
    # write to a temp file in the same dir, then swap, so a crash never leaves half a file
    directory = os.path.dirname(os.path.abspath(path))
    try:
        fd, tmp = tempfile.mkstemp(prefix=".state-", suffix=".json", dir=directory)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(state, f, indent=2)
        os.replace(tmp, path)
    except OSError as e:
        raise StorageError(f"could not write {path}: {e}") from e


def load_state(path: str) -> Optional[Dict[str, Any]]:
    if not os.path.exists(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise StorageError(f"could not read {path}: {e}") from e
