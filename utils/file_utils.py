"""
Small file helpers shared by the checkpoint store and the JSON data store
"""
import json
import os
import tempfile
from typing import Any


def atomic_write_json(path: str, data: Any):
    """
    Write JSON to `path` so readers never see a half-written file

    The payload goes to a temporary file in the same directory first and is
    then moved over the target with os.replace, which is atomic on POSIX and
    Windows.

    Args:
        path: Destination file
        data: JSON-serialisable payload (datetimes are written with str())
    """
    directory = os.path.dirname(path) or '.'
    os.makedirs(directory, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(prefix='.tmp_', suffix='.json', dir=directory)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except BaseException:
        if os.path.exists(temp_path):
            os.remove(temp_path)
        raise


def read_json(path: str, default: Any = None) -> Any:
    """Read a JSON file, returning `default` when it does not exist"""
    if not os.path.exists(path):
        return default
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)
