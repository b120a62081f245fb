"""JSON input and output helpers for the catalog tool."""
from __future__ import annotations

import json
import os
import shutil
import tempfile
from typing import Any

from .errors import InvalidInputLocationError, MalformedRecordError

__all__ = [
    "read_json",
    "write_json",
]


def read_json(path: str) -> Any:
    if not os.path.isfile(path):
        raise InvalidInputLocationError(f"{path} is not a file.", path=str(path))
    try:
        with open(path, "r", encoding="utf-8") as input_file:
            return json.load(input_file)
    except ValueError as exc:
        raise MalformedRecordError(f"Invalid JSON content: {exc}", source=str(path)) from exc


def write_json(path: str, data: Any) -> None:
    """Write *data* as pretty printed JSON, replacing *path* atomically.

    Key order is preserved as built by the caller.
    """

    target_dir = os.path.dirname(os.path.abspath(path))
    os.makedirs(target_dir, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", dir=target_dir, delete=False
    ) as temp_file:
        json.dump(data, temp_file, indent=2)
        temp_file.write("\n")
        temp_path = temp_file.name

    try:
        shutil.move(temp_path, path)
    except Exception:
        try:
            os.remove(temp_path)
        except OSError:
            pass
        raise
