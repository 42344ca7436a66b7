"""
Small helpers shared by the repositories, generators and CLI.

Functions:
    to_snake_case: Normalize a category or ID into a directory/file stem
    atomic_write_text: Write a file via temp-file-then-rename
    strip_none: Drop ``None`` values recursively (TOML has no null)

Example:
    >>> to_snake_case("User Management")
    'user_management'
    >>> to_snake_case("UC-SEC-001")
    'uc_sec_001'
"""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path
from typing import Any

from mucm.errors import PersistenceError

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]+")


def to_snake_case(value: str) -> str:
    """Convert free text, kebab-case or CamelCase into snake_case."""
    text = _CAMEL_BOUNDARY.sub("_", value.strip())
    text = _NON_ALNUM.sub("_", text)
    return text.strip("_").lower()


def atomic_write_text(path: Path, content: str) -> Path:
    """Write ``content`` to ``path`` so readers never observe a partial file.

    The data goes to a temporary file in the same directory which is then
    renamed over the target.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(content)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    except OSError as exc:
        raise PersistenceError(f"Failed to write {path}: {exc}") from exc
    return path


def strip_none(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: strip_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [strip_none(v) for v in value if v is not None]
    return value
