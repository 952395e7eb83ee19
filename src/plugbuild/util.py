"""Small formatting and path helpers used by build reports."""

from __future__ import annotations

import base64
import json
import math
import os
from typing import Any, Iterable, TypeVar

T = TypeVar("T")

_SOURCE_MAP_DATA_URL = "//#sourceMappingURL=data:application/json;base64,"


def _round_up(n: float) -> str:
    """Round *n* up to one decimal and drop a trailing ``.0``."""
    value = math.ceil(n * 10) / 10
    if value == int(value):
        return str(int(value))
    return str(value)


def fmt_byte_size(size: int) -> str:
    """Return a human-readable size for *size* bytes (``"512 B"``, ``"1.3 kB"``)."""
    if size <= 1000:
        return f"{size} B"
    if size < 1000 * 1024:
        return f"{_round_up(size / 1024)} kB"
    if size < 1000 * 1024 * 1024:
        return f"{_round_up(size / (1024 * 1024))} MB"
    return f"{_round_up(size / (1024 * 1024 * 1024))} GB"


def fmt_duration(milliseconds: float) -> str:
    """Return a human-readable duration (``"850ms"``, ``"1.3s"``, ``"2min"``)."""
    if milliseconds < 1000:
        return f"{int(round(milliseconds))}ms"
    if milliseconds < 1000 * 60:
        return f"{_round_up(milliseconds / 1000)}s"
    if milliseconds < 1000 * 60 * 60:
        return f"{_round_up(milliseconds / (1000 * 60))}min"
    return f"{_round_up(milliseconds / (1000 * 60 * 60))}hr"


def utf8_size(text: str) -> int:
    """Return the number of bytes needed to store *text* as UTF-8."""
    return len(text.encode("utf-8"))


def rpath(path: str | os.PathLike[str]) -> str:
    """Return *path* relative to the working directory, or ``"."`` for the cwd itself."""
    try:
        return os.path.relpath(path) or "."
    except ValueError:
        # Different drive on Windows.
        return os.fspath(path)


def inline_source_map(map_json: str) -> str:
    """Return a ``sourceMappingURL`` comment embedding *map_json* as a data URL."""
    encoded = base64.b64encode(map_json.encode("utf-8")).decode("ascii")
    return _SOURCE_MAP_DATA_URL + encoded + "\n"


def jsonfmt(value: Any) -> str:
    """Format *value* as indented JSON, keeping key order."""
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def unique(values: Iterable[T]) -> list[T]:
    """Return *values* without duplicates, preserving first-seen order."""
    return list(dict.fromkeys(values))
