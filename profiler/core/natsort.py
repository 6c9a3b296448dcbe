from __future__ import annotations

import re
from typing import Iterable

_CHUNKS = re.compile(r"([0-9]+)")


def natural_key(value: str) -> tuple[tuple[tuple[int, int | str], ...], str]:
    """Sort key comparing embedded digit runs by numeric value.

    Digit runs sort before text at the same position; ties fall back to the
    full string so distinct values never compare equal.
    """

    parts: list[tuple[int, int | str]] = []
    for chunk in _CHUNKS.split(value):
        if not chunk:
            continue
        if chunk.isascii() and chunk.isdigit():
            parts.append((0, int(chunk)))
        else:
            parts.append((1, chunk))
    return tuple(parts), value


def natural_sorted(values: Iterable[str], *, reverse: bool = False) -> list[str]:
    return sorted(values, key=natural_key, reverse=reverse)
