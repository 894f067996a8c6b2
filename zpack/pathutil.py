from __future__ import annotations

import os
from typing import Iterable, Iterator, Set


def default_entry_name(fs_path: str) -> str:
    """Entry name for a file added without an explicit one: its upper-cased base name."""
    return os.path.basename(os.fspath(fs_path)).upper()


def safe_file_name(name: str) -> str:
    """Map an entry name to a single path component for extraction.

    Rules:
    - Convert slashes and backslashes to underscores
    - Reject empty names, '.' and '..'
    """
    out = name.replace("\\", "_").replace("/", "_")
    if out in ("", ".", ".."):
        raise ValueError(f"Entry name {name!r} cannot be used as a file name")
    return out


def dedupe_names(names: Iterable[str], reserved: Iterable[str] = ()) -> Iterator[str]:
    """Yield one distinct, extraction-safe file name per entry name, in order.

    Each name goes through :func:`safe_file_name` first. A name that is still
    free keeps its form; otherwise it becomes ``stem (n).ext`` with the
    smallest ``n`` not yet handed out. Names are compared case-insensitively
    so the result also holds on case-folding filesystems. Names in
    ``reserved`` are never handed out.
    """
    taken: Set[str] = {r.casefold() for r in reserved}
    for name in names:
        candidate = safe_file_name(name)
        if candidate.casefold() in taken:
            root, ext = os.path.splitext(candidate)
            n = 1
            while f"{root} ({n}){ext}".casefold() in taken:
                n += 1
            candidate = f"{root} ({n}){ext}"
        taken.add(candidate.casefold())
        yield candidate
