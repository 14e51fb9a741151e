"""Small helpers for reading nested config dicts and resolving globs."""

from __future__ import annotations

import fnmatch
import os
from pathlib import Path
from typing import Dict, Iterable, List


_GLOB_CHARS = "*?["


def _get(d: Dict, *keys, default=None):
    cur = d
    for k in keys:
        if not isinstance(cur, dict):
            return default
        cur = cur.get(k)
        if cur is None:
            return default
    return cur


def as_list(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (str, os.PathLike)):
        return [str(value)]
    return [str(v) for v in value]


def is_glob(pattern: str) -> bool:
    return any(ch in pattern for ch in _GLOB_CHARS)


def glob_base(pattern: str) -> str:
    """Literal directory prefix of a glob, e.g. ``src/assets/img`` for
    ``src/assets/img/**/*.png``. A pattern without wildcards yields its parent."""
    parts = pattern.replace("\\", "/").split("/")
    base: list[str] = []
    for part in parts:
        if is_glob(part):
            break
        base.append(part)
    else:
        base = base[:-1]
    base = [p for p in base if p]
    return "/".join(base) if base else "."


def _match_parts(path: list[str], pat: list[str]) -> bool:
    if not pat:
        return not path
    head, rest = pat[0], pat[1:]
    if head == "**":
        # zero or more directory segments
        return any(_match_parts(path[i:], rest) for i in range(len(path) + 1))
    if not path:
        return False
    return fnmatch.fnmatchcase(path[0], head) and _match_parts(path[1:], rest)


def glob_match(path: str, pattern: str) -> bool:
    """Match a relative posix path against a glob where ``*`` stays within one
    segment and ``**`` spans any number of them."""
    path = path.replace(os.sep, "/").strip("/")
    return _match_parts(path.split("/"), pattern.strip("/").split("/"))


def matches(path: str, patterns: Iterable[str]) -> bool:
    return any(glob_match(path, pat) for pat in patterns)


def expand_globs(patterns: Iterable[str], root: Path) -> list[tuple[Path, Path]]:
    """Resolve patterns below ``root`` into ``(file, base)`` pairs.

    Resolution is fresh on every call. Files matched by several patterns are
    returned once, in first-match order.
    """
    seen: set[Path] = set()
    out: list[tuple[Path, Path]] = []
    for pat in patterns:
        base = root / glob_base(pat)
        if not is_glob(pat):
            p = root / pat
            if p.is_file() and p not in seen:
                seen.add(p)
                out.append((p, base))
            continue
        if not base.is_dir():
            continue
        for dirpath, dirnames, files in os.walk(base):
            dirnames.sort()
            for name in sorted(files):
                p = Path(dirpath) / name
                if p in seen or not glob_match(p.relative_to(root).as_posix(), pat):
                    continue
                seen.add(p)
                out.append((p, base))
    return out
