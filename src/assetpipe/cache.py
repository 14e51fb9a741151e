from __future__ import annotations

import hashlib
import json
import os
import shutil
import tempfile
from pathlib import Path


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def compute_key(data: bytes, options: dict) -> str:
    """Cache key for a transform of ``data`` under ``options``."""
    payload = {
        "content": sha256_bytes(data),
        "options": options,
    }
    return sha256_bytes(json.dumps(payload, sort_keys=True).encode("utf-8"))


def atomic_write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class ContentCache:
    """Content-addressed store persisted across runs.

    Entries are never expired; a changed input produces a different key.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _entry(self, key: str) -> Path:
        return self.directory / key[:2] / key

    def get(self, key: str) -> bytes | None:
        p = self._entry(key)
        try:
            return p.read_bytes()
        except FileNotFoundError:
            return None

    def put(self, key: str, data: bytes) -> None:
        atomic_write(self._entry(key), data)

    def clear(self) -> int:
        if not self.directory.exists():
            return 0
        count = sum(1 for p in self.directory.rglob("*") if p.is_file())
        shutil.rmtree(self.directory)
        return count
