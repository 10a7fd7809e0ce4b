"""Caches for schemas: an in-memory store of parsed schemas and an on-disk store of raw downloads."""

from __future__ import annotations

import hashlib
import os
import threading
from pathlib import Path
from typing import Any


class CacheMissError(LookupError):
    """Raised when a key is not present in a cache."""


class InMemoryCache:
    """Thread-safe cache of parsed schemas, so each schema is only compiled once."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._schemas: dict[str, Any] = {}

    def get(self, key: str) -> Any:
        """Return the schema stored under ``key``."""
        with self._lock:
            try:
                return self._schemas[key]
            except KeyError:
                raise CacheMissError("schema not found in in-memory cache") from None

    def set(self, key: str, schema: Any) -> None:
        """Store ``schema`` under ``key``."""
        with self._lock:
            self._schemas[key] = schema


def cache_path(folder: str | os.PathLike, key: str) -> str:
    """Return the file in ``folder`` holding the entry for ``key``."""
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
    return os.path.join(os.fspath(folder), digest)


class OnDiskCache:
    """Cache of downloaded schema bytes, one file per key in a folder."""

    def __init__(self, folder: str | os.PathLike) -> None:
        self.folder = os.fspath(folder)
        self._lock = threading.RLock()

    def get(self, key: str) -> bytes:
        """Return the bytes stored for ``key``."""
        with self._lock:
            try:
                return Path(cache_path(self.folder, key)).read_bytes()
            except OSError as err:
                raise CacheMissError(str(err)) from err

    def set(self, key: str, schema: bytes) -> None:
        """Write ``schema`` for ``key`` unless an entry already exists."""
        with self._lock:
            target = Path(cache_path(self.folder, key))
            if not target.exists():
                target.write_bytes(schema)