"""Key-value stores used for conversation persistence.

Both backends store opaque strings under string keys and honor an optional
``expiration_ttl`` in seconds: an expired key reads back as missing.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import tempfile
import time
from pathlib import Path
from typing import TYPE_CHECKING, Literal, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class KVStore(Protocol):
    """Minimal async key-value interface."""

    async def get(self, key: str) -> str | None:
        """Return the value stored under ``key`` or None."""

    async def put(self, key: str, value: str, *, expiration_ttl: int | None = None) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    async def delete(self, key: str) -> None:
        """Remove ``key``; a missing key is not an error."""


class MemoryKVStore:
    """Process-local store, mainly for development and tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def put(self, key: str, value: str, *, expiration_ttl: int | None = None) -> None:
        expires_at = self._clock() + expiration_ttl if expiration_ttl is not None else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


def _safe_identifier(value: str) -> str:
    """File safe token preserving readability."""
    safe = "".join(ch if ch.isalnum() or ch in "-._" else "_" for ch in value)
    return safe or "entry"


class FileKVStore:
    """One JSON file per key under a root directory.

    Each file holds ``{"key", "value", "expires_at"}`` where ``expires_at`` is
    a Unix timestamp or null. Writes go through a temporary file and an atomic
    rename so readers never see a partial record.
    """

    def __init__(self, root: Path, clock: Callable[[], float] = time.time) -> None:
        self.root = root
        self._clock = clock
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:12]
        return self.root / f"{_safe_identifier(key)[:80]}-{digest}.json"

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._get_sync, key)

    async def put(self, key: str, value: str, *, expiration_ttl: int | None = None) -> None:
        await asyncio.to_thread(self._put_sync, key, value, expiration_ttl)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete_sync, key)

    def _get_sync(self, key: str) -> str | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        record = json.loads(path.read_text(encoding="utf-8"))
        expires_at = record.get("expires_at")
        if expires_at is not None and self._clock() >= expires_at:
            LOGGER.debug("Key %s expired, removing %s", key, path)
            path.unlink(missing_ok=True)
            return None
        return record["value"]

    def _put_sync(self, key: str, value: str, expiration_ttl: int | None) -> None:
        path = self.path_for(key)
        expires_at = self._clock() + expiration_ttl if expiration_ttl is not None else None
        record = {"key": key, "value": value, "expires_at": expires_at}
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self.root,
            prefix=f"{path.stem}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            json.dump(record, tmp, ensure_ascii=False)
        Path(tmp.name).replace(path)

    def _delete_sync(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)

    def purge_expired(self) -> int:
        """Remove every expired record and return how many were removed."""
        removed = 0
        now = self._clock()
        for path in self.root.glob("*.json"):
            try:
                expires_at = json.loads(path.read_text(encoding="utf-8")).get("expires_at")
            except (OSError, ValueError):
                LOGGER.warning("Unreadable record %s", path)
                continue
            if expires_at is not None and now >= expires_at:
                path.unlink(missing_ok=True)
                removed += 1
        return removed


def create_kv_store(backend: Literal["memory", "file"], path: Path | None = None) -> KVStore:
    """Build the configured store backend."""
    if backend == "file":
        if path is None:
            msg = "The file store needs a directory path"
            raise ValueError(msg)
        return FileKVStore(path)
    return MemoryKVStore()
