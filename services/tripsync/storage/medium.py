"""
Storage media behind the Durable Local Store.

A medium is a flat key -> text store with an optional byte quota. It raises
``QuotaExceeded`` when a write would not fit and ``OSError`` (or returns False
from ``available()``) when the medium itself cannot be reached. Everything
above the medium (namespacing, upserts, eviction) lives in DurableLocalStore.

Media:
  MemoryMedium -- in-process dict; tests and ephemeral sessions
  FileMedium   -- one JSON document per key under a directory
  RedisMedium  -- a local Redis instance (redis.asyncio compatible client);
                  "OOM command not allowed" responses map to QuotaExceeded
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Protocol

from services.tripsync.errors import QuotaExceeded

logger = logging.getLogger(__name__)

_SAFE_KEY_RE = re.compile(r"[^A-Za-z0-9_.-]+")


class StorageMedium(Protocol):
    """Async key -> text persistence with quota reporting."""

    async def available(self) -> bool:
        ...

    async def read(self, key: str) -> str | None:
        ...

    async def write(self, key: str, value: str) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def usage(self) -> int:
        ...


def _size(key: str, value: str) -> int:
    return len(key.encode()) + len(value.encode())


class MemoryMedium:
    """Dict-backed medium. ``quota_bytes=None`` means unlimited."""

    def __init__(self, quota_bytes: int | None = None) -> None:
        self._quota = quota_bytes
        self._data: dict[str, str] = {}
        self.online = True

    async def available(self) -> bool:
        return self.online

    async def read(self, key: str) -> str | None:
        if not self.online:
            raise OSError("memory medium offline")
        return self._data.get(key)

    async def write(self, key: str, value: str) -> None:
        if not self.online:
            raise OSError("memory medium offline")
        if self._quota is not None:
            projected = await self.usage() - self._entry_size(key) + _size(key, value)
            if projected > self._quota:
                raise QuotaExceeded(
                    f"write of {key!r} needs {projected} bytes, quota is {self._quota}"
                )
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def usage(self) -> int:
        return sum(_size(k, v) for k, v in self._data.items())

    def _entry_size(self, key: str) -> int:
        value = self._data.get(key)
        return 0 if value is None else _size(key, value)


class FileMedium:
    """
    Directory-backed medium: each key is stored as ``<dir>/<key>.json``.

    Writes go to a temp file and are renamed into place so a crash never
    leaves a half-written namespace behind.
    """

    def __init__(self, directory: str | os.PathLike[str], quota_bytes: int | None = None) -> None:
        self._dir = Path(directory).expanduser()
        self._quota = quota_bytes

    def _path(self, key: str) -> Path:
        return self._dir / f"{_SAFE_KEY_RE.sub('_', key)}.json"

    async def available(self) -> bool:
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            probe = self._dir / ".probe"
            probe.write_text("test", encoding="utf-8")
            probe.unlink()
            return True
        except OSError:
            return False

    async def read(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    async def write(self, key: str, value: str) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        if self._quota is not None:
            current = path.stat().st_size if path.exists() else 0
            projected = await self.usage() - current + len(value.encode())
            if projected > self._quota:
                raise QuotaExceeded(
                    f"write of {key!r} needs {projected} bytes, quota is {self._quota}"
                )
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    async def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass

    async def usage(self) -> int:
        if not self._dir.exists():
            return 0
        return sum(p.stat().st_size for p in self._dir.glob("*.json"))


class RedisMedium:
    """
    Medium backed by a local Redis.

    Usage:
        medium = RedisMedium(redis.asyncio.from_url(settings.local_redis_url))

    The quota is whatever ``maxmemory`` the Redis instance enforces; an OOM
    rejection surfaces as QuotaExceeded so the store can evict and retry.
    """

    def __init__(self, redis: Any) -> None:
        """
        Args:
            redis: An async Redis client (redis.asyncio compatible).
                   May be None -- the medium then reports itself unavailable.
        """
        self._redis = redis

    async def available(self) -> bool:
        if self._redis is None:
            return False
        try:
            await self._redis.ping()
            return True
        except Exception:
            logger.warning("local redis medium unreachable", exc_info=True)
            return False

    async def read(self, key: str) -> str | None:
        if self._redis is None:
            raise OSError("redis medium not configured")
        try:
            raw = await self._redis.get(key)
        except Exception as exc:
            raise OSError(f"redis read failed for {key!r}") from exc
        if raw is None:
            return None
        return raw.decode() if isinstance(raw, bytes) else raw

    async def write(self, key: str, value: str) -> None:
        if self._redis is None:
            raise OSError("redis medium not configured")
        try:
            await self._redis.set(key, value)
        except Exception as exc:
            if "OOM" in str(exc):
                raise QuotaExceeded(f"redis rejected write of {key!r}: {exc}") from exc
            raise OSError(f"redis write failed for {key!r}") from exc

    async def delete(self, key: str) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.delete(key)
        except Exception as exc:
            raise OSError(f"redis delete failed for {key!r}") from exc

    async def usage(self) -> int:
        if self._redis is None:
            return 0
        try:
            info = await self._redis.info("memory")
        except Exception:
            logger.warning("redis memory info unavailable", exc_info=True)
            return 0
        return int(info.get("used_memory", 0))

    async def aclose(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
