from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Final

from link_previews.core.storage import PersistentStore

logger = logging.getLogger(__name__)


FAVICON_CACHE_KEY = "favicon-cache"
EXPIRATION_MS = 30 * 24 * 60 * 60 * 1000
SAVE_DEBOUNCE_SECONDS = 1.0


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


# Returned by FaviconCache.get for origins that were never looked up.
# ``None`` is a real value there: "this origin has no favicon".
MISSING: Final = _Missing()


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class FaviconCacheStats:
    entries: int
    oldest_timestamp: int | None


def _valid_entry(entry: Any) -> dict[str, Any] | None:
    if not isinstance(entry, dict):
        return None
    url = entry.get("url")
    ts = entry.get("timestamp")
    if not isinstance(url, str) or not url:
        return None
    if isinstance(ts, bool) or not isinstance(ts, (int, float)) or not math.isfinite(ts):
        return None
    return {"url": url, "timestamp": int(ts)}


class FaviconCache:
    """Origin -> favicon URL, kept in a hot in-memory tier and a persisted tier.

    Known-absent (``None``) results live only in the hot tier. Persisted
    entries expire after 30 days and are written back in one debounced batch,
    merged into whatever else the shared store holds.
    """

    def __init__(
        self,
        store: PersistentStore,
        *,
        clock: Callable[[], int] = _now_ms,
        debounce_seconds: float = SAVE_DEBOUNCE_SECONDS,
        expiration_ms: int = EXPIRATION_MS,
    ) -> None:
        self._store = store
        self._clock = clock
        self._debounce = debounce_seconds
        self._expiration_ms = expiration_ms
        self._memory: dict[str, str | None] = {}
        self._disk: dict[str, dict[str, Any]] = {}
        self._dirty = False
        self._version = 0
        self._save_handle: asyncio.TimerHandle | None = None
        self._flush_task: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._disk)

    def __contains__(self, origin: object) -> bool:
        return isinstance(origin, str) and self.has(origin)

    async def load(self) -> None:
        try:
            data = await self._store.load()
        except Exception as e:
            logger.warning("Failed to load favicon cache: %s", e)
            self._disk = {}
            return

        raw = data.get(FAVICON_CACHE_KEY) if isinstance(data, dict) else None
        disk: dict[str, dict[str, Any]] = {}
        if isinstance(raw, dict):
            for origin, entry in raw.items():
                valid = _valid_entry(entry)
                if isinstance(origin, str) and valid:
                    disk[origin] = valid
        self._disk = disk
        removed = self._purge_expired()
        logger.debug("Loaded %d favicon cache entries (%d expired)", len(self._disk), removed)

    def _expired(self, entry: dict[str, Any]) -> bool:
        return self._clock() - int(entry["timestamp"]) >= self._expiration_ms

    def _purge_expired(self) -> int:
        stale = [origin for origin, entry in self._disk.items() if self._expired(entry)]
        for origin in stale:
            del self._disk[origin]
            self._memory.pop(origin, None)
        if stale:
            self._mark_dirty()
        return len(stale)

    def get(self, origin: str) -> str | None | _Missing:
        """Return the favicon URL, ``None`` (known absent) or :data:`MISSING`."""

        entry = self._disk.get(origin)
        if entry is not None and self._expired(entry):
            del self._disk[origin]
            self._memory.pop(origin, None)
            self._mark_dirty()
            return MISSING

        if origin in self._memory:
            return self._memory[origin]

        if entry is not None:
            self._memory[origin] = entry["url"]
            return entry["url"]
        return MISSING

    def has(self, origin: str) -> bool:
        return self.get(origin) is not MISSING

    def set(self, origin: str, favicon_url: str | None) -> None:
        self._memory[origin] = favicon_url
        if favicon_url:
            self._disk[origin] = {"url": favicon_url, "timestamp": self._clock()}
            self._mark_dirty()
        elif origin in self._disk:
            del self._disk[origin]
            self._mark_dirty()

    def clear(self) -> None:
        self._memory.clear()
        self._disk.clear()
        self._mark_dirty()

    def stats(self) -> FaviconCacheStats:
        timestamps = [int(e["timestamp"]) for e in self._disk.values()]
        return FaviconCacheStats(entries=len(timestamps), oldest_timestamp=min(timestamps) if timestamps else None)

    def _mark_dirty(self) -> None:
        self._dirty = True
        self._version += 1
        self._schedule_save()

    def _schedule_save(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the owner is expected to call flush() explicitly.
            return
        if self._save_handle is not None:
            self._save_handle.cancel()
        self._save_handle = loop.call_later(self._debounce, self._on_save_timer)

    def _on_save_timer(self) -> None:
        self._save_handle = None
        self._flush_task = asyncio.get_running_loop().create_task(self.flush())

    async def flush(self) -> None:
        if self._save_handle is not None:
            self._save_handle.cancel()
            self._save_handle = None
        if not self._dirty:
            return

        version = self._version
        snapshot = {origin: dict(entry) for origin, entry in self._disk.items()}
        try:
            data = await self._store.load()
            merged = dict(data) if isinstance(data, dict) else {}
            merged[FAVICON_CACHE_KEY] = snapshot
            await self._store.save(merged)
        except Exception as e:
            logger.warning("Failed to save favicon cache: %s", e)
            return
        if self._version == version:
            self._dirty = False

    async def aclose(self) -> None:
        await self.flush()
        if self._flush_task is not None and not self._flush_task.done():
            await self._flush_task
