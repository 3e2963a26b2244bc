"""In-process TTL cache for catalog data (box prices, BGN rate).

One instance lives on ``app.state`` and is handed to request handlers through
``get_catalog_cache``; jobs and tests build their own.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any

from fastapi import Request

logger = logging.getLogger(__name__)


class TTLCache:
    """Key/value cache with per-entry expiry and in-flight load de-duplication.

    Concurrent misses for the same key share a single loader task, so a cold
    cache under load hits the database once per key.
    """

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None when missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (value, self._clock() + self.ttl_seconds)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
        self._inflight.clear()

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value for key, calling loader once on a miss.

        Every caller waits on the shared task through ``asyncio.shield``, so a
        cancelled caller never cancels the load for the others.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(loader())
            self._inflight[key] = task
            task.add_done_callback(partial(self._finish_load, key))
        return await asyncio.shield(task)

    def _finish_load(self, key: str, task: asyncio.Future) -> None:
        if self._inflight.get(key) is not task:
            # Cleared while loading
            return
        del self._inflight[key]
        if task.cancelled() or task.exception() is not None:
            return
        self.set(key, task.result())
        logger.debug(f"Catalog cache loaded '{key}'")

    def __len__(self) -> int:
        return len(self._entries)


def get_catalog_cache(request: Request) -> TTLCache:
    """FastAPI dependency: the app-wide catalog cache."""
    return request.app.state.catalog_cache
