"""
Superseding loader.

`load(key, factory)` starts a new load for `key` and cancels the load already
in flight for the same key. The caller of the superseded load gets:

- the result, if its load had already finished (completed work is kept);
- LoadSupersededError otherwise.

Used by the batch availability endpoint so a newer query from the same screen
replaces an older one that is still running.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LoadSupersededError(Exception):
    """Raised to the caller of a load that a newer load for the same key replaced."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Load {key!r} was superseded by a newer request")


class SupersedingLoader:
    def __init__(self) -> None:
        self._inflight: Dict[str, asyncio.Task] = {}

    def in_flight(self, key: str) -> bool:
        task = self._inflight.get(key)
        return task is not None and not task.done()

    async def load(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        previous = self._inflight.get(key)
        if previous is not None and not previous.done():
            logger.info(f"Superseding in-flight load {key!r}", extra={"load_key": key})
            previous.cancel()

        task: asyncio.Task[Any] = asyncio.ensure_future(factory())
        self._inflight[key] = task
        try:
            return await task
        except asyncio.CancelledError:
            if self._inflight.get(key) is task:
                # Our own caller was cancelled, not superseded.
                raise
            if task.done() and not task.cancelled():
                return task.result()
            raise LoadSupersededError(key) from None
        finally:
            if self._inflight.get(key) is task:
                del self._inflight[key]


__all__ = ["LoadSupersededError", "SupersedingLoader"]
