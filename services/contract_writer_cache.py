"""
Contract writer cache.

An explicit object owned by whoever builds the services (one per app, or one
per request), never module-level state. Entries expire after `ttl_seconds`;
concurrent callers share one in-flight load.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, List, Optional
from uuid import UUID

from domain.contract_writer import ContractWriter
from repositories.contract_writer_repository import ContractWriterRepository


class ContractWriterCache:
    def __init__(
        self,
        repository: ContractWriterRepository,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._repository = repository
        self._ttl = ttl_seconds
        self._clock = clock
        self._writers: Optional[List[ContractWriter]] = None
        self._loaded_at = 0.0
        self._inflight: Optional[asyncio.Future] = None

    def cached(self) -> Optional[List[ContractWriter]]:
        """The cached list if still fresh, without loading."""

        if self._writers is not None and self._clock() - self._loaded_at < self._ttl:
            return self._writers
        return None

    async def get_all(self) -> List[ContractWriter]:
        fresh = self.cached()
        if fresh is not None:
            return fresh

        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._load())
        inflight = self._inflight
        try:
            return await asyncio.shield(inflight)
        finally:
            if self._inflight is inflight and inflight.done():
                self._inflight = None

    async def get(self, writer_id: UUID) -> Optional[ContractWriter]:
        writers = await self.get_all()
        return next((writer for writer in writers if writer.writer_id == writer_id), None)

    def invalidate(self) -> None:
        self._writers = None
        self._loaded_at = 0.0

    async def _load(self) -> List[ContractWriter]:
        writers = await self._repository.list_all()
        self._writers = writers
        self._loaded_at = self._clock()
        return writers


__all__ = ["ContractWriterCache"]
