"""
Shared plumbing for the Supabase repositories.

Every query goes through `SupabaseRepository._execute`, which:
- turns network failures (httpx transport errors) into TransientStorageError
  and retries them up to the configured attempts;
- turns PostgREST errors into StorageError carrying the SQLSTATE code;
- returns the response rows (possibly empty).

Conditional updates go through `_execute_conditional` instead, which checks
whether a write whose response was lost already landed before resending it.

Repositories contain no business rules; they only read and write rows.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient  # type: ignore[import-not-found]

from domain.errors import StorageError, TransientStorageError
from services.retry import SleepFn, backoff_delay, retry_async

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class SupabaseRepository:
    """Base class holding the client and the retry settings."""

    table: str = ""

    def __init__(
        self,
        client: AsyncClient,
        *,
        retry_attempts: int = 2,
        retry_delay: float = 0.5,
        sleep: Optional[SleepFn] = None,
    ):
        self._client = client
        self._retry_attempts = max(retry_attempts, 1)
        self._retry_delay = retry_delay
        self._sleep = sleep

    def _query(self):
        return self._client.table(self.table)

    async def _execute(self, build: Callable[[], Any], action: str, *, retry: bool = True) -> List[Row]:
        """
        Execute the query produced by `build` and return its rows.

        `build` is called once per attempt so each retry sends a fresh request.
        Inserts pass retry=False: a retried insert could duplicate the row.
        """

        data = await self._run(build, action, retry=retry)
        return list(data or [])

    async def _execute_conditional(
        self,
        build: Callable[[], Any],
        action: str,
        applied: Callable[[], Awaitable[Optional[Row]]],
    ) -> List[Row]:
        """
        Execute a conditional update, resolving lost responses.

        A conditional update that reached the server matches zero rows when
        sent again, so it is never blindly retried. After a network failure
        `applied` re-reads the row and returns it if this call's write landed;
        otherwise the update is sent again.
        """

        do_sleep = self._sleep or asyncio.sleep

        for attempt in range(1, self._retry_attempts + 1):
            try:
                return await self._execute(build, action, retry=False)
            except TransientStorageError as exc:
                row = await applied()
                if row is not None:
                    logger.warning(
                        f"{self.table}: {action} response lost, write already applied",
                        extra={"attempt": attempt, "error": str(exc)},
                    )
                    return [row]
                if attempt >= self._retry_attempts:
                    raise
                await do_sleep(backoff_delay(attempt, self._retry_delay, "exponential"))

        raise AssertionError("unreachable")

    async def _call_rpc(self, function: str, params: dict[str, Any], action: str) -> Any:
        """Call a Postgres function through PostgREST and return its raw result."""

        return await self._run(lambda: self._client.rpc(function, params), action, retry=False)

    async def _run(self, build: Callable[[], Any], action: str, *, retry: bool) -> Any:
        async def run() -> Any:
            try:
                response = await build().execute()
            except (httpx.TransportError, httpx.TimeoutException) as exc:
                raise TransientStorageError(f"{self.table}: failed to {action}: {exc}") from exc
            except APIError as exc:
                raise StorageError(
                    f"{self.table}: failed to {action}: {exc.message}",
                    db_code=str(exc.code) if exc.code is not None else None,
                ) from exc

            error = getattr(response, "error", None)
            if error:
                raise StorageError(f"{self.table}: failed to {action}: {error}")

            return getattr(response, "data", None)

        return await retry_async(
            run,
            attempts=self._retry_attempts if retry else 1,
            base_delay=self._retry_delay,
            strategy="exponential",
            description=f"{self.table}: {action}",
            sleep=self._sleep,
        )


__all__ = ["Row", "SupabaseRepository"]
