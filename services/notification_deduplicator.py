"""
Owner notifications with time-windowed deduplication.

Policy:
- Before delivering, look for a notification about the same subject created
  in the last W minutes: same (type, entity_type, entity_id), or, for sales,
  any notification about the sale id.
- If one exists, skip (success) and prune: inside the window keep only each
  recipient's most recent row for the (entity_type, entity_id) pair.
- Otherwise deliver through the `notify_owners` RPC. If the RPC fails, resolve
  the owners and insert one row per owner in batches, retrying only the
  batches that failed (linear backoff).

Every row carries a dedup_key bucketed by the window, so the storage unique
index rejects a duplicate that slips through the read-then-write check; such a
rejection counts as a skip.

`notify` never raises: notification trouble must not fail a sale operation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence
from uuid import UUID

from domain.errors import SalesEngineError, StorageError
from domain.notification import Notification, dedup_key
from domain.time import utc_now
from repositories.notification_repository import NotificationRepository
from repositories.user_repository import UserRepository
from services.retry import SleepFn, backoff_delay

logger = logging.getLogger(__name__)

SALE_ENTITY = "sale"


class NotifyOutcome(str, Enum):
    DELIVERED = "delivered"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class NotifyResult:
    outcome: NotifyOutcome
    via: Optional[str] = None  # "rpc" or "fallback"
    delivered: int = 0
    pruned: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome != NotifyOutcome.FAILED


class NotificationDeduplicator:
    def __init__(
        self,
        notifications: NotificationRepository,
        users: UserRepository,
        *,
        window_minutes: int = 30,
        batch_size: int = 50,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        sleep: Optional[SleepFn] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._notifications = notifications
        self._users = users
        self._window = timedelta(minutes=window_minutes)
        self._window_minutes = window_minutes
        self._batch_size = max(batch_size, 1)
        self._max_attempts = max(max_attempts, 1)
        self._retry_delay = retry_delay
        self._sleep = sleep or asyncio.sleep
        self._clock = clock

    async def find_duplicates(
        self,
        type_: str,
        entity_type: Optional[str],
        entity_id: Optional[str],
        now: Optional[datetime] = None,
    ) -> List[Notification]:
        """Notifications inside the window that make a new one redundant."""

        since = (now or self._clock()) - self._window
        # Any notification about a sale within the window counts.
        type_filter = None if entity_type == SALE_ENTITY else type_
        return await self._notifications.find_recent(entity_type, entity_id, since, type_filter)

    async def notify(
        self,
        type_: str,
        title: str,
        message: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> NotifyResult:
        now = self._clock()
        subject_id = str(entity_id) if entity_id is not None else None

        try:
            existing = await self.find_duplicates(type_, entity_type, subject_id, now)
        except SalesEngineError as exc:
            # Deliver anyway; the dedup_key index still guards against duplicates.
            logger.warning(
                f"Dedup check failed for {type_} {entity_type}:{subject_id}; delivering anyway",
                extra={"type": type_, "error": str(exc)},
            )
            existing = []

        if existing:
            pruned = await self._prune(entity_type, subject_id, now)
            logger.warning(
                f"Skipping duplicate notification {type_} for {entity_type}:{subject_id}",
                extra={"type": type_, "entity_id": subject_id, "pruned": pruned},
            )
            return NotifyResult(NotifyOutcome.SKIPPED, pruned=pruned)

        key = dedup_key(type_, entity_type, subject_id, now, self._window_minutes)

        try:
            if await self._notifications.notify_owners(
                type_, title, message, entity_type, subject_id, metadata, key
            ):
                logger.info(f"Notified owners: {type_} {entity_type}:{subject_id}", extra={"type": type_})
                return NotifyResult(NotifyOutcome.DELIVERED, via="rpc")
            logger.warning("notify_owners returned false, using fallback", extra={"type": type_})
        except StorageError as exc:
            if exc.is_unique_violation:
                return NotifyResult(NotifyOutcome.SKIPPED, via="rpc")
            logger.warning(f"notify_owners failed, using fallback: {exc}", extra={"type": type_})
        except SalesEngineError as exc:
            logger.warning(f"notify_owners failed, using fallback: {exc}", extra={"type": type_})

        return await self._deliver_fallback(
            type_, title, message, entity_type, subject_id, dict(metadata or {}), key, now
        )

    async def _deliver_fallback(
        self,
        type_: str,
        title: str,
        message: str,
        entity_type: Optional[str],
        entity_id: Optional[str],
        metadata: Dict[str, Any],
        key: str,
        now: datetime,
    ) -> NotifyResult:
        owners: Optional[List[UUID]] = None
        pending: List[List[Notification]] = []
        delivered = 0

        for attempt in range(1, self._max_attempts + 1):
            try:
                if owners is None:
                    owners = await self._users.list_owner_ids()
                    if not owners:
                        logger.warning("No owners to notify", extra={"type": type_})
                        return NotifyResult(NotifyOutcome.DELIVERED, via="fallback")
                    rows = [
                        Notification(
                            type=type_,
                            title=title,
                            message=message,
                            entity_type=entity_type,
                            entity_id=entity_id,
                            created_at=now,
                            user_id=owner_id,
                            metadata=metadata,
                            dedup_key=key,
                        )
                        for owner_id in owners
                    ]
                    pending = _batches(rows, self._batch_size)
            except SalesEngineError as exc:
                logger.error(
                    f"Attempt {attempt}/{self._max_attempts}: failed to resolve owners: {exc}",
                    extra={"attempt": attempt},
                )
            else:
                failed: List[List[Notification]] = []
                for batch in pending:
                    try:
                        await self._notifications.insert_many(batch)
                        delivered += len(batch)
                    except StorageError as exc:
                        if exc.is_unique_violation:
                            logger.warning(
                                "Notification batch already delivered in this window",
                                extra={"type": type_, "dedup_key": key},
                            )
                            continue
                        failed.append(batch)
                    except SalesEngineError:
                        failed.append(batch)

                if not failed:
                    return NotifyResult(NotifyOutcome.DELIVERED, via="fallback", delivered=delivered)

                logger.error(
                    f"Attempt {attempt}/{self._max_attempts}: {len(failed)} notification batch(es) failed",
                    extra={"attempt": attempt, "failed_batches": len(failed)},
                )
                pending = failed

            if attempt < self._max_attempts:
                await self._sleep(backoff_delay(attempt, self._retry_delay, "linear"))

        logger.error(
            f"Giving up on notification {type_} for {entity_type}:{entity_id}",
            extra={"type": type_, "delivered": delivered},
        )
        return NotifyResult(NotifyOutcome.FAILED, via="fallback", delivered=delivered)

    async def _prune(self, entity_type: Optional[str], entity_id: Optional[str], now: datetime) -> int:
        """Keep each recipient's newest row for the subject inside the window; delete the rest."""

        try:
            recent = await self._notifications.find_recent(entity_type, entity_id, now - self._window)
            seen = set()
            stale: List[UUID] = []
            for notification in recent:  # newest first
                if notification.user_id in seen:
                    if notification.notification_id is not None:
                        stale.append(notification.notification_id)
                    continue
                seen.add(notification.user_id)
            if not stale:
                return 0
            return await self._notifications.delete_ids(stale)
        except SalesEngineError as exc:
            logger.warning(f"Failed to prune duplicate notifications: {exc}")
            return 0


def _batches(rows: Sequence[Notification], size: int) -> List[List[Notification]]:
    return [list(rows[i:i + size]) for i in range(0, len(rows), size)]


__all__ = ["NotificationDeduplicator", "NotifyOutcome", "NotifyResult"]
