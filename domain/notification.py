"""
Domain: Owner notifications.

No two notifications with the same (type, entity_type, entity_id) should be
created inside the dedup window. That rule is a policy of the notification
deduplicator, backed by `dedup_key` where the storage layer enforces it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from .time import require_utc_timestamp


class NotificationType:
    SALE_CREATED = "sale_created"
    SALE_CONFIRMED = "sale_confirmed"
    SALE_CANCELLED = "sale_cancelled"
    SALE_REVERTED = "sale_reverted"
    PROMISE_PAYMENT_RECEIVED = "promise_payment_received"
    INSTALLMENT_DUE = "installment_due"


@dataclass(frozen=True, slots=True)
class Notification:
    type: str
    title: str
    message: str
    entity_type: Optional[str]
    entity_id: Optional[str]
    created_at: datetime
    read: bool = False
    notification_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    dedup_key: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)


def dedup_key(
    type_: str,
    entity_type: Optional[str],
    entity_id: Optional[str],
    at: datetime,
    window_minutes: int,
) -> str:
    """
    Key for a storage-level uniqueness constraint.

    The time bucket is floor(epoch minutes / window), so two notifications for
    the same subject inside one bucket collide.
    """

    require_utc_timestamp("at", at)
    epoch_minutes = int(at.astimezone(timezone.utc).timestamp() // 60)
    bucket = epoch_minutes // max(window_minutes, 1)
    return f"{type_}:{entity_type or '-'}:{entity_id or '-'}:{bucket}"
