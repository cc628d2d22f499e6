"""
Notification repository (persistence).

Provides the window query used by the deduplicator, batch inserts, deletes,
and the `notify_owners` RPC entrypoint. The `(user_id, dedup_key)` unique
index (see sql/engine_schema.sql) surfaces as a StorageError with SQLSTATE
23505 on insert.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
from uuid import UUID, uuid4

from domain.notification import Notification
from repositories.base import SupabaseRepository
from repositories.serialization import optional_uuid, parse_utc_datetime, to_iso_utc, uuid_str


def _row_to_notification(row: Mapping[str, Any]) -> Notification:
    return Notification(
        notification_id=optional_uuid(row.get("id")),
        user_id=optional_uuid(row.get("user_id")),
        type=str(row["type"]),
        title=str(row.get("title") or ""),
        message=str(row.get("message") or ""),
        entity_type=row.get("entity_type"),
        entity_id=row.get("entity_id"),
        created_at=parse_utc_datetime(row["created_at"]),
        read=bool(row.get("read", False)),
        metadata=dict(row.get("metadata") or {}),
        dedup_key=row.get("dedup_key"),
    )


def _notification_to_row(notification: Notification) -> Dict[str, Any]:
    return {
        "id": str(notification.notification_id or uuid4()),
        "user_id": uuid_str(notification.user_id),
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "entity_type": notification.entity_type,
        "entity_id": notification.entity_id,
        "read": notification.read,
        "created_at": to_iso_utc(notification.created_at, name="created_at"),
        "metadata": notification.metadata or None,
        "dedup_key": notification.dedup_key,
    }


class NotificationRepository(SupabaseRepository):
    table = "notifications"

    async def find_recent(
        self,
        entity_type: Optional[str],
        entity_id: Optional[str],
        since: datetime,
        type_: Optional[str] = None,
    ) -> List[Notification]:
        """
        Notifications about (entity_type, entity_id) created at or after `since`, newest first.

        When `type_` is None every notification type matches.
        """

        since_iso = to_iso_utc(since, name="since")

        def build():
            query = self._query().select("*").gte("created_at", since_iso)
            query = query.is_("entity_type", "null") if entity_type is None else query.eq("entity_type", entity_type)
            query = query.is_("entity_id", "null") if entity_id is None else query.eq("entity_id", entity_id)
            if type_ is not None:
                query = query.eq("type", type_)
            return query.order("created_at", desc=True)

        rows = await self._execute(build, "find recent notifications")
        return [_row_to_notification(row) for row in rows]

    async def insert_many(self, notifications: Sequence[Notification]) -> List[Notification]:
        if not notifications:
            return []
        payload = [_notification_to_row(notification) for notification in notifications]
        rows = await self._execute(
            lambda: self._query().insert(payload),
            "insert notifications",
            retry=False,
        )
        return [_row_to_notification(row) for row in rows]

    async def delete_ids(self, notification_ids: Iterable[UUID]) -> int:
        ids = [str(notification_id) for notification_id in notification_ids]
        if not ids:
            return 0
        rows = await self._execute(
            lambda: self._query().delete().in_("id", ids),
            "delete notifications",
        )
        return len(rows)

    async def notify_owners(
        self,
        type_: str,
        title: str,
        message: str,
        entity_type: Optional[str],
        entity_id: Optional[str],
        metadata: Optional[Mapping[str, Any]],
        dedup_key: Optional[str],
    ) -> bool:
        """Server-side fan-out to every owner; True when the function reports success."""

        result = await self._call_rpc(
            "notify_owners",
            {
                "p_type": type_,
                "p_title": title,
                "p_message": message,
                "p_entity_type": entity_type,
                "p_entity_id": entity_id,
                "p_metadata": dict(metadata) if metadata else None,
                "p_dedup_key": dedup_key,
            },
            "notify owners",
        )
        return result is True


__all__ = ["NotificationRepository"]
