"""
Audit recorder.

Fire-and-forget: a failing audit write is logged and swallowed so it can
never block or undo the sale operation that triggered it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional
from uuid import UUID

from domain.audit import AuditEntry
from domain.time import utc_now
from repositories.audit_repository import AuditRepository

logger = logging.getLogger(__name__)


class AuditRecorder:
    def __init__(self, repository: AuditRepository, clock: Callable[[], datetime] = utc_now):
        self._repository = repository
        self._clock = clock

    async def record(
        self,
        action: str,
        entity_type: str,
        entity_id: Any,
        details: Optional[Mapping[str, Any]] = None,
        actor_id: Optional[UUID] = None,
        old_values: Optional[Mapping[str, Any]] = None,
        new_values: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """
        Write one audit entry.

        Returns:
            True if the entry was stored, False if the write failed (never raises)
        """

        entry = AuditEntry(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            created_at=self._clock(),
            details=_plain(details),
            actor_id=actor_id,
            old_values=_plain(old_values) if old_values is not None else None,
            new_values=_plain(new_values) if new_values is not None else None,
        )

        try:
            await self._repository.insert(entry)
        except Exception as exc:
            logger.warning(
                f"Failed to record audit entry {action} for {entity_type} {entity_id}",
                extra={"action": action, "entity_id": str(entity_id), "error": str(exc)},
            )
            return False

        logger.debug(f"Audit: {action} {entity_type} {entity_id}")
        return True


def _plain(values: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """JSON-safe copy (UUIDs, Decimals, dates become strings)."""

    if not values:
        return {}
    return {
        key: value if value is None or isinstance(value, (str, int, float, bool, dict, list)) else str(value)
        for key, value in values.items()
    }


__all__ = ["AuditRecorder"]
