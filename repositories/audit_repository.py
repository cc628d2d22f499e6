"""
Audit log repository (persistence).

The `audit_logs` table exists in several shapes: some deployments lack the
`details`, `old_values` or `new_values` columns. Instead of trying inserts
until one is accepted, the repository probes the optional columns once and
only writes the ones that exist.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, FrozenSet, Optional

from domain.audit import AuditEntry
from domain.errors import StorageError
from repositories.base import SupabaseRepository
from repositories.serialization import to_iso_utc, uuid_str

logger = logging.getLogger(__name__)

OPTIONAL_COLUMNS = ("details", "old_values", "new_values")


class AuditRepository(SupabaseRepository):
    table = "audit_logs"

    def __init__(self, client, **kwargs):
        super().__init__(client, **kwargs)
        self._columns: Optional[FrozenSet[str]] = None
        self._probe_lock = asyncio.Lock()

    async def supported_columns(self) -> FrozenSet[str]:
        """Optional columns present in this deployment (probed once, then cached)."""

        if self._columns is not None:
            return self._columns

        async with self._probe_lock:
            if self._columns is None:
                found = set()
                for column in OPTIONAL_COLUMNS:
                    try:
                        await self._execute(
                            lambda column=column: self._query().select(column).limit(1),
                            f"probe column {column}",
                            retry=False,
                        )
                    except StorageError as exc:
                        logger.info(
                            f"audit_logs has no {column} column; omitting it",
                            extra={"column": column, "db_code": exc.db_code},
                        )
                        continue
                    found.add(column)
                self._columns = frozenset(found)
        return self._columns

    async def insert(self, entry: AuditEntry) -> None:
        columns = await self.supported_columns()

        row: Dict[str, Any] = {
            "action": entry.action,
            "entity_type": entry.entity_type,
            "entity_id": entry.entity_id,
            "user_id": uuid_str(entry.actor_id),
            "created_at": to_iso_utc(entry.created_at, name="created_at"),
        }
        if "details" in columns:
            row["details"] = entry.details
        if "old_values" in columns and entry.old_values is not None:
            row["old_values"] = entry.old_values
        if "new_values" in columns and entry.new_values is not None:
            row["new_values"] = entry.new_values

        await self._execute(lambda: self._query().insert(row), "insert audit entry", retry=False)


__all__ = ["AuditRepository", "OPTIONAL_COLUMNS"]
