"""
User repository (read-only): resolves notification recipients.
"""

from __future__ import annotations

from typing import List
from uuid import UUID

from repositories.base import SupabaseRepository


class UserRepository(SupabaseRepository):
    table = "users"

    async def list_owner_ids(self) -> List[UUID]:
        rows = await self._execute(
            lambda: self._query().select("id").eq("role", "owner"),
            "list owners",
        )
        return [UUID(str(row["id"])) for row in rows]


__all__ = ["UserRepository"]
