"""
Contract writer repository (read-only).
"""

from __future__ import annotations

from typing import List
from uuid import UUID

from domain.contract_writer import ContractWriter
from repositories.base import SupabaseRepository


class ContractWriterRepository(SupabaseRepository):
    table = "contract_writers"

    async def list_all(self) -> List[ContractWriter]:
        rows = await self._execute(
            lambda: self._query().select("id, name, type, location").order("name"),
            "list contract writers",
        )
        return [
            ContractWriter(
                writer_id=UUID(str(row["id"])),
                name=str(row["name"]),
                type=str(row.get("type") or ""),
                location=row.get("location"),
            )
            for row in rows
        ]


__all__ = ["ContractWriterRepository"]
