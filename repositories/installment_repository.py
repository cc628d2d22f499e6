"""
Installment schedule repository (persistence).

Schedules are replaced as a whole: delete every item of the sale, then insert
the new items. Rows live in `installment_payments`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Sequence
from uuid import UUID, uuid4

from domain.installment import InstallmentScheduleItem
from repositories.base import SupabaseRepository
from repositories.serialization import money, parse_date, to_decimal


def _row_to_item(row: Mapping[str, Any]) -> InstallmentScheduleItem:
    return InstallmentScheduleItem(
        installment_number=int(row["installment_number"]),
        amount_due=to_decimal(row["amount_due"]),
        due_date=parse_date(row["due_date"]),
        sale_id=UUID(str(row["sale_id"])),
    )


def _item_to_row(sale_id: UUID, item: InstallmentScheduleItem) -> Dict[str, Any]:
    return {
        "id": str(uuid4()),
        "sale_id": str(sale_id),
        "installment_number": item.installment_number,
        "amount_due": money(item.amount_due),
        "amount_paid": "0.00",
        "due_date": item.due_date.isoformat(),
        "status": "pending",
    }


class InstallmentRepository(SupabaseRepository):
    table = "installment_payments"

    async def list_for_sale(self, sale_id: UUID) -> List[InstallmentScheduleItem]:
        rows = await self._execute(
            lambda: self._query()
            .select("*")
            .eq("sale_id", str(sale_id))
            .order("installment_number"),
            "list installments",
        )
        return [_row_to_item(row) for row in rows]

    async def delete_for_sale(self, sale_id: UUID) -> int:
        """Delete every schedule item of the sale; returns the number removed."""

        rows = await self._execute(
            lambda: self._query().delete().eq("sale_id", str(sale_id)),
            "delete installments",
        )
        return len(rows)

    async def replace_schedule(
        self,
        sale_id: UUID,
        items: Sequence[InstallmentScheduleItem],
    ) -> List[InstallmentScheduleItem]:
        """Replace the whole schedule of `sale_id` with `items`."""

        await self.delete_for_sale(sale_id)
        if not items:
            return []

        payload = [_item_to_row(sale_id, item) for item in items]
        rows = await self._execute(
            lambda: self._query().insert(payload),
            "insert installments",
            retry=False,
        )
        return [_row_to_item(row) for row in rows]


__all__ = ["InstallmentRepository"]
