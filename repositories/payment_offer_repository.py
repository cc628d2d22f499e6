"""
Payment offer repository (read-only).

Offers are never updated from the engine: an offer referenced by a confirmed
sale must stay as it was when its schedule was generated.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional
from uuid import UUID

from domain.payment_offer import AdvanceMode, CalcMode, PaymentOffer
from repositories.base import SupabaseRepository
from repositories.serialization import optional_decimal, to_decimal


def _row_to_offer(row: Mapping[str, Any]) -> PaymentOffer:
    months = row.get("months")
    return PaymentOffer(
        offer_id=UUID(str(row["id"])),
        name=row.get("name"),
        price_per_unit=to_decimal(row["price_per_m2_installment"]),
        advance_mode=AdvanceMode(str(row["advance_mode"])),
        advance_value=to_decimal(row.get("advance_value") or 0),
        calc_mode=CalcMode(str(row["calc_mode"])),
        monthly_amount=optional_decimal(row.get("monthly_amount")),
        months=int(months) if months is not None else None,
    )


class PaymentOfferRepository(SupabaseRepository):
    table = "payment_offers"

    async def get(self, offer_id: UUID) -> Optional[PaymentOffer]:
        rows = await self._execute(
            lambda: self._query().select("*").eq("id", str(offer_id)).limit(1),
            "get payment offer",
        )
        return _row_to_offer(rows[0]) if rows else None


__all__ = ["PaymentOfferRepository"]
