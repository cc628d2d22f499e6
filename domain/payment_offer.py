"""
Domain: Payment offers (pricing rules attached to a batch or a piece).

An offer is immutable once referenced by a confirmed sale: installment
schedules already generated from it would no longer add up if it changed.
The frozen dataclass models that; persistence never updates offer rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID


class AdvanceMode(str, Enum):
    FIXED = "fixed"
    PERCENT = "percent"


class CalcMode(str, Enum):
    MONTHLY_AMOUNT = "monthlyAmount"
    MONTHS = "months"


@dataclass(frozen=True, slots=True)
class PaymentOffer:
    """
    Pricing rule for a sale.

    - price_per_unit: price per m2
    - advance_mode/advance_value: fixed amount, or percentage of the base price
    - calc_mode: derive the monthly payment from `months`, or the number of
      months from `monthly_amount`
    """

    price_per_unit: Decimal
    advance_mode: AdvanceMode
    advance_value: Decimal
    calc_mode: CalcMode
    monthly_amount: Optional[Decimal] = None
    months: Optional[int] = None
    offer_id: Optional[UUID] = None
    name: Optional[str] = None

    @staticmethod
    def cash(price_per_unit: Decimal) -> "PaymentOffer":
        """Offer used for full and promise sales: no advance, no schedule."""

        return PaymentOffer(
            price_per_unit=price_per_unit,
            advance_mode=AdvanceMode.FIXED,
            advance_value=Decimal("0"),
            calc_mode=CalcMode.MONTHS,
            months=None,
        )
