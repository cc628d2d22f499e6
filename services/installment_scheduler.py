"""
Installment scheduler.

Turns the amount financed by installments into dated obligations, one per
calendar month, the first falling one month after the start date. Every item
but the last is the rounded monthly payment; the last item takes whatever is
left so the schedule sums to remaining_for_installments exactly.

A schedule with zero months or a zero payment is an error, never an empty list.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Tuple

from domain.errors import InvalidScheduleError
from domain.installment import InstallmentScheduleItem
from domain.payment_offer import PaymentOffer
from domain.time import add_months
from services.price_calculator import TOLERANCE, PriceBreakdown, calculate_price

_CENT = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class InstallmentSchedule:
    items: Tuple[InstallmentScheduleItem, ...]
    breakdown: PriceBreakdown

    @property
    def total(self) -> Decimal:
        return sum((item.amount_due for item in self.items), Decimal("0"))

    @property
    def number_of_installments(self) -> int:
        return len(self.items)

    @property
    def monthly_amount(self) -> Decimal:
        """Amount of the regular (non-final) installments."""
        return self.items[0].amount_due if self.items else Decimal("0")

    def reconciles(self) -> bool:
        return abs(self.total - self.breakdown.remaining_for_installments) <= TOLERANCE


def build_schedule(breakdown: PriceBreakdown, start_date: date) -> InstallmentSchedule:
    """
    Build the dated schedule for an already computed breakdown.

    Raises:
        InvalidScheduleError: zero/negative months or monthly payment
    """

    months = breakdown.installment_number_of_months
    monthly = breakdown.installment_monthly_payment

    if months <= 0:
        raise InvalidScheduleError(
            "Installment schedule has no months",
            number_of_months=months,
            monthly_payment=monthly,
        )
    if monthly <= 0:
        raise InvalidScheduleError(
            "Installment monthly payment is zero or negative",
            number_of_months=months,
            monthly_payment=monthly,
        )

    regular = monthly.quantize(_CENT, rounding=ROUND_HALF_UP)
    last = breakdown.remaining_for_installments - regular * (months - 1)

    items: List[InstallmentScheduleItem] = []
    for index in range(months):
        is_last = index == months - 1
        items.append(
            InstallmentScheduleItem(
                installment_number=index + 1,
                amount_due=last if is_last else regular,
                due_date=add_months(start_date, index + 1),
            )
        )

    return InstallmentSchedule(items=tuple(items), breakdown=breakdown)


def generate_installment_schedule(
    surface: Decimal,
    offer: PaymentOffer,
    start_date: date,
    deposit_amount: Decimal = Decimal("0"),
) -> InstallmentSchedule:
    """
    Compute the breakdown for the sale and build its schedule.

    Example:
        schedule = generate_installment_schedule(Decimal("500"), offer, date(2025, 1, 31))
        schedule.items[0].due_date  # date(2025, 2, 28)
        schedule.items[1].due_date  # date(2025, 3, 31)
    """

    breakdown = calculate_price(surface, offer, deposit_amount)
    return build_schedule(breakdown, start_date)


__all__ = ["InstallmentSchedule", "build_schedule", "generate_installment_schedule"]
