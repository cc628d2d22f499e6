"""
Price calculator for land sales.

Pure arithmetic, no I/O. Turns (surface, payment offer, deposit) into the
financial breakdown stored on a sale:

- base_price = price_per_unit * surface
- advance_amount: fixed value, or percentage of base_price
- remaining_amount = base_price - advance_amount (pre-deposit view)
- advance_after_deposit = max(0, advance_amount - deposit)
- remaining_for_installments = base_price - max(advance_amount, deposit)

A deposit larger than the advance absorbs the whole advance and also lowers
the amount financed by installments.

The calculator never clamps bad input. Callers run `validate_price_inputs`
before persisting anything.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal
from typing import Optional, Tuple

from domain.errors import ValidationError
from domain.payment_offer import AdvanceMode, CalcMode, PaymentOffer

# Rounding tolerance (one cent).
TOLERANCE = Decimal("0.01")

MAX_INSTALLMENT_MONTHS = 120

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


@dataclass(frozen=True, slots=True)
class PriceBreakdown:
    """
    Financial breakdown of one sale.

    monthly_payment/number_of_months reconcile against remaining_amount
    (ignoring the deposit); installment_monthly_payment and
    installment_number_of_months reconcile against remaining_for_installments
    and are the ones the schedule uses.
    """
    base_price: Decimal
    advance_amount: Decimal
    remaining_amount: Decimal
    deposit_amount: Decimal
    advance_after_deposit: Decimal
    remaining_for_installments: Decimal
    monthly_payment: Decimal
    number_of_months: int
    installment_monthly_payment: Decimal
    installment_number_of_months: int

    @property
    def is_degenerate(self) -> bool:
        """True when no installment schedule can be built from this breakdown."""
        return self.installment_number_of_months <= 0 or self.installment_monthly_payment <= 0


def _advance_amount(base_price: Decimal, offer: PaymentOffer) -> Decimal:
    if offer.advance_mode == AdvanceMode.FIXED:
        return offer.advance_value
    return base_price * offer.advance_value / _HUNDRED


def _reconcile(offer: PaymentOffer, remaining: Decimal) -> Tuple[Decimal, int]:
    """
    Monthly payment and number of months for `remaining`.

    months mode: monthly = remaining / months (0 when months <= 0).
    monthlyAmount mode: keep the given monthly amount; with months also set,
    lower it to remaining / months only when monthly * months would overcharge
    by more than one cent; without months, months = ceil(remaining / monthly).
    """

    if offer.calc_mode == CalcMode.MONTHS:
        months = offer.months or 0
        if months <= 0:
            return _ZERO, 0
        return remaining / Decimal(months), months

    monthly = offer.monthly_amount or _ZERO
    if monthly <= 0:
        return _ZERO, 0

    if offer.months and offer.months > 0:
        months = offer.months
        if monthly * Decimal(months) > remaining + TOLERANCE:
            monthly = remaining / Decimal(months)
        return monthly, months

    months = int((remaining / monthly).to_integral_value(rounding=ROUND_CEILING))
    return monthly, months


def calculate_price(
    surface: Decimal,
    offer: PaymentOffer,
    deposit_amount: Decimal = _ZERO,
) -> PriceBreakdown:
    """
    Compute the breakdown for `surface` m2 under `offer`.

    Example:
        offer = PaymentOffer(Decimal("300"), AdvanceMode.PERCENT, Decimal("20"),
                             CalcMode.MONTHS, months=12)
        breakdown = calculate_price(Decimal("500"), offer, Decimal("5000"))
        # base 150000, advance 30000, advance after deposit 25000,
        # remaining for installments 120000, 12 x 10000
    """

    base_price = offer.price_per_unit * surface
    advance_amount = _advance_amount(base_price, offer)
    remaining_amount = base_price - advance_amount

    advance_after_deposit = max(_ZERO, advance_amount - deposit_amount)
    remaining_for_installments = base_price - max(advance_amount, deposit_amount)

    monthly_payment, number_of_months = _reconcile(offer, remaining_amount)
    installment_monthly, installment_months = _reconcile(offer, remaining_for_installments)

    return PriceBreakdown(
        base_price=base_price,
        advance_amount=advance_amount,
        remaining_amount=remaining_amount,
        deposit_amount=deposit_amount,
        advance_after_deposit=advance_after_deposit,
        remaining_for_installments=remaining_for_installments,
        monthly_payment=monthly_payment,
        number_of_months=number_of_months,
        installment_monthly_payment=installment_monthly,
        installment_number_of_months=installment_months,
    )


def validate_price_inputs(
    surface: Decimal,
    offer: PaymentOffer,
    deposit_amount: Optional[Decimal] = None,
) -> None:
    """
    Reject inputs the calculator would turn into a meaningless breakdown.

    Raises:
        ValidationError: naming the offending field
    """

    deposit = deposit_amount if deposit_amount is not None else _ZERO

    if surface <= 0:
        raise ValidationError("surface", "must be greater than zero", surface)
    if offer.price_per_unit < 0:
        raise ValidationError("price_per_unit", "must not be negative", offer.price_per_unit)
    if offer.advance_value < 0:
        raise ValidationError("advance_value", "must not be negative", offer.advance_value)
    if deposit < 0:
        raise ValidationError("deposit_amount", "must not be negative", deposit)
    if offer.advance_mode == AdvanceMode.PERCENT and offer.advance_value > _HUNDRED:
        raise ValidationError("advance_value", "percentage must not exceed 100", offer.advance_value)

    base_price = offer.price_per_unit * surface
    if _advance_amount(base_price, offer) > base_price:
        raise ValidationError("advance_value", "advance exceeds the base price", offer.advance_value)
    if deposit > base_price:
        raise ValidationError("deposit_amount", "deposit exceeds the base price", deposit)


def validate_installment_terms(offer: PaymentOffer, breakdown: PriceBreakdown) -> None:
    """
    Check that the offer's cadence can finance `breakdown`.

    monthlyAmount mode needs a positive monthly amount not larger than the
    amount financed, and an explicit month count large enough to cover it.
    months mode needs 1..120 months and something left to finance.
    """

    remaining = breakdown.remaining_for_installments

    if offer.calc_mode == CalcMode.MONTHLY_AMOUNT:
        monthly = offer.monthly_amount
        if monthly is None or monthly <= 0:
            raise ValidationError("monthly_amount", "is required and must be greater than zero", monthly)
        if monthly > remaining:
            raise ValidationError("monthly_amount", "exceeds the amount to finance", monthly)
        if offer.months and offer.months > 0:
            needed = int((remaining / monthly).to_integral_value(rounding=ROUND_CEILING))
            if offer.months < needed:
                raise ValidationError("months", f"must be at least {needed}", offer.months)
        return

    months = offer.months
    if months is None or months <= 0:
        raise ValidationError("months", "is required and must be greater than zero", months)
    if months > MAX_INSTALLMENT_MONTHS:
        raise ValidationError("months", f"must not exceed {MAX_INSTALLMENT_MONTHS}", months)
    if remaining <= 0:
        raise ValidationError("months", "nothing left to finance", months)


__all__ = [
    "MAX_INSTALLMENT_MONTHS",
    "PriceBreakdown",
    "TOLERANCE",
    "calculate_price",
    "validate_installment_terms",
    "validate_price_inputs",
]
