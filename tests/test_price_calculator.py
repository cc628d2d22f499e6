"""
Tests for `services/price_calculator.py`.

Covers:
- Breakdown arithmetic (advance modes, deposit absorbing the advance).
- Month/monthly-amount reconciliation.
- Input validation naming the offending field.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from domain.errors import ValidationError
from domain.payment_offer import AdvanceMode, CalcMode, PaymentOffer
from services.price_calculator import calculate_price, validate_installment_terms, validate_price_inputs


def _offer(**overrides) -> PaymentOffer:
    values = dict(
        price_per_unit=Decimal("300"),
        advance_mode=AdvanceMode.PERCENT,
        advance_value=Decimal("20"),
        calc_mode=CalcMode.MONTHS,
        months=12,
    )
    values.update(overrides)
    return PaymentOffer(**values)


def test_percent_advance_with_deposit_breakdown() -> None:
    breakdown = calculate_price(Decimal("500"), _offer(), Decimal("5000"))

    assert breakdown.base_price == Decimal("150000")
    assert breakdown.advance_amount == Decimal("30000")
    assert breakdown.remaining_amount == Decimal("120000")
    assert breakdown.advance_after_deposit == Decimal("25000")
    assert breakdown.remaining_for_installments == Decimal("120000")
    assert breakdown.installment_monthly_payment == Decimal("10000")
    assert breakdown.installment_number_of_months == 12


def test_deposit_larger_than_advance_reduces_amount_financed() -> None:
    offer = _offer(advance_mode=AdvanceMode.FIXED, advance_value=Decimal("10000"))

    breakdown = calculate_price(Decimal("500"), offer, Decimal("30000"))

    assert breakdown.advance_after_deposit == Decimal("0")
    assert breakdown.remaining_for_installments == Decimal("120000")
    assert breakdown.remaining_amount == Decimal("140000")
    assert breakdown.installment_monthly_payment == Decimal("10000")


def test_zero_months_gives_degenerate_breakdown() -> None:
    breakdown = calculate_price(Decimal("500"), _offer(months=0))

    assert breakdown.installment_number_of_months == 0
    assert breakdown.installment_monthly_payment == Decimal("0")
    assert breakdown.is_degenerate


def test_monthly_amount_mode_derives_months_by_ceiling() -> None:
    offer = _offer(calc_mode=CalcMode.MONTHLY_AMOUNT, monthly_amount=Decimal("7000"), months=None)

    breakdown = calculate_price(Decimal("500"), offer)

    # 120000 / 7000 = 17.14 -> 18 months
    assert breakdown.installment_number_of_months == 18
    assert breakdown.installment_monthly_payment == Decimal("7000")


def test_monthly_amount_mode_lowers_overcharging_monthly_amount() -> None:
    offer = _offer(calc_mode=CalcMode.MONTHLY_AMOUNT, monthly_amount=Decimal("11000"), months=12)

    breakdown = calculate_price(Decimal("500"), offer)

    assert breakdown.installment_number_of_months == 12
    assert breakdown.installment_monthly_payment == Decimal("10000")


def test_monthly_amount_within_tolerance_is_kept() -> None:
    offer = _offer(calc_mode=CalcMode.MONTHLY_AMOUNT, monthly_amount=Decimal("9000"), months=12)

    breakdown = calculate_price(Decimal("500"), offer)

    assert breakdown.installment_monthly_payment == Decimal("9000")


@pytest.mark.parametrize(
    ("surface", "offer", "deposit", "field"),
    [
        (Decimal("0"), _offer(), Decimal("0"), "surface"),
        (Decimal("500"), _offer(price_per_unit=Decimal("-1")), Decimal("0"), "price_per_unit"),
        (Decimal("500"), _offer(advance_value=Decimal("-5")), Decimal("0"), "advance_value"),
        (Decimal("500"), _offer(advance_value=Decimal("120")), Decimal("0"), "advance_value"),
        (
            Decimal("500"),
            _offer(advance_mode=AdvanceMode.FIXED, advance_value=Decimal("200000")),
            Decimal("0"),
            "advance_value",
        ),
        (Decimal("500"), _offer(), Decimal("-1"), "deposit_amount"),
        (Decimal("500"), _offer(), Decimal("150001"), "deposit_amount"),
    ],
)
def test_validate_price_inputs_names_offending_field(surface, offer, deposit, field) -> None:
    with pytest.raises(ValidationError) as exc_info:
        validate_price_inputs(surface, offer, deposit)

    assert exc_info.value.field == field


def test_validate_price_inputs_accepts_valid_terms() -> None:
    validate_price_inputs(Decimal("500"), _offer(), Decimal("5000"))


def test_validate_installment_terms_rejects_bad_cadence() -> None:
    with pytest.raises(ValidationError) as exc_info:
        offer = _offer(months=121)
        validate_installment_terms(offer, calculate_price(Decimal("500"), offer))
    assert exc_info.value.field == "months"

    with pytest.raises(ValidationError) as exc_info:
        offer = _offer(months=None)
        validate_installment_terms(offer, calculate_price(Decimal("500"), offer))
    assert exc_info.value.field == "months"

    with pytest.raises(ValidationError) as exc_info:
        offer = _offer(calc_mode=CalcMode.MONTHLY_AMOUNT, monthly_amount=None, months=None)
        validate_installment_terms(offer, calculate_price(Decimal("500"), offer))
    assert exc_info.value.field == "monthly_amount"

    with pytest.raises(ValidationError) as exc_info:
        offer = _offer(calc_mode=CalcMode.MONTHLY_AMOUNT, monthly_amount=Decimal("130000"), months=None)
        validate_installment_terms(offer, calculate_price(Decimal("500"), offer))
    assert exc_info.value.field == "monthly_amount"

    with pytest.raises(ValidationError) as exc_info:
        offer = _offer(calc_mode=CalcMode.MONTHLY_AMOUNT, monthly_amount=Decimal("5000"), months=12)
        validate_installment_terms(offer, calculate_price(Decimal("500"), offer))
    assert exc_info.value.field == "months"


def test_validate_installment_terms_rejects_nothing_to_finance() -> None:
    offer = _offer(advance_value=Decimal("100"))

    with pytest.raises(ValidationError):
        validate_installment_terms(offer, calculate_price(Decimal("500"), offer))
