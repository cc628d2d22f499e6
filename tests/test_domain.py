"""
Tests for the domain package.

Covers contract rules:
- Stored timestamps are UTC.
- Entities are immutable (frozen).
- Sale transitions follow the lifecycle table.
- Calendar-month arithmetic clamps to the end of the month.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from domain.installment import InstallmentScheduleItem
from domain.land_piece import LandPiece, PieceStatus
from domain.notification import dedup_key
from domain.sale import PaymentMethod, Sale, SaleStatus, can_transition
from domain.time import add_months, require_utc_timestamp

PIECE_ID = UUID("00000000-0000-0000-0000-000000000001")
SALE_ID = UUID("00000000-0000-0000-0000-000000000010")
CLIENT_ID = UUID("00000000-0000-0000-0000-000000000020")


def _sale(**overrides) -> Sale:
    values = dict(
        sale_id=SALE_ID,
        land_piece_id=PIECE_ID,
        client_id=CLIENT_ID,
        payment_method=PaymentMethod.PROMISE,
        status=SaleStatus.PENDING,
        sale_price=Decimal("50000"),
        deposit_amount=Decimal("5000"),
    )
    values.update(overrides)
    return Sale(**values)


def test_require_utc_timestamp_rejects_naive_and_offset_datetimes() -> None:
    with pytest.raises(ValueError):
        require_utc_timestamp("at", datetime(2025, 1, 1))
    with pytest.raises(ValueError):
        require_utc_timestamp("at", datetime(2025, 1, 1, tzinfo=timezone(timedelta(hours=1))))

    require_utc_timestamp("at", datetime(2025, 1, 1, tzinfo=timezone.utc))


def test_add_months_clamps_to_last_day_of_month() -> None:
    assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
    assert add_months(date(2025, 1, 31), 2) == date(2025, 3, 31)
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2025, 11, 15), 3) == date(2026, 2, 15)
    assert add_months(date(2025, 5, 10), 0) == date(2025, 5, 10)

    with pytest.raises(ValueError):
        add_months(date(2025, 1, 1), -1)


def test_sale_transitions_follow_lifecycle() -> None:
    assert can_transition(SaleStatus.PENDING, SaleStatus.COMPLETED)
    assert can_transition(SaleStatus.PENDING, SaleStatus.CANCELLED)
    assert can_transition(SaleStatus.COMPLETED, SaleStatus.CANCELLED)
    assert can_transition(SaleStatus.COMPLETED, SaleStatus.PENDING)

    assert not can_transition(SaleStatus.CANCELLED, SaleStatus.PENDING)
    assert not can_transition(SaleStatus.CANCELLED, SaleStatus.COMPLETED)
    assert not can_transition(SaleStatus.PENDING, SaleStatus.PENDING)


def test_sale_active_statuses() -> None:
    assert _sale(status=SaleStatus.PENDING).is_active
    assert _sale(status=SaleStatus.COMPLETED).is_active
    assert not _sale(status=SaleStatus.CANCELLED).is_active


def test_promise_balance_uses_remaining_amount_once_recorded() -> None:
    assert _sale().promise_balance() == Decimal("45000")
    assert _sale(partial_payment_amount=Decimal("10000")).promise_balance() == Decimal("35000")
    assert _sale(
        partial_payment_amount=Decimal("10000"),
        remaining_payment_amount=Decimal("30000"),
    ).promise_balance() == Decimal("30000")


def test_sale_timestamps_must_be_utc_and_sale_is_immutable() -> None:
    with pytest.raises(ValueError):
        _sale(created_at=datetime(2025, 1, 1))

    sale = _sale()
    with pytest.raises(FrozenInstanceError):
        sale.status = SaleStatus.CANCELLED  # type: ignore[misc]


def test_piece_status_held_states() -> None:
    assert PieceStatus.RESERVED.is_held
    assert PieceStatus.SOLD.is_held
    assert not PieceStatus.AVAILABLE.is_held
    assert not PieceStatus.CANCELLED.is_held

    piece = LandPiece(piece_id=PIECE_ID, surface=Decimal("100"), status=PieceStatus.AVAILABLE)
    assert piece.is_available


def test_installment_numbers_are_one_based() -> None:
    with pytest.raises(ValueError):
        InstallmentScheduleItem(installment_number=0, amount_due=Decimal("1"), due_date=date(2025, 1, 1))


def test_dedup_key_buckets_by_window() -> None:
    base = datetime(2025, 1, 1, 10, 0, tzinfo=timezone.utc)

    first = dedup_key("sale_created", "sale", "abc", base, 30)
    same_bucket = dedup_key("sale_created", "sale", "abc", base + timedelta(minutes=29), 30)
    next_bucket = dedup_key("sale_created", "sale", "abc", base + timedelta(minutes=30), 30)

    assert first == same_bucket
    assert first != next_bucket
    assert first.startswith("sale_created:sale:abc:")
    assert dedup_key("x", None, None, base, 30).startswith("x:-:-:")
