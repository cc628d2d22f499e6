"""
Tests for `services/availability_guard.py`.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from conftest import piece_row, sale_row
from domain.errors import PieceUnavailableError
from domain.land_piece import LandPiece, PieceStatus
from domain.sale import PaymentMethod, Sale, SaleStatus
from services.availability_guard import AvailabilityReason, decide_availability

PIECE_ID = UUID("00000000-0000-0000-0000-000000000001")


def _piece(status: PieceStatus) -> LandPiece:
    return LandPiece(piece_id=PIECE_ID, surface=Decimal("100"), status=status)


def _sale(status: SaleStatus) -> Sale:
    return Sale(
        sale_id=uuid4(),
        land_piece_id=PIECE_ID,
        client_id=uuid4(),
        payment_method=PaymentMethod.FULL,
        status=status,
        sale_price=Decimal("1000"),
    )


def test_completed_sale_wins_over_everything() -> None:
    sales = [_sale(SaleStatus.PENDING), _sale(SaleStatus.COMPLETED)]

    result = decide_availability(PIECE_ID, _piece(PieceStatus.AVAILABLE), sales)

    assert not result.available
    assert result.reason == AvailabilityReason.ALREADY_SOLD
    assert result.completed_sale_id == sales[1].sale_id


def test_pending_sale_makes_available_piece_unavailable() -> None:
    result = decide_availability(PIECE_ID, _piece(PieceStatus.AVAILABLE), [_sale(SaleStatus.PENDING)])

    assert not result.available
    assert result.reason == AvailabilityReason.RESERVED_BY_PENDING_SALE


@pytest.mark.parametrize("status", [PieceStatus.RESERVED, PieceStatus.SOLD])
def test_held_piece_without_sale_is_orphaned(status) -> None:
    result = decide_availability(PIECE_ID, _piece(status), [])

    assert not result.available
    assert result.reason == AvailabilityReason.ORPHANED_RESERVATION
    assert result.is_orphaned


def test_available_piece_without_sales_is_available() -> None:
    result = decide_availability(PIECE_ID, _piece(PieceStatus.AVAILABLE), [])

    assert result.available
    assert result.reason is None


def test_withdrawn_and_missing_pieces() -> None:
    assert decide_availability(PIECE_ID, _piece(PieceStatus.CANCELLED), []).reason == AvailabilityReason.PIECE_WITHDRAWN
    assert decide_availability(PIECE_ID, None, []).reason == AvailabilityReason.PIECE_NOT_FOUND


def test_reasons_read_as_plain_phrases() -> None:
    assert AvailabilityReason.ALREADY_SOLD.description == "already sold"
    assert AvailabilityReason.RESERVED_BY_PENDING_SALE.description == "reserved by pending sale"
    assert AvailabilityReason.ORPHANED_RESERVATION.description == "orphaned reservation"


def test_check_reads_piece_and_active_sales(fake, engine) -> None:
    piece_id = uuid4()
    fake.seed("land_pieces", piece_row(piece_id, status="Reserved"))
    fake.seed("sales", sale_row(piece_id, status="cancelled"))

    result = asyncio.run(engine.guard.check(piece_id))

    assert result.reason == AvailabilityReason.ORPHANED_RESERVATION
    assert result.piece_status == PieceStatus.RESERVED


def test_check_many_uses_two_bulk_queries(fake, engine) -> None:
    free, pending, sold = uuid4(), uuid4(), uuid4()
    unknown = uuid4()
    fake.seed(
        "land_pieces",
        piece_row(free),
        piece_row(pending, status="Reserved"),
        piece_row(sold, status="Sold"),
    )
    fake.seed("sales", sale_row(pending), sale_row(sold, status="completed"))

    results = asyncio.run(engine.guard.check_many([free, pending, sold, unknown, free]))

    assert list(results) == [free, pending, sold, unknown]
    assert results[free].available
    assert results[pending].reason == AvailabilityReason.RESERVED_BY_PENDING_SALE
    assert results[sold].reason == AvailabilityReason.ALREADY_SOLD
    assert results[unknown].reason == AvailabilityReason.PIECE_NOT_FOUND
    assert fake.count_calls("land_pieces", "select") == 1
    assert fake.count_calls("sales", "select") == 1


def test_ensure_available_raises_with_reason(fake, engine) -> None:
    piece_id = uuid4()
    fake.seed("land_pieces", piece_row(piece_id))
    fake.seed("sales", sale_row(piece_id, status="completed"))

    with pytest.raises(PieceUnavailableError) as exc_info:
        asyncio.run(engine.guard.ensure_available(piece_id))

    assert exc_info.value.reason == "already_sold"
