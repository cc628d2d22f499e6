"""
Pytest configuration for the engine tests.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, services and api packages, and
provides row builders plus an engine wired to the in-memory Supabase fake.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path
from uuid import UUID, uuid4

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from fake_supabase import FakeSupabase, no_sleep  # noqa: E402
from services.engine import build_engine  # noqa: E402
from services.settings import EngineSettings  # noqa: E402

OWNER_IDS = [UUID(f"00000000-0000-0000-0000-0000000000a{i}") for i in range(1, 4)]


def piece_row(piece_id=None, *, status="Available", surface="500", price="100", number="P-1", updated_at=None):
    return {
        "id": str(piece_id or uuid4()),
        "batch_id": None,
        "piece_number": number,
        "surface_m2": surface,
        "status": status,
        "price_per_m2": price,
        "updated_at": updated_at,
    }


def offer_row(offer_id=None, *, price="300", advance_mode="percent", advance_value="20",
              calc_mode="months", months=12, monthly_amount=None):
    return {
        "id": str(offer_id or uuid4()),
        "name": "Offer",
        "price_per_m2_installment": price,
        "advance_mode": advance_mode,
        "advance_value": advance_value,
        "calc_mode": calc_mode,
        "monthly_amount": monthly_amount,
        "months": months,
    }


def sale_row(piece_id, *, sale_id=None, status="pending", payment_method="full", sale_price="50000.00",
             deposit="0.00", created_at="2025-01-01T10:00:00+00:00", **extra):
    row = {
        "id": str(sale_id or uuid4()),
        "land_piece_id": str(piece_id),
        "client_id": str(UUID("00000000-0000-0000-0000-0000000000c1")),
        "payment_method": payment_method,
        "status": status,
        "sale_price": sale_price,
        "deposit_amount": deposit,
        "created_at": created_at,
        "updated_at": created_at,
    }
    row.update(extra)
    return row


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def fake() -> FakeSupabase:
    db = FakeSupabase()
    db.seed("users", *({"id": str(owner_id), "role": "owner"} for owner_id in OWNER_IDS))
    db.seed("users", {"id": str(uuid4()), "role": "worker"})
    return db


@pytest.fixture
def engine(fake):
    return build_engine(fake, EngineSettings(), sleep=no_sleep)
