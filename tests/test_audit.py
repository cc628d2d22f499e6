"""
Tests for `repositories/audit_repository.py` and `services/audit_service.py`.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from uuid import UUID

from postgrest.exceptions import APIError

from conftest import utc
from fake_supabase import no_sleep
from repositories.audit_repository import AuditRepository
from services.audit_service import AuditRecorder

ACTOR_ID = UUID("00000000-0000-0000-0000-0000000000d1")
SALE_ID = UUID("00000000-0000-0000-0000-000000000010")


def _recorder(fake) -> AuditRecorder:
    return AuditRecorder(AuditRepository(fake, sleep=no_sleep), clock=lambda: utc(2025, 1, 1, 12, 0))


def test_record_writes_all_columns_when_present(fake) -> None:
    recorder = _recorder(fake)

    stored = asyncio.run(
        recorder.record(
            "sale_cancelled",
            "sale",
            SALE_ID,
            {"previous_status": "pending", "amount": Decimal("10.50")},
            actor_id=ACTOR_ID,
            old_values={"status": "pending"},
            new_values={"status": "cancelled"},
        )
    )

    assert stored
    row = fake.rows("audit_logs")[0]
    assert row["action"] == "sale_cancelled"
    assert row["entity_id"] == str(SALE_ID)
    assert row["user_id"] == str(ACTOR_ID)
    assert row["created_at"] == "2025-01-01T12:00:00+00:00"
    assert row["details"] == {"previous_status": "pending", "amount": "10.50"}
    assert row["old_values"] == {"status": "pending"}
    assert row["new_values"] == {"status": "cancelled"}


def test_missing_optional_columns_are_probed_once_and_omitted(fake) -> None:
    fake.missing_columns["audit_logs"] = {"old_values", "new_values"}
    recorder = _recorder(fake)

    async def scenario():
        for _ in range(3):
            await recorder.record(
                "sale_reverted", "sale", SALE_ID, {"x": 1}, old_values={"a": 1}, new_values={"a": 2}
            )

    asyncio.run(scenario())

    rows = fake.rows("audit_logs")
    assert len(rows) == 3
    assert all("old_values" not in row and "new_values" not in row for row in rows)
    assert all(row["details"] == {"x": 1} for row in rows)
    assert fake.count_calls("audit_logs", "select") == 3
    assert fake.count_calls("audit_logs", "insert") == 3


def test_failed_audit_write_is_swallowed(fake) -> None:
    fake.fail("audit_logs", "insert", APIError({"message": "permission denied", "code": "42501"}))

    stored = asyncio.run(_recorder(fake).record("sale_created", "sale", SALE_ID))

    assert stored is False
    assert fake.rows("audit_logs") == []
