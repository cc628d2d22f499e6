"""
Tests for `services/notification_deduplicator.py`.
"""

from __future__ import annotations

import asyncio
from uuid import uuid4

import httpx
from postgrest.exceptions import APIError

from conftest import OWNER_IDS, utc
from domain.notification import dedup_key
from fake_supabase import no_sleep
from repositories.notification_repository import NotificationRepository
from repositories.user_repository import UserRepository
from services.notification_deduplicator import NotificationDeduplicator, NotifyOutcome

NOW = utc(2025, 1, 1, 10, 0)
SALE_ID = "11111111-1111-1111-1111-111111111111"


def _notifier(fake, sleeps=None, **kwargs) -> NotificationDeduplicator:
    async def record_sleep(delay: float) -> None:
        if sleeps is not None:
            sleeps.append(delay)

    return NotificationDeduplicator(
        NotificationRepository(fake, sleep=no_sleep),
        UserRepository(fake, sleep=no_sleep),
        sleep=record_sleep,
        clock=lambda: NOW,
        **kwargs,
    )


def _existing(user_id, created_at, type_="sale_created", entity_type="sale", entity_id=SALE_ID, key=None):
    return {
        "id": str(uuid4()),
        "user_id": str(user_id),
        "type": type_,
        "title": "t",
        "message": "m",
        "entity_type": entity_type,
        "entity_id": entity_id,
        "read": False,
        "created_at": created_at,
        "metadata": None,
        "dedup_key": key,
    }


def _notify(notifier, type_="sale_created", entity_type="sale", entity_id=SALE_ID):
    return asyncio.run(notifier.notify(type_, "title", "message", entity_type, entity_id, {"k": "v"}))


def test_delivers_through_rpc_when_available(fake) -> None:
    fake.rpc_handlers["notify_owners"] = lambda db, params: True

    result = _notify(_notifier(fake))

    assert result.outcome == NotifyOutcome.DELIVERED
    assert result.via == "rpc"
    name, params = fake.rpc_calls[0]
    assert name == "notify_owners"
    assert params["p_entity_id"] == SALE_ID
    assert params["p_dedup_key"] == dedup_key("sale_created", "sale", SALE_ID, NOW, 30)
    assert fake.rows("notifications") == []


def test_falls_back_to_batched_inserts_when_rpc_is_missing(fake) -> None:
    result = _notify(_notifier(fake, batch_size=2))

    assert result.outcome == NotifyOutcome.DELIVERED
    assert result.via == "fallback"
    assert result.delivered == 3
    assert fake.count_calls("notifications", "insert") == 2
    rows = fake.rows("notifications")
    assert {row["user_id"] for row in rows} == {str(owner_id) for owner_id in OWNER_IDS}
    assert {row["metadata"]["k"] for row in rows} == {"v"}


def test_rpc_returning_false_uses_fallback(fake) -> None:
    fake.rpc_handlers["notify_owners"] = lambda db, params: False

    result = _notify(_notifier(fake))

    assert result.via == "fallback"
    assert len(fake.rows("notifications")) == 3


def test_duplicate_in_window_is_skipped_and_pruned(fake) -> None:
    owner_a, owner_b = OWNER_IDS[0], OWNER_IDS[1]
    fake.seed(
        "notifications",
        _existing(owner_a, "2025-01-01T09:50:00+00:00"),
        _existing(owner_b, "2025-01-01T09:45:00+00:00"),
        _existing(owner_a, "2025-01-01T09:40:00+00:00"),
    )

    result = _notify(_notifier(fake), type_="sale_created")

    assert result.outcome == NotifyOutcome.SKIPPED
    assert result.ok
    assert result.pruned == 1
    remaining = sorted(row["created_at"] for row in fake.rows("notifications"))
    assert remaining == ["2025-01-01T09:45:00+00:00", "2025-01-01T09:50:00+00:00"]
    assert fake.rpc_calls == []


def test_any_recent_notification_about_a_sale_suppresses_new_ones(fake) -> None:
    fake.seed("notifications", _existing(OWNER_IDS[0], "2025-01-01T09:55:00+00:00", type_="sale_created"))

    result = _notify(_notifier(fake), type_="sale_confirmed")

    assert result.outcome == NotifyOutcome.SKIPPED


def test_other_entities_only_dedup_on_same_type(fake) -> None:
    fake.seed(
        "notifications",
        _existing(OWNER_IDS[0], "2025-01-01T09:55:00+00:00", type_="installment_due", entity_type="installment"),
    )

    result = _notify(_notifier(fake), type_="installment_overdue", entity_type="installment")

    assert result.outcome == NotifyOutcome.DELIVERED


def test_notifications_outside_window_do_not_count(fake) -> None:
    fake.seed("notifications", _existing(OWNER_IDS[0], "2025-01-01T09:29:00+00:00"))

    result = _notify(_notifier(fake))

    assert result.outcome == NotifyOutcome.DELIVERED
    assert len(fake.rows("notifications")) == 4


def test_only_failed_batches_are_retried_with_linear_backoff(fake) -> None:
    sleeps = []
    fake.fail("notifications", "insert", APIError({"message": "boom", "code": "XX000"}), times=1)

    result = _notify(_notifier(fake, sleeps, batch_size=2, retry_delay=1.0))

    assert result.outcome == NotifyOutcome.DELIVERED
    assert result.delivered == 3
    assert fake.count_calls("notifications", "insert") == 3
    assert len(fake.rows("notifications")) == 3
    assert sleeps == [1.0]


def test_gives_up_after_max_attempts(fake) -> None:
    sleeps = []
    fake.fail("notifications", "insert", APIError({"message": "boom", "code": "XX000"}), times=100)

    result = _notify(_notifier(fake, sleeps, max_attempts=3, retry_delay=1.0))

    assert result.outcome == NotifyOutcome.FAILED
    assert not result.ok
    assert sleeps == [1.0, 2.0]
    assert fake.count_calls("notifications", "insert") == 3


def test_unique_violation_in_batch_counts_as_already_delivered(fake) -> None:
    key = dedup_key("sale_created", "sale", SALE_ID, NOW, 30)
    fake.seed(
        "notifications",
        _existing(OWNER_IDS[0], "2025-01-01T09:55:00+00:00", entity_id="another-sale", key=key),
    )

    result = _notify(_notifier(fake, batch_size=1))

    assert result.outcome == NotifyOutcome.DELIVERED
    assert result.delivered == 2
    assert len(fake.rows("notifications")) == 3


def test_rpc_unique_violation_is_a_skip(fake) -> None:
    def duplicate(db, params):
        raise APIError({"message": "duplicate key value violates unique constraint", "code": "23505"})

    fake.rpc_handlers["notify_owners"] = duplicate

    result = _notify(_notifier(fake))

    assert result.outcome == NotifyOutcome.SKIPPED
    assert fake.rows("notifications") == []


def test_failed_dedup_check_still_delivers(fake) -> None:
    fake.fail("notifications", "select", httpx.ConnectError("network down"), times=2)

    result = _notify(_notifier(fake))

    assert result.outcome == NotifyOutcome.DELIVERED
    assert len(fake.rows("notifications")) == 3


def test_no_owners_is_not_a_failure(fake) -> None:
    fake.tables["users"] = []

    result = _notify(_notifier(fake))

    assert result.outcome == NotifyOutcome.DELIVERED
    assert result.delivered == 0
