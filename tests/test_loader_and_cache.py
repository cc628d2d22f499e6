"""
Tests for `services/loader.py` and `services/contract_writer_cache.py`.
"""

from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest

from fake_supabase import no_sleep
from repositories.contract_writer_repository import ContractWriterRepository
from services.contract_writer_cache import ContractWriterCache
from services.loader import LoadSupersededError, SupersedingLoader


def test_newer_load_supersedes_unfinished_one() -> None:
    loader = SupersedingLoader()

    async def slow():
        await asyncio.sleep(10)
        return "old"

    async def fast():
        return "new"

    async def scenario():
        first = asyncio.ensure_future(loader.load("pieces", slow))
        await asyncio.sleep(0)
        assert loader.in_flight("pieces")
        second = await loader.load("pieces", fast)
        with pytest.raises(LoadSupersededError):
            await first
        return second

    assert asyncio.run(scenario()) == "new"


def test_finished_load_keeps_its_result() -> None:
    loader = SupersedingLoader()

    async def scenario():
        first = await loader.load("pieces", _value("a"))
        second = await loader.load("pieces", _value("b"))
        return first, second, loader.in_flight("pieces")

    assert asyncio.run(scenario()) == ("a", "b", False)


def test_different_keys_do_not_interfere() -> None:
    loader = SupersedingLoader()

    async def scenario():
        return await asyncio.gather(loader.load("a", _value(1)), loader.load("b", _value(2)))

    assert asyncio.run(scenario()) == [1, 2]


def test_cancelling_the_caller_propagates() -> None:
    loader = SupersedingLoader()

    async def slow():
        await asyncio.sleep(10)

    async def scenario():
        task = asyncio.ensure_future(loader.load("k", slow))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())


def _value(value):
    async def factory():
        return value

    return factory


def _writer_row(name):
    return {"id": str(uuid4()), "name": name, "type": "notary", "location": "Tunis"}


def test_cache_loads_once_and_expires_after_ttl(fake) -> None:
    fake.seed("contract_writers", _writer_row("B office"), _writer_row("A office"))
    now = [0.0]
    cache = ContractWriterCache(
        ContractWriterRepository(fake, sleep=no_sleep), ttl_seconds=300, clock=lambda: now[0]
    )

    async def scenario():
        writers = await cache.get_all()
        await cache.get_all()
        now[0] = 301.0
        await cache.get_all()
        return writers

    writers = asyncio.run(scenario())

    assert [writer.name for writer in writers] == ["A office", "B office"]
    assert fake.count_calls("contract_writers", "select") == 2


def test_concurrent_cache_misses_share_one_load(fake) -> None:
    row = _writer_row("A office")
    fake.seed("contract_writers", row)
    cache = ContractWriterCache(ContractWriterRepository(fake, sleep=no_sleep))

    async def scenario():
        return await asyncio.gather(*(cache.get(uuid4()) for _ in range(5)), cache.get_all())

    results = asyncio.run(scenario())

    assert results[:5] == [None] * 5
    assert results[5][0].name == "A office"
    assert fake.count_calls("contract_writers", "select") == 1


def test_invalidate_forces_reload(fake) -> None:
    fake.seed("contract_writers", _writer_row("A office"))
    cache = ContractWriterCache(ContractWriterRepository(fake, sleep=no_sleep))

    async def scenario():
        await cache.get_all()
        cache.invalidate()
        assert cache.cached() is None
        await cache.get_all()

    asyncio.run(scenario())

    assert fake.count_calls("contract_writers", "select") == 2
