"""
Tests for per-key locking

Same key: strictly serialized. Different keys: concurrent.
Idle keys are released from the registry.
"""

import asyncio

import pytest

from booking_service.utils.keyed_lock import KeyedLock, booking_lock_key


def test_booking_lock_key():
    assert booking_lock_key("BK1") == "booking:BK1"


def test_same_key_is_serialized():
    locks = KeyedLock()
    timeline = []

    async def worker(name):
        async with locks.hold("booking:BK1"):
            timeline.append(f"{name}-start")
            await asyncio.sleep(0.01)
            timeline.append(f"{name}-end")

    async def main():
        await asyncio.gather(worker("a"), worker("b"))

    asyncio.run(main())

    assert timeline in (
        ["a-start", "a-end", "b-start", "b-end"],
        ["b-start", "b-end", "a-start", "a-end"],
    )
    assert len(locks) == 0


def test_different_keys_run_concurrently():
    locks = KeyedLock()
    inside = []
    max_inside = []

    async def worker(key):
        async with locks.hold(key):
            inside.append(key)
            max_inside.append(len(inside))
            await asyncio.sleep(0.01)
            inside.remove(key)

    async def main():
        await asyncio.gather(worker("booking:A"), worker("booking:B"))

    asyncio.run(main())

    assert max(max_inside) == 2


def test_lock_released_on_error():
    locks = KeyedLock()

    async def failing():
        async with locks.hold("booking:BK1"):
            raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        asyncio.run(failing())

    assert len(locks) == 0
    assert locks.is_locked("booking:BK1") is False


def test_is_locked_while_held():
    locks = KeyedLock()
    seen = []

    async def main():
        async with locks.hold("booking:BK1"):
            seen.append(locks.is_locked("booking:BK1"))
            seen.append(locks.is_locked("booking:OTHER"))

    asyncio.run(main())

    assert seen == [True, False]
