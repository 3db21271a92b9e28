"""
Tests for the per-key lock coordinator.
"""
import asyncio

import pytest

from inventory_backend.app.services.locks import KeyedLockCoordinator, LockBusyError


@pytest.mark.asyncio
async def test_same_key_is_exclusive():
    locks = KeyedLockCoordinator("sku", timeout=1.0)
    inside = 0
    max_inside = 0

    async def worker():
        nonlocal inside, max_inside
        async with locks.acquire("A"):
            inside += 1
            max_inside = max(max_inside, inside)
            await asyncio.sleep(0.01)
            inside -= 1

    await asyncio.gather(*(worker() for _ in range(5)))

    assert max_inside == 1
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_different_keys_do_not_block():
    locks = KeyedLockCoordinator("sku", timeout=0.1)
    async with locks.acquire("A"):
        async with locks.acquire("B"):
            assert locks.is_locked("A")
            assert locks.is_locked("B")


@pytest.mark.asyncio
async def test_acquire_many_sorts_and_dedupes():
    locks = KeyedLockCoordinator("sku")
    async with locks.acquire_many(["C", "A", "B", "A"]) as ordered:
        assert ordered == ["A", "B", "C"]
        assert all(locks.is_locked(key) for key in ordered)
        assert len(locks) == 3
    assert len(locks) == 0
    assert not locks.is_locked("A")


@pytest.mark.asyncio
async def test_opposite_orders_do_not_deadlock():
    """[A, B] and [B, A] both lock A first."""
    locks = KeyedLockCoordinator("sku", timeout=2.0)
    completed = []

    async def worker(name, keys):
        async with locks.acquire_many(keys):
            await asyncio.sleep(0.01)
            completed.append(name)

    await asyncio.gather(*(
        worker(i, ["A", "B"] if i % 2 else ["B", "A"]) for i in range(10)
    ))

    assert sorted(completed) == list(range(10))
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_timeout_raises_busy_and_holds_nothing():
    locks = KeyedLockCoordinator("sku", timeout=0.05)

    async with locks.acquire("B"):
        with pytest.raises(LockBusyError) as exc_info:
            # A is acquired, then B times out; A must be given back
            async with locks.acquire_many(["A", "B"]):
                pytest.fail("should not get here")
        assert exc_info.value.status_code == 503
        assert exc_info.value.key == "B"
        assert not locks.is_locked("A")
        assert locks.is_locked("B")

    assert len(locks) == 0


@pytest.mark.asyncio
async def test_cancelled_waiter_is_cleaned_up():
    locks = KeyedLockCoordinator("sku", timeout=None)

    async with locks.acquire("A"):
        waiter = asyncio.create_task(locks.acquire("A").__aenter__())
        await asyncio.sleep(0.01)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

    assert len(locks) == 0


@pytest.mark.asyncio
async def test_lock_released_when_block_raises():
    locks = KeyedLockCoordinator("sku", timeout=0.1)

    with pytest.raises(RuntimeError):
        async with locks.acquire_many(["A", "B"]):
            raise RuntimeError("boom")

    assert len(locks) == 0
    async with locks.acquire_many(["A", "B"]):
        pass
