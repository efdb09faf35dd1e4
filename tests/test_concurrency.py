"""
Concurrency safety tests.

Demonstrates:
1. Distributed lock prevents simultaneous acquire (mocked Redis).
2. The local lock manager serialises one key and fails fast when busy.
3. Version checks turn a lost confirm/cancel race into ``StaleStateError``
   instead of a silent overwrite.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.domain.enums import BookingStatus
from src.domain.errors import ConflictError, InvalidTransitionError, StaleStateError
from src.infrastructure.locks import DistributedLock, LocalLockManager, RedisLockManager
from tests.conftest import PASSENGER_A, PASSENGER_B, assert_seat_invariants


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "ride:1", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_awaited_once_with(
            "lock:ride:1", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "ride:1", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_acquire_retries_until_free(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(side_effect=[False, False, True])

        lock = DistributedLock(
            mock_redis, "ride:1", wait_seconds=1.0, poll_interval=0.001
        )
        assert await lock.acquire() is True
        assert mock_redis.set.await_count == 3

    @pytest.mark.asyncio
    async def test_release_calls_eval(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "ride:1", ttl_seconds=10)
        await lock.acquire()
        await lock.release()

        mock_redis.eval.assert_called_once()

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "ride:1", ttl_seconds=10)
        with pytest.raises(ConflictError, match="Could not acquire lock") as exc_info:
            async with lock:
                pass
        assert exc_info.value.code == "RESOURCE_BUSY"

    @pytest.mark.asyncio
    async def test_manager_releases_after_block(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        async with RedisLockManager(mock_redis).hold("ride:1"):
            mock_redis.eval.assert_not_called()
        mock_redis.eval.assert_called_once()


class TestLocalLockManager:
    @pytest.mark.asyncio
    async def test_same_key_is_serialised(self):
        locks = LocalLockManager(wait_seconds=1.0)
        order: list[str] = []

        async def worker(name: str):
            async with locks.hold("ride:1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )

    @pytest.mark.asyncio
    async def test_busy_key_fails_fast(self):
        locks = LocalLockManager(wait_seconds=0.01)
        async with locks.hold("ride:1"):
            with pytest.raises(ConflictError) as exc_info:
                async with locks.hold("ride:1"):
                    pass
        assert exc_info.value.code == "RESOURCE_BUSY"

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        locks = LocalLockManager(wait_seconds=0.01)
        async with locks.hold("ride:1"):
            async with locks.hold("ride:2"):
                assert len(locks) == 2
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_released_keys_are_dropped(self):
        locks = LocalLockManager(wait_seconds=1.0)
        for n in range(20):
            async with locks.hold(f"ride:{n}"):
                assert len(locks) == 1
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_key_kept_while_someone_waits(self):
        locks = LocalLockManager(wait_seconds=1.0)
        entered = asyncio.Event()
        release = asyncio.Event()

        async def first():
            async with locks.hold("ride:1"):
                entered.set()
                await release.wait()

        async def second():
            async with locks.hold("ride:1"):
                assert len(locks) == 1

        holder = asyncio.create_task(first())
        await entered.wait()
        waiter = asyncio.create_task(second())
        await asyncio.sleep(0.01)
        release.set()
        await asyncio.gather(holder, waiter)
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_timed_out_waiter_leaves_no_key(self):
        locks = LocalLockManager(wait_seconds=0.01)
        async with locks.hold("ride:1"):
            with pytest.raises(ConflictError):
                async with locks.hold("ride:1"):
                    pass
            assert len(locks) == 1
        assert len(locks) == 0


class TestStaleState:
    @pytest.mark.asyncio
    async def test_second_writer_of_same_version_loses(self, engine, make_ride):
        ride = await make_ride()
        booking = await engine.bookings.create_booking(PASSENGER_A, ride.id, 1)
        store = engine.bookings.bookings

        first = await store.get(booking.id)
        second = await store.get(booking.id)
        first.notes = "first"
        await store.save(first)
        second.notes = "second"
        with pytest.raises(StaleStateError):
            await store.save(second)
        assert (await store.get(booking.id)).notes == "first"

    @pytest.mark.asyncio
    async def test_confirm_cancel_race_keeps_seats_consistent(
        self, engine, make_ride
    ):
        ride = await make_ride(total_seats=2)
        booking = await engine.bookings.create_booking(PASSENGER_B, ride.id, 2)
        await engine.bookings.accept_terms(booking.id, PASSENGER_B)

        results = await asyncio.gather(
            engine.bookings.confirm_booking(booking.id, PASSENGER_B),
            engine.bookings.cancel_booking(booking.id, PASSENGER_B, "changed mind"),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                assert isinstance(result, (StaleStateError, InvalidTransitionError))

        final = await engine.bookings.bookings.get(booking.id)
        stored = await engine.rides.get_ride(ride.id)
        if final.status == BookingStatus.CANCELLED:
            assert stored.seats.booked == 0
        else:
            assert stored.seats.booked == 2
        await assert_seat_invariants(engine, ride.id)
