"""
Per-resource lock managers.
"""

import asyncio

import pytest

from fleet_backend.app.core.exceptions import ResourceUnavailableError
from fleet_backend.app.core.locks import (
    InProcessLockManager, RedisLockManager, LOCK_KEY_PREFIX,
    truck_key, driver_key, client_key, trip_key
)


@pytest.mark.asyncio
async def test_same_key_serializes():
    locks = InProcessLockManager(timeout=1.0)
    order = []

    async def worker(name):
        async with locks.hold(truck_key(1)):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])
    assert not locks.is_locked(truck_key(1))


@pytest.mark.asyncio
async def test_unrelated_keys_do_not_wait():
    locks = InProcessLockManager(timeout=0.05)

    async with locks.hold(truck_key(1), driver_key(1)):
        # Would time out if any lock were global
        async with locks.hold(truck_key(2), driver_key(2)):
            assert locks.is_locked(truck_key(2))


@pytest.mark.asyncio
async def test_timeout_raises_unavailable():
    locks = InProcessLockManager(timeout=0.05)

    async with locks.hold(driver_key(3)):
        with pytest.raises(ResourceUnavailableError) as exc_info:
            async with locks.hold(truck_key(3), driver_key(3)):
                pass

    assert exc_info.value.details == {"resource": "Driver", "id": "3", "reason": "lock_timeout"}
    # The truck lock taken before the timeout was given back
    assert not locks.is_locked(truck_key(3))


@pytest.mark.asyncio
async def test_keys_acquired_in_fixed_order(mocker):
    locks = InProcessLockManager(timeout=1.0)
    spy = mocker.spy(locks, "_acquire")

    async with locks.hold(client_key(1), driver_key(2), truck_key(3), trip_key(4)):
        pass

    assert [c.args[0] for c in spy.call_args_list] == ["trip:4", "truck:3", "driver:2", "client:1"]


@pytest.mark.asyncio
async def test_lock_released_when_block_raises():
    locks = InProcessLockManager(timeout=0.05)

    with pytest.raises(RuntimeError):
        async with locks.hold(trip_key(9)):
            raise RuntimeError("boom")

    async with locks.hold(trip_key(9)):
        pass


@pytest.mark.asyncio
async def test_redis_lock_round_trip(redis_client_session):
    locks = RedisLockManager(redis_client_session, timeout=0.05, ttl=5, poll_interval=0.01)
    name = f"{LOCK_KEY_PREFIX}{truck_key(5)}"

    async with locks.hold(truck_key(5)):
        assert await redis_client_session.exists(name) == 1
        with pytest.raises(ResourceUnavailableError):
            async with locks.hold(truck_key(5)):
                pass

    assert await redis_client_session.exists(name) == 0


@pytest.mark.asyncio
async def test_redis_lock_keeps_foreign_token(redis_client_session):
    locks = RedisLockManager(redis_client_session, timeout=0.05, ttl=5, poll_interval=0.01)
    name = f"{LOCK_KEY_PREFIX}{trip_key(8)}"

    async with locks.hold(trip_key(8)):
        # Lock expired and another worker took it over
        await redis_client_session.set(name, "someone-else")

    assert await redis_client_session.get(name) == "someone-else"


@pytest.mark.asyncio
async def test_redis_release_is_one_compare_and_delete(redis_client_session, mocker):
    locks = RedisLockManager(redis_client_session, timeout=0.05, ttl=5, poll_interval=0.01)
    eval_spy = mocker.spy(redis_client_session, "eval")
    get_spy = mocker.spy(redis_client_session, "get")
    delete_spy = mocker.spy(redis_client_session, "delete")

    async with locks.hold(truck_key(6)):
        pass

    assert eval_spy.call_count == 1
    script, numkeys, name, token = eval_spy.call_args.args
    assert numkeys == 1
    assert name == f"{LOCK_KEY_PREFIX}{truck_key(6)}"
    assert 'redis.call("del"' in script
    assert get_spy.call_count == 0
    assert delete_spy.call_count == 0


@pytest.mark.asyncio
async def test_cancelled_waiter_hands_lock_on():
    locks = InProcessLockManager(timeout=0.5)
    key = truck_key(7)

    async def enter():
        async with locks.hold(key):
            return "acquired"

    async with locks.hold(key):
        first = asyncio.create_task(enter())
        await asyncio.sleep(0.01)
        second = asyncio.create_task(enter())
        await asyncio.sleep(0.01)
    # The lock was just handed to the first waiter, which is cancelled before it resumes
    first.cancel()

    assert await second == "acquired"
    with pytest.raises(asyncio.CancelledError):
        await first
    assert not locks.is_locked(key)
