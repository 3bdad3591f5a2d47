import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError

from src.core.exceptions.base import (
    ServiceErrorCode,
    StoreUnavailableError,
    TransactionConflictError,
)
from src.infra.store import RedisStore


def increment(current):
    return str(int(current or 0) + 1)


def mock_pipeline(execute_side_effect):
    pipe = MagicMock()
    pipe.watch = AsyncMock()
    pipe.get = AsyncMock(return_value="1")
    pipe.execute = AsyncMock(side_effect=execute_side_effect)
    pipe.reset = AsyncMock()
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=False)
    client = MagicMock()
    client.pipeline.return_value = pipe
    return client, pipe


@pytest.mark.asyncio
async def test_set_nx(store):
    assert await store.set("key", "a", nx=True) is True
    assert await store.set("key", "b", nx=True) is False
    assert await store.get("key") == "a"


@pytest.mark.asyncio
async def test_scan_and_mget(store):
    for i in range(3):
        await store.set(f"participant:{i}", str(i))
    await store.set("other:1", "x")

    keys = sorted([key async for key in store.scan_keys("participant:*")])

    assert keys == ["participant:0", "participant:1", "participant:2"]
    assert await store.mget(keys) == ["0", "1", "2"]
    assert await store.mget([]) == []


@pytest.mark.asyncio
async def test_compare_and_delete(store):
    await store.set("lock", "token-a")

    assert await store.compare_and_delete("lock", "token-b") is False
    assert await store.compare_and_delete("lock", "token-a") is True
    assert await store.exists("lock") is False


@pytest.mark.asyncio
async def test_compare_and_pexpire(store, redis_client):
    await store.set("lock", "token-a", px=1_000)

    assert await store.compare_and_pexpire("lock", "token-b", 60_000) is False
    assert await store.compare_and_pexpire("lock", "token-a", 60_000) is True
    assert await redis_client.pttl("lock") > 1_000


@pytest.mark.asyncio
async def test_update_concurrent_increments(store):
    """Optimistic transactions must not lose concurrent writes"""
    await asyncio.gather(*(store.update("counter", increment) for _ in range(10)))
    assert await store.get("counter") == "10"


@pytest.mark.asyncio
async def test_update_noop_returns_current(store):
    await store.set("key", "value")
    assert await store.update("key", lambda current: None) == "value"
    assert await store.update("missing", lambda current: None) is None


@pytest.mark.asyncio
async def test_update_retries_after_conflict():
    client, pipe = mock_pipeline([WatchError(), [True]])
    store = RedisStore(client, transaction_retries=3)

    result = await store.update("key", increment)

    assert result == "2"
    assert pipe.execute.await_count == 2
    assert pipe.reset.await_count == 2


@pytest.mark.asyncio
async def test_update_gives_up_after_retries():
    client, pipe = mock_pipeline(WatchError())
    store = RedisStore(client, transaction_retries=3)

    with pytest.raises(TransactionConflictError) as exc_info:
        await store.update("key", increment)

    assert exc_info.value.code == ServiceErrorCode.TRANSACTION_CONFLICT
    assert pipe.execute.await_count == 3
    assert exc_info.value.to_dict() == {
        "code": ServiceErrorCode.TRANSACTION_CONFLICT,
        "message": "Gave up updating key after 3 conflicting attempts",
        "details": {"key": "key", "attempts": 3},
    }


@pytest.mark.asyncio
async def test_connection_errors_become_store_unavailable():
    """Connection failures surface as StoreUnavailableError"""
    client = MagicMock()
    client.get = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
    store = RedisStore(client)

    with pytest.raises(StoreUnavailableError) as exc_info:
        await store.get("participant:1")

    assert exc_info.value.code == ServiceErrorCode.STORE_UNAVAILABLE
    assert exc_info.value.details["key"] == "participant:1"


@pytest.mark.asyncio
async def test_atomic_runs_queued_commands(store):
    def build(pipe):
        pipe.set("a", "1")
        pipe.sadd("members", "x", "y")
        pipe.delete("missing")

    results = await store.atomic(build)

    assert len(results) == 3
    assert await store.get("a") == "1"
    assert await store.smembers("members") == {"x", "y"}
