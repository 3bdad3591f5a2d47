"""
Redis-backed key-value store shared by every ledger component.
Single source of truth; all services are stateless over it.
"""

from contextlib import contextmanager
from typing import Any, AsyncIterator, Callable, Iterator, List, Optional, Set

from redis.asyncio import Redis
from redis.asyncio.client import Pipeline
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.exceptions import WatchError

from src.core.exceptions.base import StoreUnavailableError, TransactionConflictError
from src.core.logger.logger import get_logger

logger = get_logger(__name__)

COMPARE_AND_DELETE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
else
    return 0
end
"""

COMPARE_AND_PEXPIRE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("PEXPIRE", KEYS[1], ARGV[2])
else
    return 0
end
"""

# Receives the current raw value (or None) and returns the value to write,
# or None to leave the key untouched
Mutator = Callable[[Optional[str]], Optional[str]]


@contextmanager
def _store_errors(operation: str, key: Optional[str] = None) -> Iterator[None]:
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        logger.error(
            "Store operation failed",
            extra={"operation": operation, "key": key, "error": str(e)}
        )
        raise StoreUnavailableError(
            f"Store unavailable during {operation}",
            {"operation": operation, "key": key}
        ) from e


class RedisStore:
    """Thin async contract over a Redis client"""

    def __init__(self, redis_client: Redis, transaction_retries: int = 10):
        self.redis = redis_client
        self.transaction_retries = transaction_retries

    async def get(self, key: str) -> Optional[str]:
        with _store_errors("get", key):
            return await self.redis.get(key)

    async def set(
        self,
        key: str,
        value: str,
        ex: Optional[int] = None,
        px: Optional[int] = None,
        nx: bool = False
    ) -> bool:
        """Set a value; with nx=True returns False when the key already exists"""
        with _store_errors("set", key):
            result = await self.redis.set(key, value, ex=ex, px=px, nx=nx)
            return bool(result)

    async def mget(self, keys: List[str]) -> List[Optional[str]]:
        if not keys:
            return []
        with _store_errors("mget"):
            return await self.redis.mget(keys)

    async def scan_keys(self, pattern: str, count: int = 500) -> AsyncIterator[str]:
        with _store_errors("scan", pattern):
            async for key in self.redis.scan_iter(match=pattern, count=count):
                yield key

    async def delete(self, key: str) -> bool:
        with _store_errors("delete", key):
            return bool(await self.redis.delete(key))

    async def exists(self, key: str) -> bool:
        with _store_errors("exists", key):
            return bool(await self.redis.exists(key))

    async def sadd(self, key: str, *members: str) -> int:
        with _store_errors("sadd", key):
            return await self.redis.sadd(key, *members)

    async def smembers(self, key: str) -> Set[str]:
        with _store_errors("smembers", key):
            return set(await self.redis.smembers(key))

    async def atomic(self, build: Callable[[Pipeline], None]) -> List[Any]:
        """Queue several commands with `build` and run them in one MULTI/EXEC"""
        with _store_errors("atomic"):
            async with self.redis.pipeline(transaction=True) as pipe:
                build(pipe)
                return await pipe.execute()

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        """Delete the key only while it still holds the expected value"""
        with _store_errors("compare_and_delete", key):
            result = await self.redis.eval(COMPARE_AND_DELETE_SCRIPT, 1, key, expected)
            return bool(result)

    async def compare_and_pexpire(self, key: str, expected: str, ttl_ms: int) -> bool:
        """Extend the TTL only while the key still holds the expected value"""
        with _store_errors("compare_and_pexpire", key):
            result = await self.redis.eval(COMPARE_AND_PEXPIRE_SCRIPT, 1, key, expected, ttl_ms)
            return bool(result)

    async def update(self, key: str, mutate: Mutator) -> Optional[str]:
        """
        Optimistic read-modify-write of a single key.

        The key is WATCHed, read, passed to `mutate`, and written back inside
        MULTI/EXEC. A concurrent writer aborts the EXEC and the whole cycle is
        retried against the fresh value, so `mutate` must be pure.

        Returns:
            The value stored after the call (the untouched current value when
            `mutate` returned None)
        """
        with _store_errors("update", key):
            async with self.redis.pipeline(transaction=True) as pipe:
                for _ in range(self.transaction_retries):
                    try:
                        await pipe.watch(key)
                        current = await pipe.get(key)
                        updated = mutate(current)
                        if updated is None:
                            return current
                        pipe.multi()
                        pipe.set(key, updated)
                        await pipe.execute()
                        return updated
                    except WatchError:
                        logger.debug("Concurrent update detected, retrying", extra={"key": key})
                        continue
                    finally:
                        await pipe.reset()

        raise TransactionConflictError(key, self.transaction_retries)
