"""
Lease-based lock guaranteeing a single long-poll consumer per store.

The holder keeps the lease alive by extending its TTL every half period; a
crashed holder blocks new acquirers for at most one TTL.
"""

import asyncio
import uuid
from typing import Optional

from src.core.exceptions.base import LockContentionError
from src.core.logger.logger import get_logger
from src.infra.config.settings import settings
from src.infra.store import RedisStore

logger = get_logger(__name__)

REFRESH_FRACTION = 0.5
MIN_REFRESH_INTERVAL_MS = 1_000


class PollingLock:
    """Singleton lock over a shared Redis key"""

    def __init__(
        self,
        store: RedisStore,
        key: str = settings.POLLING_LOCK_KEY,
        ttl_ms: int = settings.POLLING_LOCK_TTL_MS,
    ):
        self.store = store
        self.key = key
        self.ttl_ms = ttl_ms
        self.refresh_interval = max(MIN_REFRESH_INTERVAL_MS, int(ttl_ms * REFRESH_FRACTION)) / 1000
        self.token: Optional[str] = None
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def held(self) -> bool:
        return self.token is not None

    async def acquire(self) -> None:
        if self.token:
            raise LockContentionError("Polling lock already acquired")

        token = str(uuid.uuid4())
        acquired = await self.store.set(self.key, token, px=self.ttl_ms, nx=True)
        if not acquired:
            raise LockContentionError(details={"key": self.key})

        self.token = token
        self._start_refresh_loop()
        logger.info("Polling lock acquired", extra={"key": self.key, "ttl_ms": self.ttl_ms})

    async def release(self) -> None:
        """Give the lease back if it is still ours. Never raises."""
        if not self.token:
            return

        await self._stop_refresh_loop()
        try:
            released = await self.store.compare_and_delete(self.key, self.token)
            if released:
                logger.info("Polling lock released", extra={"key": self.key})
            else:
                logger.warning("Polling lock was no longer held on release", extra={"key": self.key})
        except Exception as e:
            logger.error("Failed to release polling lock", extra={"key": self.key, "error": str(e)})
        finally:
            self.token = None

    def _start_refresh_loop(self) -> None:
        self._refresh_task = asyncio.create_task(self._refresh_loop())

    async def _stop_refresh_loop(self) -> None:
        task, self._refresh_task = self._refresh_task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _refresh_loop(self) -> None:
        while self.token:
            await asyncio.sleep(self.refresh_interval)
            if not await self._refresh():
                self._refresh_task = None
                return

    async def _refresh(self) -> bool:
        """Extend the lease; False once it has been lost"""
        token = self.token
        if not token:
            return False
        try:
            extended = await self.store.compare_and_pexpire(self.key, token, self.ttl_ms)
        except Exception as e:
            logger.error("Failed to refresh polling lock", extra={"key": self.key, "error": str(e)})
            return True

        if not extended:
            logger.warning(
                "Polling lock token changed unexpectedly; stopping refresh loop",
                extra={"key": self.key}
            )
            return False
        return True
