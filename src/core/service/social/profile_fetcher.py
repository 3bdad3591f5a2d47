"""
Follower/following count fetchers.

Counts come from a browser-automation sidecar that drives one shared browser
session, so every fetch is funneled through a single-worker queue.
"""

import asyncio
import math
import re
from typing import Any, Optional, Protocol, Tuple

import httpx

from src.core.http_client import create_client
from src.core.logger.logger import get_logger
from src.core.service.giveaway.models.social import ProfileCounts

logger = get_logger(__name__)

COUNT_PATTERN = re.compile(r"^([\d.]+)\s*([MK])?$", re.IGNORECASE)
SUFFIX_MULTIPLIERS = {"K": 1_000, "M": 1_000_000}


class ProfileCountFetcher(Protocol):
    async def fetch(self, url: str) -> ProfileCounts:
        ...


def parse_count(value: Any) -> Optional[int]:
    """Parse counts such as 1520, "1,520", "1.5K" or "2M"; None when unreadable"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return round(value) if math.isfinite(value) else None

    clean = str(value).replace(",", "").strip()
    if not clean:
        return None
    match = COUNT_PATTERN.match(clean)
    if match:
        try:
            base = float(match.group(1))
        except ValueError:
            return None
        suffix = (match.group(2) or "").upper()
        return round(base * SUFFIX_MULTIPLIERS.get(suffix, 1))

    digits = re.sub(r"[^\d]", "", clean)
    return int(digits) if digits else None


class HttpProfileCountFetcher:
    """Reads counts from the profile count service over HTTP"""

    def __init__(self, service_url: str, client: Optional[httpx.AsyncClient] = None):
        self.service_url = service_url
        self.client = client or create_client("profile_counts")

    async def fetch(self, url: str) -> ProfileCounts:
        try:
            response = await self.client.get(self.service_url, params={"url": url})
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "Profile count request failed",
                extra={"profile_url": url, "error": str(e)}
            )
            return ProfileCounts.failed(url)

        if not isinstance(payload, dict):
            logger.warning("Unexpected profile count payload", extra={"profile_url": url})
            return ProfileCounts.failed(url)

        return ProfileCounts(
            url=payload.get("url") or url,
            followers=parse_count(payload.get("followers")),
            following=parse_count(payload.get("following")),
            success=True,
        )

    async def close(self) -> None:
        await self.client.aclose()


class QueuedProfileCountFetcher:
    """Serializes fetches: one in-flight navigation at a time, callers await their turn"""

    def __init__(self, fetcher: ProfileCountFetcher):
        self.fetcher = fetcher
        self._queue: "asyncio.Queue[Tuple[str, asyncio.Future]]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            url, future = await self._queue.get()
            try:
                if future.cancelled():
                    continue
                try:
                    result = await self.fetcher.fetch(url)
                except Exception as e:
                    if not future.done():
                        future.set_exception(e)
                else:
                    if not future.done():
                        future.set_result(result)
            finally:
                self._queue.task_done()

    async def fetch(self, url: str) -> ProfileCounts:
        self._ensure_worker()
        future = asyncio.get_running_loop().create_future()
        await self._queue.put((url, future))
        return await future

    async def close(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        close = getattr(self.fetcher, "close", None)
        if close is not None:
            await close()
