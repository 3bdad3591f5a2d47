from typing import Optional, Tuple

from src.core.logger.logger import get_logger
from src.infra.store import RedisStore

logger = get_logger(__name__)

PENDING_MARK = "pending:"


class ContactIndex:
    """
    Ownership keys for unique contact values, `contact:{field}:{normalized}`.

    A claim starts out pending (`pending:{id}`, expiring) while the owner's
    record is written, and is confirmed (`{id}`, no expiry) afterwards, so a
    writer that dies mid-update never blocks the value for good.
    """

    def __init__(self, store: RedisStore, pending_ttl_seconds: int = 60):
        self.store = store
        self.pending_ttl_seconds = pending_ttl_seconds
        self.key_prefix = "contact:"

    def _get_key(self, field: str, normalized: str) -> str:
        return f"{self.key_prefix}{field}:{normalized}"

    async def owner(self, field: str, normalized: str) -> Optional[Tuple[int, bool]]:
        """(participant id, pending) of the current claim, if any"""
        raw = await self.store.get(self._get_key(field, normalized))
        if not raw:
            return None
        pending = raw.startswith(PENDING_MARK)
        if pending:
            raw = raw[len(PENDING_MARK):]
        try:
            return int(raw), pending
        except ValueError:
            key = self._get_key(field, normalized)
            logger.error("Unreadable contact claim discarded", extra={"key": key})
            await self.store.delete(key)
            return None

    async def claim(self, field: str, normalized: str, participant_id: int) -> bool:
        """Take a pending claim; False when the value is already claimed"""
        return await self.store.set(
            self._get_key(field, normalized),
            f"{PENDING_MARK}{participant_id}",
            ex=self.pending_ttl_seconds,
            nx=True,
        )

    async def confirm(self, field: str, normalized: str, participant_id: int) -> None:
        await self.store.set(self._get_key(field, normalized), str(participant_id))

    async def release(self, field: str, normalized: str, participant_id: int) -> None:
        """Drop the claim only while it still belongs to `participant_id`"""
        key = self._get_key(field, normalized)
        if not await self.store.compare_and_delete(key, str(participant_id)):
            await self.store.compare_and_delete(key, f"{PENDING_MARK}{participant_id}")
