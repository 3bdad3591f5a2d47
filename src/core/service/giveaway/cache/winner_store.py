from typing import List, Optional

from pydantic import ValidationError

from src.core.logger.logger import get_logger
from src.core.service.giveaway.models.winner import WinnerRecord
from src.infra.config.settings import settings
from src.infra.store import RedisStore

logger = get_logger(__name__)


class WinnerStore:
    """Redis store for confirmed winners, their candidate wallets and wallet prompts"""

    def __init__(
        self,
        store: RedisStore,
        pending_wallet_ttl_seconds: int = settings.WINNER_PENDING_WALLET_TTL_SECONDS,
    ):
        self.store = store
        self.pending_wallet_ttl_seconds = pending_wallet_ttl_seconds
        self.key_prefix = "winner:"
        self.list_key = "winner:list"
        self.candidate_key_prefix = "winner:candidate_wallet:"
        self.pending_key_prefix = "winner:pending_wallet:"

    def _get_key(self, participant_id: int) -> str:
        return f"{self.key_prefix}{participant_id}"

    def _get_candidate_key(self, participant_id: int) -> str:
        return f"{self.candidate_key_prefix}{participant_id}"

    def _get_pending_key(self, participant_id: int) -> str:
        return f"{self.pending_key_prefix}{participant_id}"

    def _deserialize(self, data: str, key: str) -> Optional[WinnerRecord]:
        try:
            return WinnerRecord.model_validate_json(data)
        except ValidationError as e:
            logger.error("Unreadable winner record", extra={"key": key, "error": str(e)})
            return None

    async def get(self, participant_id: int) -> Optional[WinnerRecord]:
        key = self._get_key(participant_id)
        data = await self.store.get(key)
        if not data:
            return None
        return self._deserialize(data, key)

    async def exists(self, participant_id: int) -> bool:
        return await self.store.exists(self._get_key(participant_id))

    async def list_all(self) -> List[WinnerRecord]:
        """Every winner in the winner set; unreadable records are skipped"""
        members = await self.store.smembers(self.list_key)
        if not members:
            return []

        keys = [self._get_key(int(member)) for member in sorted(members)]
        winners: List[WinnerRecord] = []
        for key, data in zip(keys, await self.store.mget(keys)):
            if not data:
                continue
            record = self._deserialize(data, key)
            if record is not None:
                winners.append(record)
        return winners

    async def save_confirmed(self, record: WinnerRecord) -> None:
        """Write the record, add it to the winner set and drop its wallet prompt state, in one transaction"""
        participant_id = record.participant_id
        data = record.model_dump_json()

        def build(pipe):
            pipe.set(self._get_key(participant_id), data)
            pipe.sadd(self.list_key, str(participant_id))
            pipe.delete(self._get_candidate_key(participant_id), self._get_pending_key(participant_id))

        await self.store.atomic(build)
        logger.debug("Saved winner", extra={"participant_id": participant_id})

    async def get_candidate_wallet(self, participant_id: int) -> Optional[str]:
        return await self.store.get(self._get_candidate_key(participant_id))

    async def save_candidate_wallet(self, participant_id: int, wallet: str) -> None:
        await self.store.set(self._get_candidate_key(participant_id), wallet)

    async def clear_candidate_wallet(self, participant_id: int) -> None:
        await self.store.delete(self._get_candidate_key(participant_id))

    async def mark_awaiting_wallet(self, participant_id: int) -> None:
        await self.store.set(self._get_pending_key(participant_id), "1", ex=self.pending_wallet_ttl_seconds)

    async def clear_awaiting_wallet(self, participant_id: int) -> None:
        await self.store.delete(self._get_pending_key(participant_id))

    async def is_awaiting_wallet(self, participant_id: int) -> bool:
        return await self.store.exists(self._get_pending_key(participant_id))
