from typing import Optional

from pydantic import ValidationError

from src.core.logger.logger import get_logger
from src.core.service.giveaway.models.social import SocialVerificationBaseline
from src.infra.config.settings import settings
from src.infra.store import RedisStore

logger = get_logger(__name__)


class BaselineStore:
    """Redis store for follow-verification baselines and their capture markers"""

    def __init__(
        self,
        store: RedisStore,
        ttl_seconds: int = settings.SOCIAL_BASELINE_TTL_SECONDS,
        pending_ttl_seconds: int = settings.SOCIAL_BASELINE_PENDING_TTL_SECONDS,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.pending_ttl_seconds = pending_ttl_seconds
        self.key_prefix = "baseline:"
        self.pending_key_prefix = "baseline-pending:"

    def _get_key(self, participant_id: int, quest_id: str) -> str:
        return f"{self.key_prefix}{participant_id}:{quest_id}"

    def _get_pending_key(self, participant_id: int, quest_id: str) -> str:
        return f"{self.pending_key_prefix}{participant_id}:{quest_id}"

    async def get(self, participant_id: int, quest_id: str) -> Optional[SocialVerificationBaseline]:
        key = self._get_key(participant_id, quest_id)
        data = await self.store.get(key)
        if not data:
            return None
        try:
            return SocialVerificationBaseline.model_validate_json(data)
        except ValidationError as e:
            logger.error("Unreadable baseline discarded", extra={"key": key, "error": str(e)})
            await self.store.delete(key)
            return None

    async def save(self, participant_id: int, quest_id: str, baseline: SocialVerificationBaseline) -> None:
        await self.store.set(
            self._get_key(participant_id, quest_id),
            baseline.model_dump_json(),
            ex=self.ttl_seconds,
        )
        logger.debug(
            "Saved baseline",
            extra={"participant_id": participant_id, "quest_id": quest_id, "ttl": self.ttl_seconds}
        )

    async def clear(self, participant_id: int, quest_id: str) -> None:
        await self.store.delete(self._get_key(participant_id, quest_id))

    async def mark_pending(self, participant_id: int, quest_id: str) -> bool:
        """Claim the capture marker; False when another capture is already running"""
        return await self.store.set(
            self._get_pending_key(participant_id, quest_id),
            "1",
            ex=self.pending_ttl_seconds,
            nx=True,
        )

    async def clear_pending(self, participant_id: int, quest_id: str) -> None:
        await self.store.delete(self._get_pending_key(participant_id, quest_id))
