from typing import Callable, List, Optional

from pydantic import ValidationError

from src.core.logger.logger import get_logger
from src.core.service.giveaway.models.participant import (
    Participant,
    new_participant,
    normalize_participant,
    utc_now,
)
from src.infra.store import RedisStore

logger = get_logger(__name__)

# Receives the current (normalized) participant and returns the updated record,
# or None when nothing needs to change
ParticipantMutation = Callable[[Participant], Optional[Participant]]


class ParticipantStore:
    """Redis store for participant records"""

    MGET_CHUNK_SIZE = 500

    def __init__(self, store: RedisStore, quest_ids: List[str]):
        self.store = store
        self.quest_ids = list(quest_ids)
        self.key_prefix = "participant:"
        self.quarantine_prefix = "participant-quarantine:"

    def _get_key(self, participant_id: int) -> str:
        """Get Redis key for participant id"""
        return f"{self.key_prefix}{participant_id}"

    def _serialize(self, participant: Participant) -> str:
        return participant.model_dump_json()

    def _deserialize(self, data: str, key: str) -> Optional[Participant]:
        """Parse a stored record; unreadable records are treated as absent"""
        try:
            return Participant.model_validate_json(data)
        except ValidationError as e:
            logger.error(
                "Unreadable participant record",
                extra={"key": key, "error": str(e)}
            )
            return None

    async def _quarantine(self, participant_id: int, data: str) -> None:
        await self.store.set(f"{self.quarantine_prefix}{participant_id}", data)
        logger.warning(
            "Participant record quarantined",
            extra={"participant_id": participant_id}
        )

    async def get(self, participant_id: int) -> Optional[Participant]:
        """Load a participant, persisting any schema backfill before returning it"""
        key = self._get_key(participant_id)
        data = await self.store.get(key)
        if not data:
            return None

        participant = self._deserialize(data, key)
        if participant is None:
            await self._quarantine(participant_id, data)
            return None

        normalized = normalize_participant(participant, self.quest_ids)
        if normalized is not participant:
            normalized = await self.update(participant_id, lambda current: None)
            logger.debug(
                "Backfilled participant quests",
                extra={"participant_id": participant_id}
            )
        return normalized

    async def update(self, participant_id: int, mutation: ParticipantMutation) -> Participant:
        """
        Get-or-create the participant and apply `mutation` atomically.

        Absent (or unreadable) records are materialized with zeroed defaults
        before the mutation runs, and are persisted even when the mutation
        makes no change.
        """
        key = self._get_key(participant_id)
        unreadable: List[str] = []

        def mutate(current: Optional[str]) -> Optional[str]:
            unreadable.clear()
            participant = self._deserialize(current, key) if current else None
            if current and participant is None:
                unreadable.append(current)

            if participant is None:
                base = new_participant(participant_id, self.quest_ids)
                dirty = True
            else:
                base = normalize_participant(participant, self.quest_ids)
                dirty = base is not participant

            updated = mutation(base)
            if updated is None:
                if not dirty:
                    return None
                updated = base

            updated = updated.model_copy(update={"updated_at": utc_now()})
            return self._serialize(updated)

        try:
            data = await self.store.update(key, mutate)
        except Exception as e:
            logger.error(
                "Error updating participant",
                extra={"participant_id": participant_id, "error": str(e)}
            )
            raise

        if unreadable:
            await self._quarantine(participant_id, unreadable[0])
        return Participant.model_validate_json(data)

    async def list_all(self) -> List[Participant]:
        """Full scan of every stored participant; backfilled records are written back"""
        keys = [key async for key in self.store.scan_keys(f"{self.key_prefix}*")]
        participants: List[Participant] = []

        for start in range(0, len(keys), self.MGET_CHUNK_SIZE):
            chunk = keys[start:start + self.MGET_CHUNK_SIZE]
            values = await self.store.mget(chunk)
            for key, data in zip(chunk, values):
                if not data:
                    continue
                participant = self._deserialize(data, key)
                if participant is None:
                    continue
                normalized = normalize_participant(participant, self.quest_ids)
                if normalized is not participant:
                    normalized = await self.update(participant.participant_id, lambda current: None)
                participants.append(normalized)

        return participants
