from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from src.core.exceptions.base import TransactionConflictError
from src.core.logger.logger import get_logger
from src.core.service.giveaway.cache.contact_index import ContactIndex
from src.core.service.giveaway.cache.participant_store import ParticipantStore
from src.core.service.giveaway.contact import (
    normalize_contact_value,
    stored_contact_value,
    validate_contact_value,
)
from src.core.service.giveaway.models.challenge import Challenge
from src.core.service.giveaway.models.participant import (
    ContactPatch,
    ContactUpdateResult,
    DisplayPatch,
    DuplicateContact,
    InvalidContact,
    Participant,
    QuestProgress,
    QuestStatus,
    ReferralReward,
    apply_patch,
    utc_now,
)
from src.core.service.giveaway.models.quest import QuestCatalog
from src.infra.config.settings import settings

logger = get_logger(__name__)

ReferralRewardCallback = Callable[[ReferralReward], Awaitable[None]]


class ParticipantLedger:
    """Participant records, quest completion, points and referral bookkeeping"""

    CONTACT_CLAIM_ATTEMPTS = 3

    def __init__(
        self,
        participant_store: ParticipantStore,
        catalog: QuestCatalog,
        referral_bonus_points: int = settings.REFERRAL_BONUS_POINTS,
        on_referral_reward: Optional[ReferralRewardCallback] = None,
        contact_index: Optional[ContactIndex] = None,
    ):
        self.store = participant_store
        self.contacts = contact_index or ContactIndex(participant_store.store)
        self.catalog = catalog
        self.referral_bonus_points = referral_bonus_points
        self.on_referral_reward = on_referral_reward

    async def get(self, participant_id: int) -> Optional[Participant]:
        return await self.store.get(participant_id)

    async def get_or_create(
        self,
        participant_id: int,
        display: Optional[DisplayPatch] = None,
        referred_by: Optional[int] = None,
    ) -> Participant:
        """
        Load or materialize a participant, refreshing display attributes.

        `referred_by` is only honored for a participant without a referrer
        and never for the participant's own id.
        """
        def mutation(participant: Participant) -> Optional[Participant]:
            updated = apply_patch(participant, display) if display else participant
            if (
                referred_by is not None
                and updated.referred_by is None
                and referred_by != participant_id
            ):
                updated = updated.model_copy(update={"referred_by": referred_by})
            return updated if updated is not participant else None

        return await self.store.update(participant_id, mutation)

    async def assign_referrer(self, participant_id: int, referrer_id: int) -> Participant:
        return await self.get_or_create(participant_id, referred_by=referrer_id)

    async def complete_quest(
        self,
        participant_id: int,
        quest_id: str,
        metadata: Optional[str] = None,
    ) -> Participant:
        """
        Mark a quest completed and credit its points once.

        Completing an already completed quest only refreshes metadata. The
        referral bonus is evaluated after every completion.
        """
        definition = self.catalog.require(quest_id)
        awarded: List[int] = []

        def mutation(participant: Participant) -> Participant:
            awarded.clear()
            progress = participant.quests.get(quest_id) or QuestProgress()
            changes = {}
            if not progress.completed:
                changes.update(completed=True, completed_at=utc_now())
            if metadata:
                changes["metadata"] = metadata
            quests = dict(participant.quests)
            quests[quest_id] = progress.model_copy(update=changes)

            update = {"quests": quests}
            already_awarded = participant.quest_points.get(quest_id, 0)
            if definition.point_value > already_awarded:
                delta = definition.point_value - already_awarded
                quest_points = dict(participant.quest_points)
                quest_points[quest_id] = definition.point_value
                update.update(quest_points=quest_points, points=participant.points + delta)
                awarded.append(delta)
            return participant.model_copy(update=update)

        participant = await self.store.update(participant_id, mutation)
        logger.info(
            "Quest completed",
            extra={
                "participant_id": participant_id,
                "quest_id": quest_id,
                "points_awarded": sum(awarded),
                "points": participant.points,
            }
        )

        return await self._evaluate_referral_bonus(participant)

    async def _evaluate_referral_bonus(self, participant: Participant) -> Participant:
        """Credit the referrer once, on the referred participant's first completed quest"""
        if (
            participant.referred_by is None
            or participant.referral_bonus_claimed
            or not participant.completed_quest_ids()
        ):
            return participant

        referred_id = participant.participant_id
        referrer_id = participant.referred_by
        credited: List[bool] = []

        referrer = await self.store.get(referrer_id)
        if referrer is None:
            logger.warning(
                "Referrer not found, bonus skipped",
                extra={"participant_id": referred_id, "referrer_id": referrer_id}
            )
        elif self.referral_bonus_points > 0:
            def credit(record: Participant) -> Optional[Participant]:
                credited.clear()
                if referred_id in record.credited_referrals:
                    return None
                credited.append(True)
                return record.model_copy(
                    update={
                        "credited_referrals": [*record.credited_referrals, referred_id],
                        "points": record.points + self.referral_bonus_points,
                    }
                )

            referrer = await self.store.update(referrer_id, credit)

        def claim(record: Participant) -> Optional[Participant]:
            if record.referral_bonus_claimed:
                return None
            return record.model_copy(update={"referral_bonus_claimed": True})

        participant = await self.store.update(referred_id, claim)

        if credited:
            logger.info(
                "Referral bonus credited",
                extra={
                    "participant_id": referred_id,
                    "referrer_id": referrer_id,
                    "points": self.referral_bonus_points,
                }
            )
            await self._notify_referral_reward(
                ReferralReward(
                    referrer=referrer,
                    referred_participant_id=referred_id,
                    points=self.referral_bonus_points,
                )
            )
        return participant

    async def _notify_referral_reward(self, reward: ReferralReward) -> None:
        if self.on_referral_reward is None:
            return
        try:
            await self.on_referral_reward(reward)
        except Exception as e:
            logger.error(
                "Failed to deliver referral reward notification",
                extra={"referrer_id": reward.referrer.participant_id, "error": str(e)}
            )

    async def set_quest_metadata(self, participant_id: int, quest_id: str, metadata: str) -> Participant:
        self.catalog.require(quest_id)

        def mutation(participant: Participant) -> Participant:
            quests = dict(participant.quests)
            progress = quests.get(quest_id) or QuestProgress()
            quests[quest_id] = progress.model_copy(update={"metadata": metadata})
            return participant.model_copy(update={"quests": quests})

        return await self.store.update(participant_id, mutation)

    async def has_completed_quest(self, participant_id: int, quest_id: str) -> bool:
        participant = await self.get_or_create(participant_id)
        return participant.has_completed(quest_id)

    async def quest_status(self, participant_id: int) -> List[QuestStatus]:
        """Per-quest progress in catalog order"""
        participant = await self.get_or_create(participant_id)
        statuses = []
        for definition in self.catalog.definitions:
            progress = participant.quests.get(definition.id) or QuestProgress()
            statuses.append(
                QuestStatus(
                    quest_id=definition.id,
                    title=definition.title,
                    mandatory=definition.mandatory,
                    point_value=definition.point_value,
                    completed=progress.completed,
                    completed_at=progress.completed_at,
                    metadata=progress.metadata,
                )
            )
        return statuses

    async def update_contact(self, participant_id: int, contact: ContactPatch) -> ContactUpdateResult:
        """
        Apply contact fields, all or nothing.

        Every supplied field is validated, then its normalized value is
        claimed in the contact index; a value held by another participant
        rejects the whole update. Records written before the index existed
        are caught by a scan over all participants.
        """
        supplied = {
            field: value.strip()
            for field, value in contact.model_dump(exclude_none=True).items()
            if value.strip()
        }
        if not supplied:
            return ContactUpdateResult(participant=await self.get_or_create(participant_id))

        for field, value in supplied.items():
            if not validate_contact_value(field, value):
                logger.warning(
                    "Invalid contact rejected",
                    extra={"participant_id": participant_id, "field": field}
                )
                return ContactUpdateResult(
                    participant=await self.get_or_create(participant_id),
                    invalid=InvalidContact(field=field, value=value),
                )

        values = {field: stored_contact_value(field, value) for field, value in supplied.items()}
        wanted = {field: normalize_contact_value(field, value) for field, value in values.items()}
        claimed: List[str] = []
        committed = False
        try:
            for field, key in wanted.items():
                owner_id, newly_claimed = await self._claim_contact(participant_id, field, key)
                if newly_claimed:
                    claimed.append(field)
                if owner_id is not None:
                    return await self._reject_duplicate(participant_id, field, supplied[field], owner_id)

            owner_id, field = await self._find_unindexed_duplicate(participant_id, wanted)
            if owner_id is not None:
                return await self._reject_duplicate(participant_id, field, supplied[field], owner_id)

            previous: Dict[str, Optional[str]] = {}

            def mutation(current: Participant) -> Participant:
                previous.clear()
                previous.update({field: getattr(current, field) for field in values})
                return apply_patch(current, ContactPatch(**values))

            participant = await self.store.update(participant_id, mutation)
            committed = True
        finally:
            if not committed:
                for field in claimed:
                    await self.contacts.release(field, wanted[field], participant_id)

        for field, key in wanted.items():
            await self.contacts.confirm(field, key, participant_id)
            old_key = normalize_contact_value(field, previous.get(field))
            if old_key is not None and old_key != key:
                await self.contacts.release(field, old_key, participant_id)

        logger.info(
            "Contact updated",
            extra={"participant_id": participant_id, "fields": sorted(supplied)}
        )
        return ContactUpdateResult(participant=participant)

    async def _claim_contact(self, participant_id: int, field: str, key: str) -> Tuple[Optional[int], bool]:
        """
        Claim one contact value.

        Returns the conflicting owner (None when the value is ours) and
        whether this call created the claim.
        """
        for _ in range(self.CONTACT_CLAIM_ATTEMPTS):
            if await self.contacts.claim(field, key, participant_id):
                return None, True

            entry = await self.contacts.owner(field, key)
            if entry is None:
                continue
            owner_id, pending = entry
            if owner_id == participant_id:
                return None, False
            if pending:
                return owner_id, False

            # A confirmed claim is stale once its owner's record moved on
            holder = await self.store.get(owner_id)
            if holder is not None and normalize_contact_value(field, getattr(holder, field)) == key:
                return owner_id, False
            logger.info(
                "Releasing stale contact claim",
                extra={"field": field, "owner_id": owner_id}
            )
            await self.contacts.release(field, key, owner_id)

        raise TransactionConflictError(f"contact:{field}", self.CONTACT_CLAIM_ATTEMPTS)

    async def _find_unindexed_duplicate(
        self,
        participant_id: int,
        wanted: Dict[str, Optional[str]],
    ) -> Tuple[Optional[int], Optional[str]]:
        for other in await self.store.list_all():
            if other.participant_id == participant_id:
                continue
            for field, key in wanted.items():
                if normalize_contact_value(field, getattr(other, field)) == key:
                    return other.participant_id, field
        return None, None

    async def _reject_duplicate(
        self,
        participant_id: int,
        field: str,
        value: str,
        owner_id: int,
    ) -> ContactUpdateResult:
        logger.warning(
            "Duplicate contact rejected",
            extra={
                "participant_id": participant_id,
                "field": field,
                "conflicting_participant_id": owner_id,
            }
        )
        return ContactUpdateResult(
            participant=await self.get_or_create(participant_id),
            duplicate=DuplicateContact(field=field, value=value, conflicting_participant_id=owner_id),
        )

    async def set_pending_challenge(self, participant_id: int, challenge: Challenge) -> Participant:
        """Store a fresh challenge; overwriting the previous one resets the attempt counter"""
        return await self.store.update(
            participant_id,
            lambda participant: participant.model_copy(
                update={"pending_challenge": challenge, "challenge_attempts": 0}
            ),
        )

    async def record_failed_challenge(self, participant_id: int) -> Participant:
        return await self.store.update(
            participant_id,
            lambda participant: participant.model_copy(
                update={"challenge_attempts": participant.challenge_attempts + 1}
            ),
        )

    async def mark_challenge_passed(self, participant_id: int) -> Participant:
        participant = await self.store.update(
            participant_id,
            lambda participant: participant.model_copy(
                update={"challenge_passed": True, "pending_challenge": None}
            ),
        )
        logger.info("Challenge passed", extra={"participant_id": participant_id})
        return participant

    def is_eligible(self, participant: Participant) -> bool:
        return participant.challenge_passed and all(
            participant.has_completed(quest_id) for quest_id in self.catalog.mandatory_ids
        )

    async def count_eligible(self) -> int:
        participants = await self.store.list_all()
        return sum(1 for participant in participants if self.is_eligible(participant))

    async def list_participants(self) -> List[Participant]:
        return await self.store.list_all()
