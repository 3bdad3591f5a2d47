from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, Field

from src.core.service.giveaway.models.challenge import Challenge

PARTICIPANT_SCHEMA_VERSION = 1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QuestProgress(BaseModel):
    """Completion state of a single quest for a single participant"""
    completed: bool = False
    completed_at: Optional[datetime] = None
    metadata: Optional[str] = None


class Participant(BaseModel):
    """Campaign entrant as persisted under participant:{id}"""
    schema_version: int = PARTICIPANT_SCHEMA_VERSION
    participant_id: int

    # Display attributes, refreshed on every interaction
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    # Human verification gate
    challenge_passed: bool = False
    challenge_attempts: int = 0
    pending_challenge: Optional[Challenge] = None

    # Quests & points
    quests: Dict[str, QuestProgress] = Field(default_factory=dict)
    points: int = 0
    quest_points: Dict[str, int] = Field(default_factory=dict)

    # Referrals
    referred_by: Optional[int] = None
    referral_bonus_claimed: bool = False
    credited_referrals: List[int] = Field(default_factory=list)

    # Contact details, each unique across participants
    email: Optional[str] = None
    wallet: Optional[str] = None
    solana_wallet: Optional[str] = None
    x_profile_url: Optional[str] = None
    instagram_profile_url: Optional[str] = None
    discord_user_id: Optional[str] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def has_completed(self, quest_id: str) -> bool:
        progress = self.quests.get(quest_id)
        return bool(progress and progress.completed)

    def completed_quest_ids(self) -> List[str]:
        return [quest_id for quest_id, progress in self.quests.items() if progress.completed]

    @property
    def referrals_count(self) -> int:
        return len(self.credited_referrals)


class DisplayPatch(BaseModel):
    """Display attributes a chat update may refresh; None leaves a field untouched"""
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class ContactPatch(BaseModel):
    """Contact fields a participant may submit; None leaves a field untouched"""
    email: Optional[str] = None
    wallet: Optional[str] = None
    solana_wallet: Optional[str] = None
    x_profile_url: Optional[str] = None
    instagram_profile_url: Optional[str] = None
    discord_user_id: Optional[str] = None


UNIQUE_CONTACT_FIELDS = tuple(ContactPatch.model_fields)


class DuplicateContact(BaseModel):
    """A contact value already held by another participant"""
    field: str
    value: str
    conflicting_participant_id: int


class InvalidContact(BaseModel):
    """A contact value that failed format validation"""
    field: str
    value: str


class ContactUpdateResult(BaseModel):
    participant: Participant
    duplicate: Optional[DuplicateContact] = None
    invalid: Optional[InvalidContact] = None

    @property
    def success(self) -> bool:
        return self.duplicate is None and self.invalid is None


class ReferralReward(BaseModel):
    """Referral bonus credited to a referrer after a referred participant's first completion"""
    referrer: Participant
    referred_participant_id: int
    points: int


class QuestStatus(BaseModel):
    quest_id: str
    title: str
    mandatory: bool
    point_value: int
    completed: bool
    completed_at: Optional[datetime] = None
    metadata: Optional[str] = None


def new_participant(participant_id: int, quest_ids: Iterable[str]) -> Participant:
    """Zero-valued participant with a fully populated quest map"""
    return Participant(
        participant_id=participant_id,
        quests={quest_id: QuestProgress() for quest_id in quest_ids},
    )


def normalize_participant(record: Participant, quest_ids: Iterable[str]) -> Participant:
    """
    Backfill quest entries missing from a stored record.

    Entries for quests no longer in the catalog are kept. Returns the same
    object when nothing was missing so callers can skip the write-back.
    """
    missing = [quest_id for quest_id in quest_ids if quest_id not in record.quests]
    if not missing and record.schema_version == PARTICIPANT_SCHEMA_VERSION:
        return record

    quests = dict(record.quests)
    for quest_id in missing:
        quests[quest_id] = QuestProgress()
    return record.model_copy(
        update={
            "quests": quests,
            "schema_version": PARTICIPANT_SCHEMA_VERSION,
            "updated_at": utc_now(),
        }
    )


def apply_patch(record: Participant, patch: Union[DisplayPatch, ContactPatch]) -> Participant:
    """Merge only the fields explicitly supplied in the patch"""
    changes = patch.model_dump(exclude_none=True)
    if not changes:
        return record
    changes["updated_at"] = utc_now()
    return record.model_copy(update=changes)
