import pytest

from src.core.exceptions.base import UnknownQuestError
from src.core.service.giveaway.contact import (
    ContactValidator,
    canonical_social_profile,
    normalize_contact_value,
    stored_contact_value,
    validate_contact_value,
)
from src.core.service.giveaway.models.participant import (
    PARTICIPANT_SCHEMA_VERSION,
    ContactPatch,
    DisplayPatch,
    Participant,
    QuestProgress,
    apply_patch,
    new_participant,
    normalize_participant,
)
from src.core.service.giveaway.models.quest import QuestCatalog, QuestDefinition
from src.infra.config.settings import DEFAULT_QUEST_CATALOG, QuestSetting

QUEST_IDS = ["email_submit", "x_follow"]


def test_new_participant_has_every_quest():
    participant = new_participant(1, QUEST_IDS)

    assert list(participant.quests) == QUEST_IDS
    assert participant.points == 0
    assert participant.referred_by is None
    assert participant.schema_version == PARTICIPANT_SCHEMA_VERSION


def test_normalize_returns_same_object_when_complete():
    participant = new_participant(1, QUEST_IDS)
    assert normalize_participant(participant, QUEST_IDS) is participant


def test_normalize_backfills_missing_quests():
    participant = Participant(participant_id=1, quests={"old_quest": QuestProgress(completed=True)})

    normalized = normalize_participant(participant, QUEST_IDS)

    assert normalized is not participant
    assert set(normalized.quests) == {"old_quest", *QUEST_IDS}
    assert normalized.quests["old_quest"].completed is True
    assert participant.quests.keys() == {"old_quest"}


def test_apply_patch_merges_supplied_fields_only():
    participant = Participant(participant_id=1, username="alice", first_name="Alice")

    patched = apply_patch(participant, DisplayPatch(first_name="Al"))

    assert patched.username == "alice"
    assert patched.first_name == "Al"
    assert apply_patch(participant, ContactPatch()) is participant


def test_participant_json_round_trip_keeps_progress():
    participant = new_participant(1, QUEST_IDS).model_copy(
        update={"points": 5, "credited_referrals": [7, 8]}
    )

    restored = Participant.model_validate_json(participant.model_dump_json())

    assert restored == participant
    assert restored.referrals_count == 2


def test_catalog_lookup():
    catalog = QuestCatalog([
        QuestDefinition(id="a", mandatory=True, point_value=2),
        QuestDefinition(id="b", mandatory=False),
    ])

    assert catalog.quest_ids == ["a", "b"]
    assert catalog.mandatory_ids == ["a"]
    assert catalog.point_value("a") == 2
    assert catalog.point_value("missing") == 0
    assert "b" in catalog
    assert len(catalog) == 2
    with pytest.raises(UnknownQuestError):
        catalog.require("missing")


def test_catalog_rejects_duplicate_ids():
    with pytest.raises(ValueError):
        QuestCatalog([QuestDefinition(id="a"), QuestDefinition(id="a")])


def test_catalog_from_settings():
    catalog = QuestCatalog.from_settings(DEFAULT_QUEST_CATALOG)

    assert len(catalog) == 9
    assert catalog.mandatory_ids == catalog.quest_ids
    assert all(d.point_value == 1 for d in catalog.definitions)

    custom = QuestCatalog.from_settings([QuestSetting(id="x_follow", mandatory=False, point_value=5)])
    assert custom.mandatory_ids == []


@pytest.mark.parametrize("email, valid", [
    ("alice@example.com", True),
    (" alice@example.com ", True),
    ("alice@", False),
    ("alice example.com", False),
    ("", False),
])
def test_validate_email(email, valid):
    assert ContactValidator.validate_email(email) is valid


def test_validate_wallets():
    assert ContactValidator.validate_evm_address("0x742d35Cc6634C0532925a3b844Bc454e4438f44e")
    assert not ContactValidator.validate_evm_address("0x742d35")
    assert ContactValidator.validate_solana_address("11111111111111111111111111111111")
    assert not ContactValidator.validate_solana_address("0OIl")
    assert not ContactValidator.validate_solana_address("abc")


def test_validate_discord_user_id():
    assert ContactValidator.validate_discord_user_id("272413599446597632")
    assert not ContactValidator.validate_discord_user_id("alice#1234")


def test_validate_social_profile():
    assert ContactValidator.validate_social_profile("https://x.com/alice", "x_profile_url")
    assert ContactValidator.validate_social_profile("https://www.twitter.com/alice", "x_profile_url")
    assert not ContactValidator.validate_social_profile("https://x.com/", "x_profile_url")
    assert not ContactValidator.validate_social_profile("https://x.com/alice", "instagram_profile_url")
    assert not ContactValidator.validate_social_profile("ftp://instagram.com/alice", "instagram_profile_url")


def test_canonical_social_profile():
    assert canonical_social_profile("http://www.X.com/alice/?s=20") == "https://x.com/alice"


def test_normalize_contact_value():
    assert normalize_contact_value("email", " Alice@Example.COM ") == "alice@example.com"
    assert normalize_contact_value("wallet", "0xABC") == "0xabc"
    assert normalize_contact_value("instagram_profile_url", "https://instagram.com/Alice/") == "https://instagram.com/alice"
    assert normalize_contact_value("solana_wallet", "AbC") == "AbC"
    assert normalize_contact_value("email", "   ") is None
    assert normalize_contact_value("email", None) is None


def test_validate_contact_value_by_field():
    assert validate_contact_value("email", "alice@example.com")
    assert validate_contact_value("instagram_profile_url", "https://instagram.com/alice")
    assert not validate_contact_value("x_profile_url", "https://instagram.com/alice")
    assert not validate_contact_value("username", "alice")


def test_stored_contact_value():
    assert stored_contact_value("x_profile_url", " https://www.x.com/Alice/ ") == "https://x.com/Alice"
    assert stored_contact_value("email", " Alice@Example.com ") == "Alice@Example.com"
