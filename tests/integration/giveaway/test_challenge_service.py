from datetime import datetime, timedelta, timezone

import pytest

from src.core.service.giveaway.challenge_engine import OPTION_COUNT, SYMBOL_POOL, ChallengeEngine
from src.core.service.giveaway.challenge_service import ChallengeService
from src.core.service.giveaway.models.challenge import ChallengeAnswerStatus

PARTICIPANT_ID = 42


@pytest.fixture
def engine():
    return ChallengeEngine(expiry_seconds=300)


@pytest.fixture
def challenge_service(ledger, engine):
    return ChallengeService(ledger, engine, max_attempts=3)


def wrong_option(challenge):
    return next(option for option in challenge.options if option != challenge.answer)


async def expire_pending(participant_store, participant_id):
    def mutation(participant):
        challenge = participant.pending_challenge.model_copy(
            update={"expires_at": datetime.now(timezone.utc) - timedelta(seconds=1)}
        )
        return participant.model_copy(update={"pending_challenge": challenge})

    await participant_store.update(participant_id, mutation)


def test_issue_challenge(engine):
    """Should issue distinct options containing the answer"""
    challenge = engine.issue()

    assert len(challenge.options) == OPTION_COUNT
    assert len(set(challenge.options)) == OPTION_COUNT
    assert challenge.answer in challenge.options
    assert set(challenge.options) <= set(SYMBOL_POOL)
    assert challenge.answer in challenge.prompt
    assert challenge.expires_at - challenge.created_at == timedelta(seconds=300)
    assert not engine.is_expired(challenge)


def test_verify_challenge(engine):
    challenge = engine.issue()

    assert engine.verify(challenge, challenge.answer) is True
    assert engine.verify(challenge, wrong_option(challenge)) is False
    assert engine.verify(None, challenge.answer) is False


def test_expired_challenge_never_verifies():
    challenge = ChallengeEngine(expiry_seconds=-1).issue()
    assert ChallengeEngine().verify(challenge, challenge.answer) is False


def test_small_symbol_pool_rejected():
    with pytest.raises(ValueError):
        ChallengeEngine(symbol_pool=["a", "b", "c"])


@pytest.mark.asyncio
async def test_start_reuses_active_challenge(challenge_service, ledger):
    first = await challenge_service.start(PARTICIPANT_ID)
    second = await challenge_service.start(PARTICIPANT_ID)

    assert first is not None
    assert second == first
    participant = await ledger.get(PARTICIPANT_ID)
    assert participant.pending_challenge == first


@pytest.mark.asyncio
async def test_start_after_pass_returns_none(challenge_service):
    challenge = await challenge_service.start(PARTICIPANT_ID)
    await challenge_service.answer(PARTICIPANT_ID, challenge.answer)

    assert await challenge_service.start(PARTICIPANT_ID) is None


@pytest.mark.asyncio
async def test_correct_answer_passes(challenge_service, ledger):
    """Should mark the participant as human and drop the pending challenge"""
    challenge = await challenge_service.start(PARTICIPANT_ID)

    result = await challenge_service.answer(PARTICIPANT_ID, challenge.answer)

    assert result.status == ChallengeAnswerStatus.PASSED
    assert result.passed
    participant = await ledger.get(PARTICIPANT_ID)
    assert participant.challenge_passed is True
    assert participant.pending_challenge is None

    again = await challenge_service.answer(PARTICIPANT_ID, "anything")
    assert again.status == ChallengeAnswerStatus.ALREADY_PASSED


@pytest.mark.asyncio
async def test_incorrect_answer_counts_attempts(challenge_service):
    challenge = await challenge_service.start(PARTICIPANT_ID)

    first = await challenge_service.answer(PARTICIPANT_ID, wrong_option(challenge))
    second = await challenge_service.answer(PARTICIPANT_ID, wrong_option(challenge))

    assert first.status == ChallengeAnswerStatus.INCORRECT
    assert first.attempts_left == 2
    assert second.attempts_left == 1
    assert not second.passed


@pytest.mark.asyncio
async def test_exhausted_attempts_reissue_challenge(challenge_service, ledger):
    """Running out of attempts should issue a new challenge with a reset counter"""
    challenge = await challenge_service.start(PARTICIPANT_ID)
    for _ in range(2):
        await challenge_service.answer(PARTICIPANT_ID, wrong_option(challenge))

    result = await challenge_service.answer(PARTICIPANT_ID, wrong_option(challenge))

    assert result.status == ChallengeAnswerStatus.EXHAUSTED
    assert result.challenge is not None
    assert result.attempts_left == 3
    participant = await ledger.get(PARTICIPANT_ID)
    assert participant.challenge_attempts == 0
    assert participant.pending_challenge == result.challenge
    assert participant.challenge_passed is False

    passed = await challenge_service.answer(PARTICIPANT_ID, result.challenge.answer)
    assert passed.status == ChallengeAnswerStatus.PASSED


@pytest.mark.asyncio
async def test_expired_challenge_is_replaced(challenge_service, participant_store, ledger):
    """An expired challenge must not pass even with the right answer"""
    challenge = await challenge_service.start(PARTICIPANT_ID)
    await expire_pending(participant_store, PARTICIPANT_ID)

    result = await challenge_service.answer(PARTICIPANT_ID, challenge.answer)

    assert result.status == ChallengeAnswerStatus.EXPIRED
    assert result.challenge is not None
    participant = await ledger.get(PARTICIPANT_ID)
    assert participant.challenge_passed is False
    assert participant.pending_challenge == result.challenge


@pytest.mark.asyncio
async def test_answer_without_challenge_issues_one(challenge_service):
    result = await challenge_service.answer(PARTICIPANT_ID, "🔥")

    assert result.status == ChallengeAnswerStatus.EXPIRED
    assert result.challenge is not None


@pytest.mark.asyncio
async def test_start_replaces_expired_challenge(challenge_service, participant_store):
    first = await challenge_service.start(PARTICIPANT_ID)
    await expire_pending(participant_store, PARTICIPANT_ID)

    second = await challenge_service.start(PARTICIPANT_ID)

    assert second != first
    assert second.expires_at > datetime.now(timezone.utc)
