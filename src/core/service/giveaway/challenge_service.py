from typing import Optional

from src.core.logger.logger import get_logger
from src.core.service.giveaway.challenge_engine import ChallengeEngine
from src.core.service.giveaway.ledger import ParticipantLedger
from src.core.service.giveaway.models.challenge import (
    Challenge,
    ChallengeAnswer,
    ChallengeAnswerStatus,
)
from src.infra.config.settings import settings

logger = get_logger(__name__)


class ChallengeService:
    """Gates participants behind the human verification challenge"""

    MAX_ATTEMPTS = settings.CHALLENGE_MAX_ATTEMPTS

    def __init__(
        self,
        ledger: ParticipantLedger,
        engine: Optional[ChallengeEngine] = None,
        max_attempts: Optional[int] = None,
    ):
        self.ledger = ledger
        self.engine = engine or ChallengeEngine()
        self.max_attempts = max_attempts or self.MAX_ATTEMPTS

    async def start(self, participant_id: int) -> Optional[Challenge]:
        """Return the challenge to show, or None when the participant already passed"""
        participant = await self.ledger.get_or_create(participant_id)
        if participant.challenge_passed:
            return None

        if not self.engine.is_expired(participant.pending_challenge):
            logger.info(f"Active challenge exists for {participant_id}")
            return participant.pending_challenge

        return await self._issue(participant_id)

    async def _issue(self, participant_id: int) -> Challenge:
        challenge = self.engine.issue()
        await self.ledger.set_pending_challenge(participant_id, challenge)
        logger.info(f"Created new challenge for {participant_id}")
        return challenge

    async def answer(self, participant_id: int, response: str) -> ChallengeAnswer:
        """
        Check a response against the pending challenge

        Args:
            participant_id: Participant answering
            response: The option the participant picked

        Returns:
            ChallengeAnswer: outcome, remaining attempts, and a fresh challenge
            whenever the previous one expired or ran out of attempts
        """
        participant = await self.ledger.get_or_create(participant_id)
        if participant.challenge_passed:
            return ChallengeAnswer(status=ChallengeAnswerStatus.ALREADY_PASSED)

        pending = participant.pending_challenge
        if self.engine.is_expired(pending):
            logger.info(
                "Challenge missing or expired, issuing a new one",
                extra={"participant_id": participant_id}
            )
            challenge = await self._issue(participant_id)
            return ChallengeAnswer(
                status=ChallengeAnswerStatus.EXPIRED,
                attempts_left=self.max_attempts,
                challenge=challenge,
            )

        if self.engine.verify(pending, response):
            await self.ledger.mark_challenge_passed(participant_id)
            return ChallengeAnswer(status=ChallengeAnswerStatus.PASSED)

        participant = await self.ledger.record_failed_challenge(participant_id)
        attempts_left = self.max_attempts - participant.challenge_attempts
        logger.warning(
            "Incorrect challenge answer",
            extra={"participant_id": participant_id, "attempts_left": max(attempts_left, 0)}
        )
        if attempts_left > 0:
            return ChallengeAnswer(status=ChallengeAnswerStatus.INCORRECT, attempts_left=attempts_left)

        challenge = await self._issue(participant_id)
        return ChallengeAnswer(
            status=ChallengeAnswerStatus.EXHAUSTED,
            attempts_left=self.max_attempts,
            challenge=challenge,
        )
