import secrets
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from src.core.service.giveaway.models.challenge import Challenge
from src.infra.config.settings import settings

SYMBOL_POOL = ["🔥", "❄️", "⚡️", "🌊", "🌟", "🍀", "🎯", "🧩", "🎈", "🚀"]
OPTION_COUNT = 4


class ChallengeEngine:
    """Issues and checks tap-the-symbol challenges. Holds no state."""

    def __init__(
        self,
        expiry_seconds: int = settings.CHALLENGE_EXPIRY_SECONDS,
        symbol_pool: Optional[List[str]] = None,
    ):
        self.expiry_seconds = expiry_seconds
        self.symbol_pool = list(symbol_pool or SYMBOL_POOL)
        if len(self.symbol_pool) < OPTION_COUNT:
            raise ValueError(f"Symbol pool needs at least {OPTION_COUNT} symbols")
        self._random = secrets.SystemRandom()

    def issue(self) -> Challenge:
        options = self._random.sample(self.symbol_pool, OPTION_COUNT)
        answer = self._random.choice(options)
        self._random.shuffle(options)
        now = datetime.now(timezone.utc)

        return Challenge(
            prompt=f"Tap on {answer} to prove you are human.",
            answer=answer,
            options=options,
            created_at=now,
            expires_at=now + timedelta(seconds=self.expiry_seconds),
        )

    def is_expired(self, challenge: Optional[Challenge]) -> bool:
        if challenge is None:
            return True
        return challenge.is_expired()

    def verify(self, challenge: Optional[Challenge], response: str) -> bool:
        if self.is_expired(challenge):
            return False
        return challenge.answer == response
