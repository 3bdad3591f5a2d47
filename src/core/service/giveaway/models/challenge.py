from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class Challenge(BaseModel):
    """Multiple-choice human verification challenge"""
    prompt: str = Field(..., description="Text shown to the participant")
    answer: str = Field(..., description="Option that solves the challenge")
    options: List[str] = Field(..., description="Shuffled options, answer included")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime

    def is_expired(self) -> bool:
        """Check if the challenge has expired"""
        return datetime.now(timezone.utc) > self.expires_at

    class Config:
        json_schema_extra = {
            "example": {
                "prompt": "Tap on 🚀 to prove you are human.",
                "answer": "🚀",
                "options": ["🎯", "🚀", "🌊", "🍀"],
                "created_at": "2024-02-06T10:00:00Z",
                "expires_at": "2024-02-06T10:05:00Z"
            }
        }


class ChallengeAnswerStatus(str, Enum):
    ALREADY_PASSED = "already_passed"
    PASSED = "passed"
    INCORRECT = "incorrect"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"


class ChallengeAnswer(BaseModel):
    """Outcome of submitting a challenge response"""
    status: ChallengeAnswerStatus
    attempts_left: int = 0
    challenge: Optional[Challenge] = Field(None, description="Fresh challenge when one was re-issued")

    @property
    def passed(self) -> bool:
        return self.status in (ChallengeAnswerStatus.PASSED, ChallengeAnswerStatus.ALREADY_PASSED)
