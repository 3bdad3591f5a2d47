from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ProfileCounts(BaseModel):
    """Follower/following counts observed on a public profile"""
    url: str
    followers: Optional[int] = None
    following: Optional[int] = None
    success: bool = False

    @classmethod
    def failed(cls, url: str) -> "ProfileCounts":
        return cls(url=url, success=False)


class SocialVerificationBaseline(BaseModel):
    """Counts captured before the participant is asked to follow the target"""
    user: ProfileCounts
    target: ProfileCounts
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class BaselineStatus(str, Enum):
    CAPTURED = "captured"
    EXISTS = "exists"
    PENDING = "pending"
    FETCH_FAILED = "fetch_failed"


class BaselineResult(BaseModel):
    status: BaselineStatus
    baseline: Optional[SocialVerificationBaseline] = None


class FollowVerificationStatus(str, Enum):
    ALREADY_COMPLETED = "already_completed"
    UNSUPPORTED_QUEST = "unsupported_quest"
    PROFILE_MISSING = "profile_missing"
    BASELINE_CAPTURED = "baseline_captured"
    BASELINE_PENDING = "baseline_pending"
    FETCH_FAILED = "fetch_failed"
    VERIFIED = "verified"
    FAILED = "failed"


class FollowVerification(BaseModel):
    """Result of one verify request for a follow quest"""
    status: FollowVerificationStatus
    reason: Optional[str] = None
    user_before: Optional[ProfileCounts] = None
    target_before: Optional[ProfileCounts] = None
    user_after: Optional[ProfileCounts] = None
    target_after: Optional[ProfileCounts] = None

    @property
    def verified(self) -> bool:
        return self.status == FollowVerificationStatus.VERIFIED
