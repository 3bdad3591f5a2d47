"""
Follow-quest verification by snapshot diff.

A baseline of the participant's "following" count and the target's
"followers" count is captured first. After the participant follows the
target, both counts are read again; only a +1 on both sides verifies the
quest. Checking both sides of the relationship guards against pre-existing
follows and stale cached profile pages.
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional

from src.core.logger.logger import get_logger
from src.core.service.giveaway.cache.baseline_store import BaselineStore
from src.core.service.giveaway.ledger import ParticipantLedger
from src.core.service.giveaway.models.social import (
    BaselineResult,
    BaselineStatus,
    FollowVerification,
    FollowVerificationStatus,
    ProfileCounts,
    SocialVerificationBaseline,
)
from src.core.service.social.profile_fetcher import ProfileCountFetcher
from src.infra.config.settings import Settings, settings

logger = get_logger(__name__)

MIN_WAIT_SECONDS = 1.0

# Participant field holding the profile link verified for each follow quest
FOLLOW_QUEST_PROFILE_FIELDS = {
    "x_follow": "x_profile_url",
    "instagram_follow": "instagram_profile_url",
}

FETCH_FAILED_REASON = "Could not read profile counts right now. Please try again shortly."
BASELINE_PENDING_REASON = "Verification is already being prepared. Please try again in a few seconds."
BASELINE_CAPTURED_REASON = "Follow the target profile now, then verify again."
RECHECK_FAILED_REASON = "Could not read updated counts after waiting period."
DELTA_FAILED_REASON = "Follow verification failed. Please ensure you follow the target profile and try again."


def has_user_counts(counts: Optional[ProfileCounts]) -> bool:
    return bool(counts and counts.success and counts.following is not None)


def has_target_counts(counts: Optional[ProfileCounts]) -> bool:
    return bool(counts and counts.success and counts.followers is not None)


def default_targets(config: Settings = settings) -> Dict[str, str]:
    targets = {
        "x_follow": config.X_PROFILE_URL,
        "instagram_follow": config.INSTAGRAM_PROFILE_URL,
    }
    return {quest_id: url for quest_id, url in targets.items() if url}


class FollowVerifier:
    """Two-phase follow verification over a profile count fetcher"""

    def __init__(
        self,
        ledger: ParticipantLedger,
        baselines: BaselineStore,
        fetcher: ProfileCountFetcher,
        targets: Optional[Dict[str, str]] = None,
        wait_seconds: float = settings.SOCIAL_VERIFY_WAIT_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.ledger = ledger
        self.baselines = baselines
        self.fetcher = fetcher
        self.targets = default_targets() if targets is None else dict(targets)
        self.wait_seconds = max(wait_seconds, MIN_WAIT_SECONDS)
        self.sleep = sleep

    async def _fetch_pair(self, user_url: str, target_url: str):
        return await asyncio.gather(self.fetcher.fetch(user_url), self.fetcher.fetch(target_url))

    async def ensure_baseline(
        self,
        participant_id: int,
        quest_id: str,
        user_url: str,
        target_url: str,
    ) -> BaselineResult:
        """Capture a baseline unless one exists or another capture is in flight"""
        existing = await self.baselines.get(participant_id, quest_id)
        if existing:
            return BaselineResult(status=BaselineStatus.EXISTS, baseline=existing)

        if not await self.baselines.mark_pending(participant_id, quest_id):
            return BaselineResult(status=BaselineStatus.PENDING)

        try:
            user, target = await self._fetch_pair(user_url, target_url)
            if not has_user_counts(user) or not has_target_counts(target):
                logger.warning(
                    "Baseline capture failed",
                    extra={"participant_id": participant_id, "quest_id": quest_id}
                )
                return BaselineResult(status=BaselineStatus.FETCH_FAILED)

            baseline = SocialVerificationBaseline(user=user, target=target)
            await self.baselines.save(participant_id, quest_id, baseline)
            logger.info(
                "Baseline captured",
                extra={
                    "participant_id": participant_id,
                    "quest_id": quest_id,
                    "user_following": user.following,
                    "target_followers": target.followers,
                }
            )
            return BaselineResult(status=BaselineStatus.CAPTURED, baseline=baseline)
        finally:
            await self.baselines.clear_pending(participant_id, quest_id)

    async def clear_baseline(self, participant_id: int, quest_id: str) -> None:
        """Drop a baseline, e.g. after the participant submitted a different profile"""
        await self.baselines.clear(participant_id, quest_id)

    async def verify_follow(self, participant_id: int, quest_id: str) -> FollowVerification:
        """
        Handle one verify request for a follow quest.

        Without a baseline this captures one and asks the participant to
        follow and retry. With a baseline it re-reads both counts after a
        short wait and decides; the baseline is consumed either way.
        """
        target_url = self.targets.get(quest_id)
        profile_field = FOLLOW_QUEST_PROFILE_FIELDS.get(quest_id)
        if not target_url or not profile_field:
            return FollowVerification(
                status=FollowVerificationStatus.UNSUPPORTED_QUEST,
                reason=f"Quest {quest_id} cannot be verified automatically.",
            )

        participant = await self.ledger.get_or_create(participant_id)
        if participant.has_completed(quest_id):
            await self.baselines.clear(participant_id, quest_id)
            return FollowVerification(status=FollowVerificationStatus.ALREADY_COMPLETED)

        user_url = getattr(participant, profile_field)
        if not user_url:
            return FollowVerification(
                status=FollowVerificationStatus.PROFILE_MISSING,
                reason="Please submit your profile link first.",
            )

        baseline = await self.baselines.get(participant_id, quest_id)
        if baseline is None:
            result = await self.ensure_baseline(participant_id, quest_id, user_url, target_url)
            if result.status == BaselineStatus.PENDING:
                return FollowVerification(
                    status=FollowVerificationStatus.BASELINE_PENDING,
                    reason=BASELINE_PENDING_REASON,
                )
            if result.status == BaselineStatus.FETCH_FAILED:
                return FollowVerification(
                    status=FollowVerificationStatus.FETCH_FAILED,
                    reason=FETCH_FAILED_REASON,
                )
            return FollowVerification(
                status=FollowVerificationStatus.BASELINE_CAPTURED,
                reason=BASELINE_CAPTURED_REASON,
                user_before=result.baseline.user,
                target_before=result.baseline.target,
            )

        try:
            return await self._compare_with_baseline(participant_id, quest_id, baseline, user_url, target_url)
        finally:
            await self.baselines.clear(participant_id, quest_id)

    async def _compare_with_baseline(
        self,
        participant_id: int,
        quest_id: str,
        baseline: SocialVerificationBaseline,
        user_url: str,
        target_url: str,
    ) -> FollowVerification:
        user_before, target_before = baseline.user, baseline.target
        await self.sleep(self.wait_seconds)
        user_after, target_after = await self._fetch_pair(user_url, target_url)

        outcome = FollowVerification(
            status=FollowVerificationStatus.FAILED,
            user_before=user_before,
            target_before=target_before,
            user_after=user_after,
            target_after=target_after,
        )
        if not has_user_counts(user_after) or not has_target_counts(target_after):
            outcome.reason = RECHECK_FAILED_REASON
            logger.warning(
                "Follow re-check could not read counts",
                extra={"participant_id": participant_id, "quest_id": quest_id}
            )
            return outcome

        user_delta = user_after.following - user_before.following
        target_delta = target_after.followers - target_before.followers
        if user_delta != 1 or target_delta != 1:
            outcome.reason = DELTA_FAILED_REASON
            logger.info(
                "Follow verification failed",
                extra={
                    "participant_id": participant_id,
                    "quest_id": quest_id,
                    "user_delta": user_delta,
                    "target_delta": target_delta,
                }
            )
            return outcome

        metadata = json.dumps({
            "verified_at": datetime.now(timezone.utc).isoformat(),
            "mode": "auto",
            "profile_url": user_url,
            "user_following_before": user_before.following,
            "user_following_after": user_after.following,
            "target_followers_before": target_before.followers,
            "target_followers_after": target_after.followers,
        })
        await self.ledger.complete_quest(participant_id, quest_id, metadata)
        logger.info(
            "Follow verified",
            extra={"participant_id": participant_id, "quest_id": quest_id}
        )
        outcome.status = FollowVerificationStatus.VERIFIED
        return outcome
