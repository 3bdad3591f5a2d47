import json
from datetime import datetime, timezone
from typing import Optional

from redis.asyncio import Redis

from src.core.http_client import create_client
from src.core.logger.logger import logger
from src.core.service.giveaway.cache.baseline_store import BaselineStore
from src.core.service.giveaway.cache.participant_store import ParticipantStore
from src.core.service.giveaway.cache.winner_store import WinnerStore
from src.core.service.giveaway.challenge_engine import ChallengeEngine
from src.core.service.giveaway.challenge_service import ChallengeService
from src.core.service.giveaway.ledger import ParticipantLedger, ReferralRewardCallback
from src.core.service.giveaway.models.quest import QuestCatalog
from src.core.service.giveaway.rank_index import RankIndex
from src.core.service.giveaway.winner_service import WinnerService
from src.core.service.social.follow_verifier import FollowVerifier, default_targets
from src.core.service.social.profile_fetcher import (
    HttpProfileCountFetcher,
    ProfileCountFetcher,
    QueuedProfileCountFetcher,
)
from src.infra.config.redis import close_redis, connect_redis
from src.infra.config.settings import Settings, settings as default_settings
from src.infra.polling_lock import PollingLock
from src.infra.store import RedisStore


class GiveawayServices:
    """Every ledger component, wired over one store"""

    def __init__(
        self,
        store: RedisStore,
        settings: Settings,
        fetcher: Optional[ProfileCountFetcher] = None,
        on_referral_reward: Optional[ReferralRewardCallback] = None,
    ):
        self.store = store
        self.catalog = QuestCatalog.from_settings(settings.QUEST_CATALOG)
        self.participants = ParticipantStore(store, self.catalog.quest_ids)
        self.ledger = ParticipantLedger(
            self.participants,
            self.catalog,
            referral_bonus_points=settings.REFERRAL_BONUS_POINTS,
            on_referral_reward=on_referral_reward,
        )
        self.challenges = ChallengeService(
            self.ledger,
            ChallengeEngine(expiry_seconds=settings.CHALLENGE_EXPIRY_SECONDS),
            max_attempts=settings.CHALLENGE_MAX_ATTEMPTS,
        )
        self.ranks = RankIndex(self.participants)
        self.winners = WinnerService(
            WinnerStore(store, pending_wallet_ttl_seconds=settings.WINNER_PENDING_WALLET_TTL_SECONDS),
            self.ledger,
        )
        self.fetcher = fetcher
        self.follow_verifier = None
        if fetcher is not None:
            self.follow_verifier = FollowVerifier(
                self.ledger,
                BaselineStore(
                    store,
                    ttl_seconds=settings.SOCIAL_BASELINE_TTL_SECONDS,
                    pending_ttl_seconds=settings.SOCIAL_BASELINE_PENDING_TTL_SECONDS,
                ),
                fetcher,
                targets=default_targets(settings),
                wait_seconds=settings.SOCIAL_VERIFY_WAIT_SECONDS,
            )


class GiveawayApplication:
    """Owns the Redis connection, the polling lock and the service graph"""

    def __init__(self, settings: Settings = default_settings, on_referral_reward: Optional[ReferralRewardCallback] = None):
        self.settings = settings
        self.on_referral_reward = on_referral_reward
        self.redis: Optional[Redis] = None
        self.lock: Optional[PollingLock] = None
        self.services: Optional[GiveawayServices] = None

    async def initialise(self) -> GiveawayServices:
        logger.info(json.dumps({
            "message": "Starting giveaway ledger",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": self.settings.APP_NAME,
            "version": self.settings.APP_VERSION
        }))

        self.redis = await connect_redis(self.settings)
        store = RedisStore(self.redis, transaction_retries=self.settings.STORE_TRANSACTION_RETRIES)

        self.lock = PollingLock(store, key=self.settings.POLLING_LOCK_KEY, ttl_ms=self.settings.POLLING_LOCK_TTL_MS)
        try:
            await self.lock.acquire()
        except Exception:
            await close_redis(self.redis)
            self.redis = None
            raise

        fetcher = None
        if self.settings.PROFILE_COUNT_SERVICE_URL:
            fetcher = QueuedProfileCountFetcher(
                HttpProfileCountFetcher(
                    self.settings.PROFILE_COUNT_SERVICE_URL,
                    client=create_client("profile_counts", self.settings),
                )
            )
        else:
            logger.warning("PROFILE_COUNT_SERVICE_URL not set - follow verification disabled")

        self.services = GiveawayServices(store, self.settings, fetcher, self.on_referral_reward)
        return self.services

    async def dispose(self) -> None:
        logger.info("Shutting down giveaway ledger")
        if self.lock:
            await self.lock.release()
            self.lock = None
        if self.services and self.services.fetcher is not None:
            close = getattr(self.services.fetcher, "close", None)
            if close is not None:
                await close()
        self.services = None
        if self.redis is not None:
            await close_redis(self.redis)
            self.redis = None
