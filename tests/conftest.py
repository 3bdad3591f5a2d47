"""
Shared fixtures: an in-memory Redis and the ledger services wired over it.
"""

import pytest
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis

from src.core.service.giveaway.cache.baseline_store import BaselineStore
from src.core.service.giveaway.cache.participant_store import ParticipantStore
from src.core.service.giveaway.cache.winner_store import WinnerStore
from src.core.service.giveaway.ledger import ParticipantLedger
from src.core.service.giveaway.models.quest import QuestCatalog, QuestDefinition
from src.core.service.giveaway.rank_index import RankIndex
from src.core.service.giveaway.winner_service import WinnerService
from src.infra.store import RedisStore

REFERRAL_BONUS = 1


@pytest.fixture
def catalog():
    return QuestCatalog([
        QuestDefinition(id="email_submit", title="Drop your email", mandatory=True, point_value=10),
        QuestDefinition(id="x_follow", title="Follow on X", mandatory=True, point_value=5, type="social_follow"),
        QuestDefinition(id="instagram_follow", title="Follow on Instagram", mandatory=False, point_value=5, type="social_follow"),
        QuestDefinition(id="website_visit", title="Visit the website", mandatory=False, point_value=0),
    ])


@pytest.fixture
async def redis_client():
    client = FakeRedis(server=FakeServer(), decode_responses=True)
    try:
        yield client
    finally:
        await client.flushall()
        await client.aclose()


@pytest.fixture
def store(redis_client):
    return RedisStore(redis_client)


@pytest.fixture
def participant_store(store, catalog):
    return ParticipantStore(store, catalog.quest_ids)


@pytest.fixture
def ledger(participant_store, catalog):
    return ParticipantLedger(participant_store, catalog, referral_bonus_points=REFERRAL_BONUS)


@pytest.fixture
def rank_index(participant_store):
    return RankIndex(participant_store)


@pytest.fixture
def baseline_store(store):
    return BaselineStore(store, ttl_seconds=900, pending_ttl_seconds=60)


@pytest.fixture
def winner_service(store, ledger):
    return WinnerService(WinnerStore(store, pending_wallet_ttl_seconds=600), ledger)
