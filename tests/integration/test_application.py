from unittest.mock import AsyncMock, patch

import pytest
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis

from src.app import GiveawayApplication
from src.core.exceptions.base import LockContentionError
from src.infra.config.settings import Settings


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def app_settings():
    return Settings(
        POLLING_LOCK_TTL_MS=30_000,
        PROFILE_COUNT_SERVICE_URL=None,
        X_PROFILE_URL="https://x.com/giveaway",
    )


def fake_connect(server):
    async def connect(settings):
        return FakeRedis(server=server, decode_responses=True)
    return connect


@pytest.mark.asyncio
async def test_initialise_wires_services(server, app_settings):
    application = GiveawayApplication(app_settings)
    with patch("src.app.connect_redis", side_effect=fake_connect(server)), \
            patch("src.app.close_redis", new_callable=AsyncMock) as close_redis:
        services = await application.initialise()
        try:
            assert len(services.catalog) == 9
            assert services.follow_verifier is None
            participant = await services.ledger.complete_quest(1, "telegram_channel")
            assert participant.points == 1
            assert (await services.ranks.rank_of(1)).rank == 1
            assert services.winners.winners.pending_wallet_ttl_seconds == app_settings.WINNER_PENDING_WALLET_TTL_SECONDS
            assert application.lock.held
        finally:
            await application.dispose()

        close_redis.assert_awaited_once()


@pytest.mark.asyncio
async def test_second_instance_refuses_to_start(server, app_settings):
    """Two instances against one store: the second fails with lock contention"""
    first = GiveawayApplication(app_settings)
    second = GiveawayApplication(app_settings)
    with patch("src.app.connect_redis", side_effect=fake_connect(server)), \
            patch("src.app.close_redis", new_callable=AsyncMock) as close_redis:
        await first.initialise()
        try:
            with pytest.raises(LockContentionError):
                await second.initialise()
            assert second.redis is None
            close_redis.assert_awaited_once()
        finally:
            await first.dispose()

        await second.initialise()
        await second.dispose()


@pytest.mark.asyncio
async def test_follow_verifier_enabled_with_count_service(server, app_settings):
    app_settings.PROFILE_COUNT_SERVICE_URL = "http://profile-counts.local/counts"
    application = GiveawayApplication(app_settings)
    with patch("src.app.connect_redis", side_effect=fake_connect(server)), \
            patch("src.app.close_redis", new_callable=AsyncMock):
        services = await application.initialise()
        try:
            assert services.follow_verifier is not None
            assert services.follow_verifier.targets == {"x_follow": "https://x.com/giveaway"}
        finally:
            await application.dispose()
