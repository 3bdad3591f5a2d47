import redis.asyncio as redis
from src.infra.config.settings import Settings
from src.core.logger.logger import logger


def create_redis_client(settings: Settings) -> redis.Redis:
    """Build a Redis client over its own connection pool; the caller owns it"""
    pool = redis.ConnectionPool.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        health_check_interval=30,
    )
    return redis.Redis(connection_pool=pool)


async def connect_redis(settings: Settings) -> redis.Redis:
    """Create a client and ping it once before handing it out"""
    redis_client = create_redis_client(settings)
    try:
        await redis_client.ping()
    except Exception as e:
        logger.error("Failed to connect to Redis", extra={"error": str(e)})
        await close_redis(redis_client)
        raise
    logger.info("Connected to Redis", extra={"max_connections": settings.REDIS_MAX_CONNECTIONS})
    return redis_client


async def close_redis(redis_client: redis.Redis) -> None:
    await redis_client.aclose()
    await redis_client.connection_pool.disconnect()
