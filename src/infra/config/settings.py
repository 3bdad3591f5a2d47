from typing import List, Optional
from pydantic import BaseModel
from pydantic_settings import BaseSettings
from functools import lru_cache


class QuestSetting(BaseModel):
    """Catalog entry as supplied through configuration"""
    id: str
    title: str = ""
    mandatory: bool = True
    point_value: int = 1
    type: str = "generic"


DEFAULT_QUEST_CATALOG: List[QuestSetting] = [
    QuestSetting(id="telegram_channel", title="Subscribe to the Telegram channel", type="telegram_channel"),
    QuestSetting(id="telegram_chat", title="Join the Telegram community chat", type="telegram_chat"),
    QuestSetting(id="discord_join", title="Join the Discord server", type="discord_membership"),
    QuestSetting(id="x_follow", title="Follow on X (Twitter)", type="social_follow"),
    QuestSetting(id="instagram_follow", title="Follow on Instagram", type="social_follow"),
    QuestSetting(id="website_visit", title="Visit the website", type="website_visit"),
    QuestSetting(id="email_submit", title="Drop your email", type="email_collection"),
    QuestSetting(id="wallet_submit", title="Submit your EVM wallet", type="wallet_collection"),
    QuestSetting(id="sol_wallet_submit", title="Submit your SOL wallet", type="wallet_collection"),
]


class Settings(BaseSettings):
    # App Settings
    APP_NAME: str = "GiveawayLedger"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Redis Settings
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 10
    STORE_TRANSACTION_RETRIES: int = 10

    # Challenge Settings
    CHALLENGE_EXPIRY_SECONDS: int = 300  # 5 minutes
    CHALLENGE_MAX_ATTEMPTS: int = 3

    # Quest & Referral Settings
    QUEST_CATALOG: List[QuestSetting] = DEFAULT_QUEST_CATALOG
    REFERRAL_BONUS_POINTS: int = 1

    # Social Verification Settings
    X_PROFILE_URL: Optional[str] = None
    INSTAGRAM_PROFILE_URL: Optional[str] = None
    SOCIAL_VERIFY_WAIT_SECONDS: float = 4.0
    SOCIAL_BASELINE_TTL_SECONDS: int = 900  # 15 minutes
    SOCIAL_BASELINE_PENDING_TTL_SECONDS: int = 60

    # Winner Settings
    WINNER_PENDING_WALLET_TTL_SECONDS: int = 600  # 10 minutes

    # Profile count service (browser automation sidecar)
    PROFILE_COUNT_SERVICE_URL: Optional[str] = None
    PROFILE_COUNT_TIMEOUT_SECONDS: float = 60.0

    # Polling Lock Settings
    POLLING_LOCK_KEY: str = "lock:polling"
    POLLING_LOCK_TTL_MS: int = 30_000

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

@lru_cache()
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
