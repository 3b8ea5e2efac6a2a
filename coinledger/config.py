"""
Application configuration using Pydantic Settings
"""
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    """
    Application settings loaded from environment variables
    """
    # Database (single embedded store)
    DATABASE_URL: str = "sqlite:///./coinledger.db"

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 26450

    # Claim / reward
    CLAIM_AMOUNT: str = "0.001"  # coins, converted to minor units at use
    CLAIM_WAIT_MS: int = 3_600_000

    # Transfers
    TRANSFER_MIN_INTERVAL_MS: int = 1000
    TX_PAGE_SIZE: int = 20
    TX_RETENTION_DAYS: int = 0  # 0 = keep forever

    # Bills / backups
    BILL_PAGE_SIZE: int = 10
    BACKUP_CODE_LIMIT: int = 12

    # Per-IP request budget on ledger routes (token bucket: refill per second, bucket size)
    RATE_LIMIT_PER_IP: float = 10.0
    RATE_LIMIT_BURST: int = 10

    # Access control
    SESSION_TTL_SECONDS: int = 24 * 60 * 60
    LOGIN_MAX_ATTEMPTS: int = 3
    LOGIN_BLOCK_WINDOW_MS: int = 5 * 60 * 1000
    REGISTER_BLOCK_WINDOW_MS: int = 24 * 60 * 60 * 1000

    # Discord (DM delivery)
    DISCORD_BOT_TOKEN: str = ""
    DISCORD_API_BASE: str = "https://discord.com/api/v10"
    DM_SEND_DELAY_SECONDS: float = 2.0

    # Background jobs
    SCHEDULER_ENABLED: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    def get_sqlalchemy_url(self) -> str:
        """
        Normalize DATABASE_URL for SQLAlchemy (bare file paths become sqlite URLs)
        """
        url = self.DATABASE_URL
        if "://" not in url:
            return f"sqlite:///{url}"
        return url

@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance (singleton)
    """
    return Settings()
