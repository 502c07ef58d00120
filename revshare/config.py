from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./revshare.db"

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "Revenue Share Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
    ]

    # Party identities for balances that have no external owner id
    AMIL_PARTY_ID: str = "amil"
    DEVELOPER_PARTY_ID: str = "developer"

    # Religious cap on the amil share of zakat (1/8)
    ZAKAT_AMIL_CAP_MAX: str = "12.5"

    # Defaults used when no amil settings have been saved yet
    DEFAULT_AMIL_ZAKAT_PERCENTAGE: str = "12.5"
    DEFAULT_AMIL_DONATION_PERCENTAGE: str = "20"
    DEFAULT_DEVELOPER_PERCENTAGE: str = "0"
    DEFAULT_FUNDRAISER_PERCENTAGE: str = "0"
    DEFAULT_MITRA_ZAKAT_PERCENTAGE: str = "0"
    DEFAULT_MITRA_DONATION_PERCENTAGE: str = "0"
    DEFAULT_QURBAN_OWNER_PERCENTAGE: str = "0"
    DEFAULT_QURBAN_GOAT_ADMIN_FEE: int = 0
    DEFAULT_QURBAN_COW_ADMIN_FEE: int = 0

    # Post-commit notifications (admin / partner / fundraiser UIs)
    NOTIFICATION_WEBHOOK_URL: Optional[str] = None
    NOTIFICATION_TIMEOUT_SECONDS: float = 5.0

    # Background scheduler
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "Asia/Jakarta"

    # Developer auto-disbursement (monthly)
    DEVELOPER_AUTO_DISBURSEMENT_DAY: int = 20
    DEVELOPER_AUTO_DISBURSEMENT_HOUR: int = 6
    DEVELOPER_AUTO_DISBURSEMENT_MINUTE: int = 20
    DEVELOPER_AUTO_DISBURSEMENT_MINIMUM: int = 1_000_000
    DEVELOPER_AUTO_DISBURSEMENT_REQUESTER_ID: str = "system"
    DEVELOPER_RECIPIENT_NAME: str = "Platform Developer"

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return list(self.CORS_ORIGINS)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
