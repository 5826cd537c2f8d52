from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str | None = None  # e.g. sqlite+aiosqlite:///./bookings.db
    use_in_memory: bool = True
    log_level: str = "INFO"

    supplier_base_url: str = "https://api.worldota.net/api/b2b/v3"
    supplier_key_id: str | None = Field(default=None, alias="RATEHAWK_KEY_ID")
    supplier_api_key: str | None = Field(default=None, alias="RATEHAWK_API_KEY")
    supplier_timeout_seconds: float = 30.0
    supplier_retry_attempts: int = 3
    supplier_retry_interval_seconds: float = 3.0
    supplier_retry_backoff: float = 2.0
    supplier_language: str = "en"

    breaker_fail_max: int = 5
    breaker_reset_timeout_seconds: int = 60

    poll_max_attempts: int = 10
    poll_interval_seconds: float = 2.0
    poll_jitter_seconds: float = 0.0

    price_change_tolerance_percent: Decimal = Decimal("0")
    margin_rules_cache_ttl_seconds: float = 300.0

    notification_webhook_url: str | None = None
    notification_timeout_seconds: float = 5.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
