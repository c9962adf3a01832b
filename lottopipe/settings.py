import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Source Configuration
    lottery_base_url: str = Field(
        default="https://dhlottery.co.kr", alias="LOTTERY_BASE_URL"
    )
    scraper_transport: str = Field(default="http", alias="SCRAPER_TRANSPORT")
    scraper_page_timeout: float = Field(default=30.0, alias="SCRAPER_PAGE_TIMEOUT")
    scraper_round_timeout: float = Field(default=15.0, alias="SCRAPER_ROUND_TIMEOUT")
    scraper_request_delay: float = Field(default=1.0, alias="SCRAPER_REQUEST_DELAY")

    # Circuit Breaker Configuration
    circuit_failure_threshold: int = Field(default=3, alias="CIRCUIT_FAILURE_THRESHOLD")
    circuit_recovery_timeout: float = Field(
        default=30.0, alias="CIRCUIT_RECOVERY_TIMEOUT"
    )

    # Cache Configuration
    cache_backend: str = Field(default="durable", alias="CACHE_BACKEND")
    cache_database_url: str = Field(
        default="sqlite+aiosqlite:///./data/cache.db", alias="CACHE_DATABASE_URL"
    )
    cache_directory: str = Field(default="./data/cache", alias="CACHE_DIRECTORY")
    cache_cleanup_interval_minutes: int = Field(
        default=10, alias="CACHE_CLEANUP_INTERVAL_MINUTES"
    )
    cache_debug: bool = Field(default=False, alias="CACHE_DEBUG")

    # Scheduler Configuration
    round_check_interval_minutes: int = Field(
        default=60, alias="ROUND_CHECK_INTERVAL_MINUTES"
    )

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


def load_settings() -> Settings:
    """Build settings from the current process environment."""
    return Settings.model_validate(dict(os.environ))


global_settings = load_settings()
