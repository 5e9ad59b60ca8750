"""Application configuration via Pydantic Settings."""

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global ingestion settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Store endpoint
    DATABASE_URL: str = "sqlite+aiosqlite:///./shopfeed.db"

    @model_validator(mode="after")
    def fix_database_url(self) -> "Settings":
        """Hosted Postgres hands out postgresql:// but asyncpg needs postgresql+asyncpg://"""
        url = self.DATABASE_URL
        if url.startswith("postgresql://"):
            self.DATABASE_URL = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgres://"):
            self.DATABASE_URL = url.replace("postgres://", "postgresql+asyncpg://", 1)
        return self

    # App
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Fetcher
    HTTP_TIMEOUT_SECONDS: float = 20.0
    FETCH_JITTER_MAX_SECONDS: float = 0.4
    FETCH_BACKOFF_PAUSE_SECONDS: float = 3.0
    RATE_LIMIT_MAX_RETRIES: int = 3
    SCRAPE_PROGRESS_EVERY: int = 10

    # Browser (rendered sources)
    BROWSER_HEADLESS: bool = True
    BROWSER_NAV_TIMEOUT_MS: int = 30000

    # Importer
    IMPORT_BATCH_SIZE: int = 20
    IMPORT_PROGRESS_EVERY: int = 100
    IMPORT_CONFLICT_RETRIES: int = 2

    # CLI
    DEFAULT_SOURCE: str = "everlane"
    DEFAULT_MAX_PRODUCTS: int = 500


settings = Settings()
