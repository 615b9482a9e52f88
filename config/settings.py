from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./forum_ingest.db"

    # Raw object storage ("local" directory tree or "s3" bucket)
    OBJECT_STORE_BACKEND: Literal["local", "s3"] = "local"
    OBJECT_STORE_ROOT: str = "./raw-objects"
    OBJECT_STORE_BUCKET: str = "forum-raw"
    OBJECT_STORE_ENDPOINT: str | None = None
    OBJECT_STORE_REGION: str = "us-east-1"
    OBJECT_STORE_ACCESS_KEY_ID: str | None = None
    OBJECT_STORE_SECRET_ACCESS_KEY: str | None = None
    OBJECT_STORE_FORCE_PATH_STYLE: bool = True

    # Server
    SERVER_PORT: int = 8001
    LOG_LEVEL: str = "INFO"

    # Reddit upstream
    REDDIT_BASE_URL: str = "https://www.reddit.com"
    REDDIT_USER_AGENT: str = "forum-ingest/0.1.0 (research project)"

    # Scraping behaviour
    SCRAPE_RATE_LIMIT_MS: int = Field(default=1200, gt=0)
    SCRAPE_MAX_RETRY_ATTEMPTS: int = Field(default=5, ge=1, le=10)
    SCRAPE_RETRY_BASE_DELAY_MS: int = Field(default=1000, gt=0)
    SCRAPE_REQUEST_TIMEOUT: float = 30.0

    # Scheduled runs
    SCHEDULER_ENABLED: bool = True
    REDDIT_SUBREDDITS: str = "scams,personalfinance"
    REDDIT_LIMIT: int = Field(default=100, gt=0)
    REDDIT_INCLUDE_COMMENTS: bool = True
    REDDIT_MAX_COMMENTS_PER_POST: int = Field(default=100, gt=0)
    REDDIT_INTERVAL_MINUTES: int = Field(default=30, gt=0)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def subreddits(self) -> list[str]:
        return [s.strip() for s in self.REDDIT_SUBREDDITS.split(",") if s.strip()]


settings = Settings()
