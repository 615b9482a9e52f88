"""Builds the ingestion services from settings and records each run."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncEngine

from config.settings import Settings, settings
from core.contracts import ObjectStore
from core.models import ScrapeSummary, ScrapeTarget
from data import database
from data.database import get_session
from data.object_store import LocalJsonObjectStore, S3JsonObjectStore
from data.repositories import ScrapeRunRepository, SqlDocumentRepository
from scrapers.fetcher import ResilientFetcher
from scrapers.reddit import RedditScraper

log = logging.getLogger(__name__)


def build_repository(engine: AsyncEngine | None = None) -> SqlDocumentRepository:
    return SqlDocumentRepository(engine or database.engine)


def build_object_store(config: Settings = settings) -> ObjectStore:
    if config.OBJECT_STORE_BACKEND == "s3":
        return S3JsonObjectStore(
            config.OBJECT_STORE_BUCKET,
            endpoint_url=config.OBJECT_STORE_ENDPOINT,
            region=config.OBJECT_STORE_REGION,
            access_key_id=config.OBJECT_STORE_ACCESS_KEY_ID,
            secret_access_key=config.OBJECT_STORE_SECRET_ACCESS_KEY,
            force_path_style=config.OBJECT_STORE_FORCE_PATH_STYLE,
        )
    return LocalJsonObjectStore(config.OBJECT_STORE_ROOT, config.OBJECT_STORE_BUCKET)


def build_fetcher(config: Settings = settings) -> ResilientFetcher:
    return ResilientFetcher(
        user_agent=config.REDDIT_USER_AGENT,
        request_delay_ms=config.SCRAPE_RATE_LIMIT_MS,
        max_attempts=config.SCRAPE_MAX_RETRY_ATTEMPTS,
        base_delay_ms=config.SCRAPE_RETRY_BASE_DELAY_MS,
        timeout=config.SCRAPE_REQUEST_TIMEOUT,
    )


async def ensure_storage(config: Settings = settings) -> None:
    """Create the database schema and the raw object bucket."""
    await build_repository().ensure_schema()
    await build_object_store(config).ensure_bucket()


async def run_scrape(target: ScrapeTarget, config: Settings = settings) -> ScrapeSummary:
    """Run one scrape for ``target`` and append it to the run log.

    A run that aborts (the listing itself could not be fetched) is logged as
    ``failed`` and the error is re-raised.
    """
    started_at = datetime.now(timezone.utc)
    repo = build_repository()
    store = build_object_store(config)

    try:
        async with build_fetcher(config) as fetcher:
            scraper = RedditScraper(repo, store, fetcher, base_url=config.REDDIT_BASE_URL)
            summary = await scraper.scrape(target)
    except Exception as exc:
        log.error("Scrape of r/%s aborted: %s", target.subreddit, exc)
        async with get_session() as session:
            await ScrapeRunRepository(session).log_failure(target, started_at, str(exc))
        raise

    async with get_session() as session:
        await ScrapeRunRepository(session).log_summary(summary)
    return summary
