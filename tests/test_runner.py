"""
Tests for service wiring, run logging and the scheduler.
"""

from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from config.settings import Settings
from conftest import make_listing, make_submission
from core.models import ScrapeTarget
from data import database
from data.database import get_session
from data.object_store import LocalJsonObjectStore, S3JsonObjectStore
from data.repositories import ScrapeRunRepository
from scrapers import runner
from scrapers.backoff import FetchError
from scrapers.scheduler import ScrapeScheduler, targets_from_settings


@pytest.fixture
def wired(sql_repo, tmp_path, monkeypatch, make_fetcher):
    """Point the runner at the temp database, object root and a mock upstream."""
    factory = async_sessionmaker(sql_repo._engine, expire_on_commit=False)
    monkeypatch.setattr(database, "engine", sql_repo._engine)
    monkeypatch.setattr(runner, "get_session", lambda: get_session(factory))

    config = Settings(OBJECT_STORE_ROOT=str(tmp_path / "objects"), OBJECT_STORE_BUCKET="raw")

    def use_upstream(handler, **kwargs):
        monkeypatch.setattr(runner, "build_fetcher", lambda _config: make_fetcher(handler, **kwargs))

    return config, factory, use_upstream


async def recent_runs(factory):
    async with get_session(factory) as session:
        return await ScrapeRunRepository(session).recent_runs()


@pytest.mark.asyncio
async def test_run_scrape_persists_and_logs_success(wired, tmp_path):
    config, factory, use_upstream = wired
    use_upstream(lambda request: httpx.Response(200, json=make_listing([make_submission("p1")])))

    summary = await runner.run_scrape(
        ScrapeTarget(subreddit="test", limit=1, include_comments=False), config
    )

    assert summary.inserted_documents == 1
    raw = tmp_path / "objects" / "raw" / "reddit" / "test" / "2023-11-14" / "submission_p1.json"
    assert raw.exists()
    runs = await recent_runs(factory)
    assert [(r.subreddit, r.status, r.inserted_documents) for r in runs] == [("test", "success", 1)]


@pytest.mark.asyncio
async def test_run_scrape_logs_failed_run_and_reraises(wired):
    config, factory, use_upstream = wired
    use_upstream(lambda request: httpx.Response(403), max_attempts=1)

    with pytest.raises(FetchError):
        await runner.run_scrape(ScrapeTarget(subreddit="test", limit=1), config)

    runs = await recent_runs(factory)
    assert len(runs) == 1
    assert runs[0].status == "failed"
    assert "403" in runs[0].error_message


def test_targets_from_settings():
    config = Settings(
        REDDIT_SUBREDDITS="scams, personalfinance,,",
        REDDIT_LIMIT=25,
        REDDIT_INCLUDE_COMMENTS=False,
        REDDIT_MAX_COMMENTS_PER_POST=10,
    )
    targets = targets_from_settings(config)

    assert [t.subreddit for t in targets] == ["scams", "personalfinance"]
    assert all(t.limit == 25 and not t.include_comments for t in targets)
    assert targets[0].max_comments_per_post == 10


def test_settings_reject_out_of_range_retry_attempts():
    with pytest.raises(ValueError):
        Settings(SCRAPE_MAX_RETRY_ATTEMPTS=11)


@pytest.mark.asyncio
async def test_scheduler_manual_run_propagates_errors():
    run_fn = AsyncMock(side_effect=FetchError("down", retryable=True))
    scheduler = ScrapeScheduler([], run_fn=run_fn)
    target = ScrapeTarget(subreddit="test", limit=1)

    with pytest.raises(FetchError):
        await scheduler.run_target(target)
    run_fn.assert_awaited_once_with(target)


@pytest.mark.asyncio
async def test_scheduled_job_survives_failures():
    run_fn = AsyncMock(side_effect=FetchError("down", retryable=True))
    scheduler = ScrapeScheduler([], run_fn=run_fn)

    await scheduler._run_target(ScrapeTarget(subreddit="test", limit=1))

    run_fn.assert_awaited_once()


def test_scheduler_status_before_start():
    scheduler = ScrapeScheduler([ScrapeTarget(subreddit="test", limit=1)], run_fn=AsyncMock())
    assert scheduler.get_status() == {"running": False, "jobs": []}


def test_build_object_store_defaults_to_local_directory(tmp_path):
    store = runner.build_object_store(Settings(OBJECT_STORE_ROOT=str(tmp_path), OBJECT_STORE_BUCKET="raw"))

    assert isinstance(store, LocalJsonObjectStore)
    assert store.bucket_dir == tmp_path / "raw"


def test_build_object_store_selects_s3_bucket():
    config = Settings(
        OBJECT_STORE_BACKEND="s3",
        OBJECT_STORE_BUCKET="forum-raw",
        OBJECT_STORE_ENDPOINT="http://localhost:9000",
        OBJECT_STORE_ACCESS_KEY_ID="minioadmin",
        OBJECT_STORE_SECRET_ACCESS_KEY="minioadmin",
    )
    store = runner.build_object_store(config)

    assert isinstance(store, S3JsonObjectStore)
    assert store.bucket == "forum-raw"
