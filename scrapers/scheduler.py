from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config.settings import Settings, settings
from core.models import ScrapeSummary, ScrapeTarget
from scrapers.runner import run_scrape

log = logging.getLogger(__name__)

RunFn = Callable[[ScrapeTarget], Awaitable[ScrapeSummary]]


def targets_from_settings(config: Settings = settings) -> list[ScrapeTarget]:
    return [
        ScrapeTarget(
            subreddit=sub,
            limit=config.REDDIT_LIMIT,
            include_comments=config.REDDIT_INCLUDE_COMMENTS,
            max_comments_per_post=config.REDDIT_MAX_COMMENTS_PER_POST,
        )
        for sub in config.subreddits
    ]


class ScrapeScheduler:
    """Runs each configured subreddit on an interval, one job per target."""

    def __init__(
        self,
        targets: list[ScrapeTarget] | None = None,
        *,
        interval_minutes: int = settings.REDDIT_INTERVAL_MINUTES,
        run_fn: RunFn = run_scrape,
    ) -> None:
        self._targets = targets if targets is not None else targets_from_settings()
        self._interval = interval_minutes
        self._run_fn = run_fn
        self._scheduler = AsyncIOScheduler()

    def start(self) -> None:
        for target in self._targets:
            job_id = f"scrape_{target.subreddit}"
            self._scheduler.add_job(
                self._run_target,
                "interval",
                minutes=self._interval,
                args=[target],
                id=job_id,
                replace_existing=True,
                max_instances=1,
            )
            # Also run once at startup
            self._scheduler.add_job(
                self._run_target,
                "date",
                run_date=datetime.now(timezone.utc),
                args=[target],
                id=f"{job_id}_init",
                replace_existing=True,
            )
        self._scheduler.start()
        log.info(
            "Scrape scheduler started for %s every %d minutes",
            [t.subreddit for t in self._targets],
            self._interval,
        )

    def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    async def run_target(self, target: ScrapeTarget) -> ScrapeSummary:
        """Manually trigger a single scrape; errors propagate to the caller."""
        return await self._run_fn(target)

    def get_status(self) -> dict:
        jobs = []
        for job in self._scheduler.get_jobs():
            jobs.append(
                {
                    "id": job.id,
                    "next_run": job.next_run_time.isoformat()
                    if job.next_run_time
                    else None,
                }
            )
        return {"running": self._scheduler.running, "jobs": jobs}

    async def _run_target(self, target: ScrapeTarget) -> None:
        try:
            await self._run_fn(target)
        except Exception as exc:
            # Already recorded as a failed run; keep the schedule alive.
            log.error("Scheduled scrape of r/%s failed: %s", target.subreddit, exc)
