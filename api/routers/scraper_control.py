from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from core.models import ScrapeTarget
from scrapers.backoff import FetchError

router = APIRouter(prefix="/api/scraper", tags=["scraper"])

# The scheduler reference is injected by main.py at startup
_scheduler = None


def set_scheduler(scheduler) -> None:
    global _scheduler
    _scheduler = scheduler


class ScrapeRequest(BaseModel):
    subreddit: str = Field(min_length=1, max_length=100)
    limit: int = Field(100, gt=0, le=1000)
    include_comments: bool = True
    max_comments_per_post: int = Field(100, gt=0, le=500)


@router.post("/run")
async def trigger_scrape(body: ScrapeRequest):
    if _scheduler is None:
        raise HTTPException(503, "Scheduler not initialized")

    target = ScrapeTarget(
        subreddit=body.subreddit,
        limit=body.limit,
        include_comments=body.include_comments,
        max_comments_per_post=body.max_comments_per_post,
    )
    try:
        summary = await _scheduler.run_target(target)
    except FetchError as exc:
        raise HTTPException(502, f"Listing fetch failed: {exc}") from exc
    return summary.to_dict()


@router.get("/status")
async def scheduler_status():
    if _scheduler is None:
        return {"running": False, "jobs": []}
    return _scheduler.get_status()
