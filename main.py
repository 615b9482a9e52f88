"""Forum Ingest API server entry point."""

from __future__ import annotations

import logging

import uvicorn

from api.app import create_app
from api.routers.scraper_control import set_scheduler
from config.settings import settings
from scrapers.runner import ensure_storage
from scrapers.scheduler import ScrapeScheduler

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)
log = logging.getLogger(__name__)

app = create_app()


@app.on_event("startup")
async def on_startup() -> None:
    log.info("Initialising database and object store…")
    await ensure_storage()

    scheduler = ScrapeScheduler()
    app.state.scheduler = scheduler
    set_scheduler(scheduler)
    if settings.SCHEDULER_ENABLED:
        log.info("Starting scrape scheduler…")
        scheduler.start()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    if hasattr(app.state, "scheduler"):
        app.state.scheduler.stop()
        log.info("Scrape scheduler stopped.")


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.SERVER_PORT,
        reload=False,
    )
