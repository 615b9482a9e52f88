"""Reddit ingestion: paginate a subreddit, walk comment trees, write through."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any

from core.contracts import DocumentRepository, ObjectStore
from core.hashing import content_hash
from core.models import (
    KIND_COMMENT,
    KIND_SUBMISSION,
    SOURCE_PLATFORM,
    DocumentInput,
    ScrapedItemInput,
    ScrapeStats,
    ScrapeSummary,
    ScrapeTarget,
)
from scrapers.base import BaseScraper
from scrapers.comments import listing_children, walk_comments
from scrapers.fetcher import ResilientFetcher

log = logging.getLogger(__name__)

BASE_URL = "https://www.reddit.com"
LISTING_PAGE_SIZE = 100
COMMENT_FETCH_LIMIT = 500
COMMENT_FETCH_DEPTH = 5
SUBMISSION_KIND = "t3"
EMPTY_BODY_PLACEHOLDER = "[empty]"
REMOVED_BODIES = frozenset({"[deleted]", "[removed]"})


# ── payload readers ──────────────────────────────────────────────────
# Upstream JSON drifts; anything missing or of the wrong type reads as None.


def _read_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _read_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return int(value)


def _read_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def _epoch_to_datetime(value: Any) -> datetime | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def make_object_key(subreddit: str, kind: str, item_id: str, posted_at: datetime | None) -> str:
    dt = posted_at or datetime.now(timezone.utc)
    return f"reddit/{subreddit}/{dt:%Y-%m-%d}/{kind}_{item_id}.json"


def submission_body(submission: dict[str, Any]) -> str:
    """selftext, else the link url, else the title, else a placeholder."""
    for key in ("selftext", "url", "title"):
        text = (_read_str(submission.get(key)) or "").strip()
        if text:
            return text
    return EMPTY_BODY_PLACEHOLDER


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RedditScraper(BaseScraper):
    """Drives one bounded run over ``/r/<subreddit>/new``.

    Pages are requested sequentially, each submission is written to the
    object store, upserted as a scraped item and inserted as a document, and
    (optionally) its comment tree is fetched and written the same way. A
    failure while processing one submission is counted and logged; only a
    failed listing fetch aborts the run.
    """

    source_name = "reddit"

    def __init__(
        self,
        repo: DocumentRepository,
        store: ObjectStore,
        fetcher: ResilientFetcher,
        *,
        base_url: str = BASE_URL,
    ) -> None:
        super().__init__(repo, store)
        self._fetcher = fetcher
        self._base_url = base_url.rstrip("/")

    async def scrape(self, target: ScrapeTarget) -> ScrapeSummary:
        started_at = datetime.now(timezone.utc)
        stats = ScrapeStats()
        after: str | None = None

        log.info(
            "Starting Reddit scrape for r/%s (limit: %d, comments: %s)",
            target.subreddit,
            target.limit,
            target.include_comments,
        )

        while stats.scanned_submissions < target.limit:
            remaining = target.limit - stats.scanned_submissions
            listing = await self._fetch_submissions(
                target.subreddit, min(remaining, LISTING_PAGE_SIZE), after
            )
            children = listing_children(listing)
            if not children:
                break

            for child in children:
                if not isinstance(child, dict) or child.get("kind") != SUBMISSION_KIND:
                    continue
                submission = child.get("data")
                if not isinstance(submission, dict):
                    continue

                stats.scanned_submissions += 1
                try:
                    await self._process_submission(target, submission, stats)
                except Exception as exc:
                    stats.errors += 1
                    log.warning(
                        "r/%s: failed to process submission %s: %r",
                        target.subreddit,
                        submission.get("id"),
                        exc,
                    )

                if stats.scanned_submissions >= target.limit:
                    break

            after = _read_str(listing["data"].get("after"))
            if not after:
                break

        summary = ScrapeSummary.from_stats(
            target, stats, started_at, datetime.now(timezone.utc)
        )
        log.info(
            "Finished scrape: r/%s | %d submissions, %d comments | "
            "items %d new / %d updated | documents %d new / %d duplicate | "
            "%d errors | %dms",
            target.subreddit,
            summary.scanned_submissions,
            summary.scanned_comments,
            summary.inserted_items,
            summary.updated_items,
            summary.inserted_documents,
            summary.duplicate_documents,
            summary.errors,
            summary.duration_ms,
        )
        return summary

    # ── upstream ─────────────────────────────────────────────────────

    async def _fetch_submissions(
        self, subreddit: str, limit: int, after: str | None
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"limit": limit, "raw_json": 1}
        if after:
            params["after"] = after
        data = await self._fetcher.fetch_json(
            f"{self._base_url}/r/{subreddit}/new.json", params=params
        )
        if not isinstance(data, dict) or not isinstance(data.get("data"), dict):
            return {"data": {}}
        return data

    async def _fetch_comments(self, permalink: str, max_comments: int) -> list[dict[str, Any]]:
        data = await self._fetcher.fetch_json(
            f"{self._base_url}{permalink.rstrip('/')}.json",
            params={"limit": COMMENT_FETCH_LIMIT, "depth": COMMENT_FETCH_DEPTH, "raw_json": 1},
        )
        # A thread is [submission listing, comment listing].
        if not isinstance(data, list) or len(data) < 2:
            return []
        return walk_comments(listing_children(data[1]), max_comments)

    # ── processing ───────────────────────────────────────────────────

    def _absolute_url(self, permalink: str) -> str:
        return f"{self._base_url}{permalink}" if permalink else self._base_url

    async def _process_submission(
        self, target: ScrapeTarget, submission: dict[str, Any], stats: ScrapeStats
    ) -> None:
        post_id = _read_str(submission.get("id"))
        if not post_id:
            return

        subreddit = target.subreddit
        source_item_key = f"{SOURCE_PLATFORM}:t3_{post_id}"
        permalink = _read_str(submission.get("permalink")) or ""
        source_url = self._absolute_url(permalink)
        title = _read_str(submission.get("title")) or ""
        body = submission_body(submission)
        posted_at = _epoch_to_datetime(submission.get("created_utc"))

        object_key = make_object_key(subreddit, KIND_SUBMISSION, post_id, posted_at)
        await self._store.put_json(
            object_key,
            {
                "kind": KIND_SUBMISSION,
                "source": SOURCE_PLATFORM,
                "subreddit": subreddit,
                "payload": submission,
                "scrapedAt": _utcnow_iso(),
            },
        )

        item = await self._repo.upsert_scraped_item(
            ScrapedItemInput(
                source_item_key=source_item_key,
                source_url=source_url,
                source_kind=KIND_SUBMISSION,
                subreddit=subreddit,
                raw_object_key=object_key,
                author=_read_str(submission.get("author")),
                title=title,
                score=_read_int(submission.get("score")),
                num_comments=_read_int(submission.get("num_comments")),
                posted_at=posted_at,
                extra={
                    "post_id": post_id,
                    "permalink": permalink,
                    "is_self": _read_bool(submission.get("is_self")),
                },
            )
        )
        stats.record_item(item)

        doc = await self._repo.insert_document(
            DocumentInput(
                source_item_key=source_item_key,
                scraped_item_id=item.id,
                title=title,
                body=body,
                source_url=source_url,
                source_kind=KIND_SUBMISSION,
                subreddit=subreddit,
                content_hash=content_hash(title, body),
            )
        )
        stats.record_document(doc)

        if not target.include_comments or not permalink:
            return

        comments = await self._fetch_comments(permalink, target.max_comments_per_post)
        for comment in comments:
            await self._process_comment(subreddit, post_id, permalink, comment, stats)

    async def _process_comment(
        self,
        subreddit: str,
        post_id: str,
        post_permalink: str,
        comment: dict[str, Any],
        stats: ScrapeStats,
    ) -> None:
        comment_id = _read_str(comment.get("id"))
        if not comment_id:
            return
        body = (_read_str(comment.get("body")) or "").strip()
        if not body or body in REMOVED_BODIES:
            return

        stats.scanned_comments += 1

        source_item_key = f"{SOURCE_PLATFORM}:t1_{comment_id}"
        permalink = _read_str(comment.get("permalink")) or post_permalink
        source_url = self._absolute_url(permalink)
        parent_id = _read_str(comment.get("parent_id"))
        posted_at = _epoch_to_datetime(comment.get("created_utc"))
        title = f"Comment in r/{subreddit}"

        object_key = make_object_key(subreddit, KIND_COMMENT, comment_id, posted_at)
        await self._store.put_json(
            object_key,
            {
                "kind": KIND_COMMENT,
                "source": SOURCE_PLATFORM,
                "subreddit": subreddit,
                "submissionId": post_id,
                "payload": comment,
                "scrapedAt": _utcnow_iso(),
            },
        )

        item = await self._repo.upsert_scraped_item(
            ScrapedItemInput(
                source_item_key=source_item_key,
                source_url=source_url,
                source_kind=KIND_COMMENT,
                subreddit=subreddit,
                raw_object_key=object_key,
                author=_read_str(comment.get("author")),
                title=title,
                score=_read_int(comment.get("score")),
                parent_item_key=f"{SOURCE_PLATFORM}:{parent_id}" if parent_id else None,
                posted_at=posted_at,
                extra={
                    "comment_id": comment_id,
                    "permalink": permalink,
                    "parent_id": parent_id,
                    "link_id": _read_str(comment.get("link_id")),
                },
            )
        )
        stats.record_item(item)

        # Keyed on the comment id so identical short replies stay distinct.
        doc = await self._repo.insert_document(
            DocumentInput(
                source_item_key=source_item_key,
                scraped_item_id=item.id,
                title=title,
                body=body,
                source_url=source_url,
                source_kind=KIND_COMMENT,
                subreddit=subreddit,
                content_hash=content_hash(f"comment:{comment_id}", body),
            )
        )
        stats.record_document(doc)
