from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from core.contracts import DocumentRepository
from core.models import (
    DocumentInput,
    DocumentInsertResult,
    ScrapedItemInput,
    ScrapeSummary,
    ScrapeTarget,
    SearchHit,
    UpsertResult,
)
from data.database import get_session, init_db
from data.schema import DBDocument, DBScrapedItem, DBScrapeRun

# ── helpers ──────────────────────────────────────────────────────────

# Columns overwritten when an already-known item is scraped again.
_REFRESHED_COLUMNS = (
    "source_url",
    "raw_object_key",
    "author",
    "title",
    "score",
    "num_comments",
    "parent_item_key",
    "posted_at",
    "extra",
    "scraped_at",
)

_SEARCH_CANDIDATES_PER_HIT = 5
_SNIPPET_LEAD = 60
_SNIPPET_WIDTH = 200


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _rank(doc: DBDocument, terms: list[str]) -> float:
    title = doc.title.lower()
    body = doc.body.lower()
    return float(sum(title.count(t) * 2 + body.count(t) for t in terms))


def _snippet(body: str, terms: list[str]) -> str:
    lowered = body.lower()
    positions = [p for p in (lowered.find(t) for t in terms) if p >= 0]
    start = max(min(positions, default=0) - _SNIPPET_LEAD, 0)
    end = start + _SNIPPET_WIDTH
    fragment = body[start:end]
    if start > 0:
        fragment = "…" + fragment
    if end < len(body):
        fragment = fragment + "…"
    pattern = re.compile("|".join(re.escape(t) for t in terms), re.IGNORECASE)
    return pattern.sub(lambda m: f"<mark>{m.group(0)}</mark>", fragment)


# ── SqlDocumentRepository ────────────────────────────────────────────


class SqlDocumentRepository(DocumentRepository):
    """Scraped items and documents in SQLite or PostgreSQL.

    Each call runs in its own transaction so that one failed write never
    rolls back items already ingested in the same run.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._session_factory = async_sessionmaker(engine, expire_on_commit=False)
        self._dialect = engine.dialect.name

    def _insert(self, model: type):
        if self._dialect == "postgresql":
            return pg_insert(model)
        return sqlite_insert(model)

    async def ensure_schema(self) -> None:
        await init_db(self._engine)

    async def upsert_scraped_item(self, item: ScrapedItemInput) -> UpsertResult:
        now = _utcnow()
        stmt = self._insert(DBScrapedItem).values(
            source_item_key=item.source_item_key,
            source_url=item.source_url,
            source_platform=item.source_platform,
            source_kind=item.source_kind,
            subreddit=item.subreddit,
            raw_object_key=item.raw_object_key,
            author=item.author,
            title=item.title,
            score=item.score,
            num_comments=item.num_comments,
            parent_item_key=item.parent_item_key,
            posted_at=item.posted_at,
            extra=item.extra,
            scraped_at=now,
            created_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["source_item_key"],
            set_={col: stmt.excluded[col] for col in _REFRESHED_COLUMNS},
        )

        # created_at is never refreshed, so it equals ``now`` only for a row
        # this statement created.
        async with get_session(self._session_factory) as session:
            row = (
                await session.execute(
                    stmt.returning(DBScrapedItem.id, DBScrapedItem.created_at)
                )
            ).one()
        return UpsertResult(id=row.id, inserted=row.created_at == now)

    async def insert_document(self, doc: DocumentInput) -> DocumentInsertResult:
        stmt = (
            self._insert(DBDocument)
            .values(
                source_item_key=doc.source_item_key,
                scraped_item_id=doc.scraped_item_id,
                title=doc.title,
                body=doc.body,
                source_url=doc.source_url,
                source_platform=doc.source_platform,
                source_kind=doc.source_kind,
                subreddit=doc.subreddit,
                content_hash=doc.content_hash,
                tags=list(doc.tags),
                created_at=_utcnow(),
            )
            .on_conflict_do_nothing()
            .returning(DBDocument.id)
        )
        async with get_session(self._session_factory) as session:
            doc_id = (await session.execute(stmt)).scalar_one_or_none()
        if doc_id is None:
            return DocumentInsertResult(id=None, inserted=False)
        return DocumentInsertResult(id=doc_id, inserted=True)

    async def search_by_keyword(self, query: str, limit: int) -> list[SearchHit]:
        terms = [t for t in query.lower().split() if t]
        if not terms or limit <= 0:
            return []

        q = select(DBDocument)
        for term in terms:
            pattern = _like_pattern(term)
            q = q.where(
                DBDocument.title.ilike(pattern, escape="\\")
                | DBDocument.body.ilike(pattern, escape="\\")
            )
        q = q.order_by(DBDocument.created_at.desc(), DBDocument.id.desc()).limit(
            limit * _SEARCH_CANDIDATES_PER_HIT
        )

        async with get_session(self._session_factory) as session:
            docs = list((await session.execute(q)).scalars().all())

        # sorted() is stable, so equal ranks stay newest first
        ranked = sorted(docs, key=lambda d: _rank(d, terms), reverse=True)[:limit]
        return [
            SearchHit(
                id=d.id,
                source_item_key=d.source_item_key,
                title=d.title,
                source_url=d.source_url,
                subreddit=d.subreddit,
                rank=_rank(d, terms),
                snippet=_snippet(d.body, terms),
            )
            for d in ranked
        ]

    async def get_stats(self) -> dict[str, Any]:
        since = _utcnow() - timedelta(hours=24)
        async with get_session(self._session_factory) as session:
            total_documents = await session.scalar(select(func.count(DBDocument.id))) or 0
            total_items = await session.scalar(select(func.count(DBScrapedItem.id))) or 0

            by_kind = (
                await session.execute(
                    select(DBDocument.source_kind, func.count(DBDocument.id))
                    .group_by(DBDocument.source_kind)
                    .order_by(func.count(DBDocument.id).desc())
                )
            ).all()
            top_subreddits = (
                await session.execute(
                    select(DBDocument.subreddit, func.count(DBDocument.id))
                    .group_by(DBDocument.subreddit)
                    .order_by(func.count(DBDocument.id).desc())
                    .limit(10)
                )
            ).all()
            recent_documents = (
                await session.scalar(
                    select(func.count(DBDocument.id)).where(DBDocument.created_at >= since)
                )
                or 0
            )
            recent_items = (
                await session.scalar(
                    select(func.count(DBScrapedItem.id)).where(
                        DBScrapedItem.scraped_at >= since
                    )
                )
                or 0
            )

        duplicate_rate = (
            round(1 - total_documents / total_items, 4) if total_items > 0 else 0.0
        )
        return {
            "total_documents": total_documents,
            "total_scraped_items": total_items,
            "documents_by_kind": [{"kind": r[0], "count": r[1]} for r in by_kind],
            "top_subreddits": [{"subreddit": r[0], "count": r[1]} for r in top_subreddits],
            "recent_documents_24h": recent_documents,
            "recent_scraped_items_24h": recent_items,
            "duplicate_rate_estimate": duplicate_rate,
        }


# ── ScrapeRunRepository ──────────────────────────────────────────────


class ScrapeRunRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._s = session

    async def log_summary(self, summary: ScrapeSummary) -> DBScrapeRun:
        run = DBScrapeRun(
            subreddit=summary.subreddit,
            status="success" if summary.errors == 0 else "partial",
            requested=summary.requested,
            scanned_submissions=summary.scanned_submissions,
            scanned_comments=summary.scanned_comments,
            inserted_items=summary.inserted_items,
            updated_items=summary.updated_items,
            inserted_documents=summary.inserted_documents,
            duplicate_documents=summary.duplicate_documents,
            errors=summary.errors,
            duration_seconds=round(summary.duration_ms / 1000, 2),
            started_at=summary.started_at,
            finished_at=summary.finished_at,
        )
        self._s.add(run)
        return run

    async def log_failure(
        self, target: ScrapeTarget, started_at: datetime, error_message: str
    ) -> DBScrapeRun:
        finished_at = _utcnow()
        run = DBScrapeRun(
            subreddit=target.subreddit,
            status="failed",
            requested=target.limit,
            error_message=error_message[:500],
            duration_seconds=round((finished_at - started_at).total_seconds(), 2),
            started_at=started_at,
            finished_at=finished_at,
        )
        self._s.add(run)
        return run

    async def recent_runs(self, limit: int = 20) -> list[DBScrapeRun]:
        q = (
            select(DBScrapeRun)
            .order_by(DBScrapeRun.started_at.desc(), DBScrapeRun.id.desc())
            .limit(limit)
        )
        result = await self._s.execute(q)
        return list(result.scalars().all())
