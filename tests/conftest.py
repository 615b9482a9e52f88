"""
Shared fixtures: in-memory storage fakes, upstream payload builders and a
mock-transport fetcher that never sleeps for real.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from core.contracts import DocumentRepository, ObjectStore
from core.models import (
    DocumentInput,
    DocumentInsertResult,
    ScrapedItemInput,
    SearchHit,
    UpsertResult,
)
from data.repositories import SqlDocumentRepository
from scrapers.fetcher import ResilientFetcher

# =============================================================================
# Storage fakes
# =============================================================================


class InMemoryRepository(DocumentRepository):
    """Honours the same key/hash uniqueness rules as the SQL repository."""

    def __init__(self) -> None:
        self.items: dict[str, ScrapedItemInput] = {}
        self.item_ids: dict[str, int] = {}
        self.documents: dict[str, DocumentInput] = {}
        self.hashes: set[str] = set()
        self.fail_on_keys: set[str] = set()

    async def ensure_schema(self) -> None:
        return None

    async def upsert_scraped_item(self, item: ScrapedItemInput) -> UpsertResult:
        if item.source_item_key in self.fail_on_keys:
            raise RuntimeError(f"database unavailable for {item.source_item_key}")
        inserted = item.source_item_key not in self.items
        if inserted:
            self.item_ids[item.source_item_key] = len(self.item_ids) + 1
        self.items[item.source_item_key] = item
        return UpsertResult(id=self.item_ids[item.source_item_key], inserted=inserted)

    async def insert_document(self, doc: DocumentInput) -> DocumentInsertResult:
        if doc.source_item_key in self.documents or doc.content_hash in self.hashes:
            return DocumentInsertResult(id=None, inserted=False)
        self.documents[doc.source_item_key] = doc
        self.hashes.add(doc.content_hash)
        return DocumentInsertResult(id=len(self.documents), inserted=True)

    async def search_by_keyword(self, query: str, limit: int) -> list[SearchHit]:
        return []


class InMemoryObjectStore(ObjectStore):
    def __init__(self) -> None:
        self.objects: dict[str, Any] = {}

    async def ensure_bucket(self) -> None:
        return None

    async def put_json(self, key: str, value: Any) -> None:
        self.objects[key] = value


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest_asyncio.fixture
async def sql_repo(tmp_path):
    """SqlDocumentRepository on a throwaway SQLite file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    repository = SqlDocumentRepository(engine)
    await repository.ensure_schema()
    yield repository
    await engine.dispose()


# =============================================================================
# Upstream payload builders
# =============================================================================


def make_submission(post_id: str, **overrides: Any) -> dict[str, Any]:
    data = {
        "id": post_id,
        "title": f"Title {post_id}",
        "selftext": f"Body of {post_id}",
        "url": f"https://www.reddit.com/r/test/comments/{post_id}/",
        "permalink": f"/r/test/comments/{post_id}/title_{post_id}/",
        "author": "someone",
        "score": 10,
        "num_comments": 2,
        "created_utc": 1_700_000_000,
        "is_self": True,
    }
    data.update(overrides)
    return {"kind": "t3", "data": data}


def make_comment(
    comment_id: str, body: str | None = None, replies: list[dict] | None = None, **overrides: Any
) -> dict[str, Any]:
    data = {
        "id": comment_id,
        "body": body if body is not None else f"Comment {comment_id}",
        "author": "replier",
        "score": 3,
        "parent_id": "t3_p1",
        "link_id": "t3_p1",
        "permalink": f"/r/test/comments/p1/title/{comment_id}/",
        "created_utc": 1_700_000_100,
        "replies": make_listing(replies) if replies else "",
    }
    data.update(overrides)
    return {"kind": "t1", "data": data}


def make_listing(children: list[dict], after: str | None = None) -> dict[str, Any]:
    return {"kind": "Listing", "data": {"after": after, "children": children}}


def make_thread(submission: dict, comments: list[dict]) -> list[dict[str, Any]]:
    return [make_listing([submission]), make_listing(comments)]


# =============================================================================
# Fetcher wiring
# =============================================================================


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_fetcher(sleeps):
    """Build a ResilientFetcher whose HTTP traffic goes to ``handler``."""

    def _make(
        handler: Callable[[httpx.Request], httpx.Response],
        *,
        max_attempts: int = 3,
        base_delay_ms: float = 1000,
        request_delay_ms: float = 1200,
    ) -> ResilientFetcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return ResilientFetcher(
            user_agent="forum-ingest-tests/1.0",
            request_delay_ms=request_delay_ms,
            max_attempts=max_attempts,
            base_delay_ms=base_delay_ms,
            client=client,
            sleep=sleeps,
        )

    return _make
