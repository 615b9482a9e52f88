"""Storage collaborators the ingestion pipeline writes through."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from core.models import (
    DocumentInput,
    DocumentInsertResult,
    ScrapedItemInput,
    SearchHit,
    UpsertResult,
)


class DocumentRepository(ABC):
    @abstractmethod
    async def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""

    @abstractmethod
    async def upsert_scraped_item(self, item: ScrapedItemInput) -> UpsertResult:
        """Insert or refresh an item keyed on ``source_item_key``.

        ``inserted`` is True only when the row was created by this call.
        Mutable fields (score, comment count, metadata) are overwritten and
        ``scraped_at`` is bumped on refresh.
        """

    @abstractmethod
    async def insert_document(self, doc: DocumentInput) -> DocumentInsertResult:
        """Insert a document unless its key or content hash already exists.

        A conflict is a no-op that reports ``id=None, inserted=False``; the
        first writer is never overwritten.
        """

    @abstractmethod
    async def search_by_keyword(self, query: str, limit: int) -> list[SearchHit]:
        ...


class ObjectStore(ABC):
    @abstractmethod
    async def ensure_bucket(self) -> None:
        ...

    @abstractmethod
    async def put_json(self, key: str, value: Any) -> None:
        """Write ``value`` as JSON at ``key``, replacing any existing object."""
