from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

SOURCE_PLATFORM = "reddit"
KIND_SUBMISSION = "submission"
KIND_COMMENT = "comment"


@dataclass(frozen=True)
class ScrapeTarget:
    """What a single scrape run should collect."""

    subreddit: str
    limit: int
    include_comments: bool = True
    max_comments_per_post: int = 100

    def __post_init__(self) -> None:
        if not self.subreddit.strip():
            raise ValueError("subreddit must not be empty")
        if self.limit <= 0:
            raise ValueError(f"limit must be positive, got {self.limit}")
        if self.max_comments_per_post <= 0:
            raise ValueError(
                f"max_comments_per_post must be positive, got {self.max_comments_per_post}"
            )


@dataclass
class ScrapedItemInput:
    """Raw-layer record for one submission or comment."""

    source_item_key: str  # "reddit:t3_<id>" / "reddit:t1_<id>"
    source_url: str
    source_kind: str
    subreddit: str
    raw_object_key: str
    author: str | None = None
    title: str | None = None
    score: int | None = None
    num_comments: int | None = None
    parent_item_key: str | None = None
    posted_at: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    source_platform: str = SOURCE_PLATFORM


@dataclass
class DocumentInput:
    """Canonical, deduplicated content derived from a scraped item."""

    source_item_key: str
    scraped_item_id: int
    title: str
    body: str
    source_url: str
    source_kind: str
    subreddit: str
    content_hash: str
    tags: list[str] = field(default_factory=list)
    source_platform: str = SOURCE_PLATFORM


@dataclass(frozen=True)
class UpsertResult:
    id: int
    inserted: bool


@dataclass(frozen=True)
class DocumentInsertResult:
    id: int | None  # None when the insert was a no-op
    inserted: bool


@dataclass(frozen=True)
class SearchHit:
    id: int
    source_item_key: str
    title: str
    source_url: str
    subreddit: str
    rank: float
    snippet: str


@dataclass
class ScrapeStats:
    """Counters mutated while a run is in progress."""

    scanned_submissions: int = 0
    scanned_comments: int = 0
    inserted_items: int = 0
    updated_items: int = 0
    inserted_documents: int = 0
    duplicate_documents: int = 0
    errors: int = 0

    def record_item(self, result: UpsertResult) -> None:
        if result.inserted:
            self.inserted_items += 1
        else:
            self.updated_items += 1

    def record_document(self, result: DocumentInsertResult) -> None:
        if result.inserted:
            self.inserted_documents += 1
        else:
            self.duplicate_documents += 1


@dataclass(frozen=True)
class ScrapeSummary:
    """Outcome of a single scrape run."""

    subreddit: str
    requested: int
    include_comments: bool
    started_at: datetime
    finished_at: datetime
    scanned_submissions: int
    scanned_comments: int
    inserted_items: int
    updated_items: int
    inserted_documents: int
    duplicate_documents: int
    errors: int

    @classmethod
    def from_stats(
        cls,
        target: ScrapeTarget,
        stats: ScrapeStats,
        started_at: datetime,
        finished_at: datetime,
    ) -> ScrapeSummary:
        return cls(
            subreddit=target.subreddit,
            requested=target.limit,
            include_comments=target.include_comments,
            started_at=started_at,
            finished_at=finished_at,
            **asdict(stats),
        )

    @property
    def duration_ms(self) -> int:
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat()
        data["duration_ms"] = self.duration_ms
        return data
