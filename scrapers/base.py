from __future__ import annotations

from abc import ABC, abstractmethod

from core.contracts import DocumentRepository, ObjectStore
from core.models import ScrapeSummary, ScrapeTarget


class BaseScraper(ABC):
    source_name: str

    def __init__(self, repo: DocumentRepository, store: ObjectStore) -> None:
        self._repo = repo
        self._store = store

    @abstractmethod
    async def scrape(self, target: ScrapeTarget) -> ScrapeSummary:
        """Execute a full, bounded scrape run for ``target``."""
        ...
