from __future__ import annotations

from fastapi import APIRouter, Query

from data.database import get_session
from data.repositories import ScrapeRunRepository

router = APIRouter(prefix="/api/runs", tags=["runs"])


@router.get("")
async def recent_runs(limit: int = Query(20, ge=1, le=100)):
    async with get_session() as session:
        repo = ScrapeRunRepository(session)
        runs = await repo.recent_runs(limit=limit)
        return [
            {
                "id": r.id,
                "subreddit": r.subreddit,
                "status": r.status,
                "requested": r.requested,
                "scanned_submissions": r.scanned_submissions,
                "scanned_comments": r.scanned_comments,
                "inserted_items": r.inserted_items,
                "updated_items": r.updated_items,
                "inserted_documents": r.inserted_documents,
                "duplicate_documents": r.duplicate_documents,
                "errors": r.errors,
                "error_message": r.error_message,
                "duration_seconds": r.duration_seconds,
                "started_at": r.started_at.isoformat() if r.started_at else None,
                "finished_at": r.finished_at.isoformat() if r.finished_at else None,
            }
            for r in runs
        ]
