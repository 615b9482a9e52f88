from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Query

from scrapers.runner import build_repository

router = APIRouter(prefix="/api", tags=["documents"])


@router.get("/search")
async def search_documents(
    q: str = Query(..., min_length=2, max_length=300),
    limit: int = Query(10, ge=1, le=50),
):
    hits = await build_repository().search_by_keyword(q, limit)
    return {"query": q, "count": len(hits), "hits": [asdict(h) for h in hits]}


@router.get("/stats")
async def document_stats():
    return await build_repository().get_stats()
