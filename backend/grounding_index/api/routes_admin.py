"""Administrative routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from grounding_index.api.dependencies import get_vector_store
from grounding_index.core.metrics import metrics_response
from grounding_index.retrieval.vector_index import CHUNKS, IMAGES, VectorStore

router = APIRouter()


@router.get("/health", summary="Liveness check")
async def health() -> dict[str, bool]:
    return {"ok": True}


@router.get("/stats", summary="Vector row counts per collection")
async def stats(vectors: VectorStore = Depends(get_vector_store)) -> dict[str, int]:
    return {CHUNKS: vectors.count(collection=CHUNKS), IMAGES: vectors.count(collection=IMAGES)}


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


__all__ = ["router"]
