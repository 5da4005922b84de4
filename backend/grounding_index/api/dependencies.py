"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Header, HTTPException

from grounding_index.core.config import Settings, get_settings
from grounding_index.db.metadata import MetadataStore
from grounding_index.db.sqlite import SQLiteDatabase
from grounding_index.ingest.coordinator import IngestionCoordinator
from grounding_index.ingest.embeddings import EmbeddingProvider, build_embedding_provider
from grounding_index.ingest.images import ImageLibrary
from grounding_index.ingest.materials import MaterialLibrary
from grounding_index.ingest.vision import build_describer
from grounding_index.retrieval import RetrievalService, VectorStore
from grounding_index.storage.blobs import BlobStore, LocalBlobStore

_DB: SQLiteDatabase | None = None
_EMBEDDER: EmbeddingProvider | None = None
_BLOBS: BlobStore | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_database() -> SQLiteDatabase:
    global _DB
    if _DB is None:
        settings = get_app_settings()
        db = SQLiteDatabase(settings.db_path)
        db.ensure_schema()
        _DB = db
    return _DB


def get_embedder() -> EmbeddingProvider:
    global _EMBEDDER
    if _EMBEDDER is None:
        settings = get_app_settings()
        _EMBEDDER = build_embedding_provider(
            settings.embedding_backend,
            settings.embedding_model,
            settings.embedding_dim,
        )
    return _EMBEDDER


def get_blob_store() -> BlobStore:
    global _BLOBS
    if _BLOBS is None:
        settings = get_app_settings()
        _BLOBS = LocalBlobStore(settings.blob_root, settings.public_base_url)
    return _BLOBS


def get_metadata_store() -> MetadataStore:
    return MetadataStore(get_database())


def get_vector_store() -> VectorStore:
    return VectorStore(get_database(), get_app_settings().embedding_dim)


def get_coordinator() -> IngestionCoordinator:
    return IngestionCoordinator(
        metadata=get_metadata_store(),
        vectors=get_vector_store(),
        blobs=get_blob_store(),
        embedder=get_embedder(),
        settings=get_app_settings(),
    )


def get_material_library() -> MaterialLibrary:
    return MaterialLibrary(
        metadata=get_metadata_store(),
        vectors=get_vector_store(),
        blobs=get_blob_store(),
        lease_seconds=get_app_settings().lease_seconds,
    )


def get_image_library() -> ImageLibrary:
    settings = get_app_settings()
    return ImageLibrary(
        metadata=get_metadata_store(),
        vectors=get_vector_store(),
        blobs=get_blob_store(),
        embedder=get_embedder(),
        describer=build_describer(settings.vision_endpoint, settings.vision_timeout_seconds),
    )


def get_retrieval_service() -> RetrievalService:
    return RetrievalService(
        metadata=get_metadata_store(),
        vectors=get_vector_store(),
        embedder=get_embedder(),
        settings=get_app_settings(),
    )


def get_owner_id(x_owner_id: str | None = Header(default=None)) -> str:
    """Owner scoping comes from the upstream auth layer via ``X-Owner-Id``."""
    if not x_owner_id or not x_owner_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized. Missing X-Owner-Id header.")
    return x_owner_id.strip()


def reset_singletons() -> None:
    global _DB, _EMBEDDER, _BLOBS
    if _DB is not None:
        _DB.close()
    _DB = None
    _EMBEDDER = None
    _BLOBS = None
    get_app_settings.cache_clear()
    get_settings.cache_clear()


__all__ = [
    "get_app_settings",
    "get_database",
    "get_embedder",
    "get_blob_store",
    "get_metadata_store",
    "get_vector_store",
    "get_coordinator",
    "get_material_library",
    "get_image_library",
    "get_retrieval_service",
    "get_owner_id",
    "reset_singletons",
]
