"""Test fixtures for the grounding index."""

from __future__ import annotations

import io
import sys
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("GIDX_DB_PATH", str(tmp_path / "gidx.db"))
    monkeypatch.setenv("GIDX_BLOB_ROOT", str(tmp_path / "blobs"))
    monkeypatch.setenv("GIDX_EMBEDDING_BACKEND", "hashed")
    monkeypatch.setenv("GIDX_EMBED_WORKERS", "2")
    monkeypatch.delenv("GIDX_CONFIG", raising=False)
    monkeypatch.delenv("GIDX_VISION_ENDPOINT", raising=False)

    from grounding_index.api import dependencies as deps

    deps.reset_singletons()
    yield
    deps.reset_singletons()


@pytest.fixture
def settings(tmp_path: Path):
    from grounding_index.core.config import Settings

    return Settings(
        db_path=tmp_path / "unit.db",
        blob_root=tmp_path / "unit-blobs",
        embedding_dim=64,
        embed_workers=2,
        chunk_window_size=120,
        chunk_overlap=20,
    )


@pytest.fixture
def db(settings):
    from grounding_index.db.sqlite import SQLiteDatabase

    database = SQLiteDatabase(settings.db_path)
    database.ensure_schema()
    yield database
    database.close()


@pytest.fixture
def metadata(db):
    from grounding_index.db.metadata import MetadataStore

    return MetadataStore(db)


@pytest.fixture
def vectors(db, settings):
    from grounding_index.retrieval.vector_index import VectorStore

    return VectorStore(db, settings.embedding_dim)


@pytest.fixture
def blobs(settings):
    from grounding_index.storage.blobs import LocalBlobStore

    return LocalBlobStore(settings.blob_root, "http://testserver/blobs")


@pytest.fixture
def embedder(settings):
    from grounding_index.ingest.embeddings import HashedEmbeddingProvider

    return HashedEmbeddingProvider(settings.embedding_dim)


@pytest.fixture
def materials(metadata, vectors, blobs, settings):
    from grounding_index.ingest.materials import MaterialLibrary

    return MaterialLibrary(metadata, vectors, blobs, lease_seconds=settings.lease_seconds)


@pytest.fixture
def coordinator(metadata, vectors, blobs, embedder, settings):
    from grounding_index.ingest.coordinator import IngestionCoordinator

    return IngestionCoordinator(metadata, vectors, blobs, embedder, settings)


@pytest.fixture
def images(metadata, vectors, blobs, embedder):
    from grounding_index.ingest.images import ImageLibrary

    return ImageLibrary(metadata, vectors, blobs, embedder)


@pytest.fixture
def retrieval(metadata, vectors, embedder, settings):
    from grounding_index.retrieval.search import RetrievalService

    return RetrievalService(metadata, vectors, embedder, settings)


@pytest.fixture(scope="session")
def sample_text() -> str:
    return (
        "Spring graduation ceremony schedule. Students gather on the main lawn at nine. "
        "Families are seated by ten and diplomas are handed out after the keynote speech. "
        "The reception follows in the library courtyard with coffee and cake for everyone. "
        "Parking is available in lots B and C; shuttles run every fifteen minutes."
    )


def make_png(width: int = 32, height: int = 16, color: tuple[int, int, int] = (200, 30, 30)) -> bytes:
    from PIL import Image

    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_pdf(text: str) -> bytes:
    import fitz

    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), text)
    payload = doc.tobytes()
    doc.close()
    return payload
