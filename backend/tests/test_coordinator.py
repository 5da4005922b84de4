"""Tests for the material processing state machine."""

import sqlite3
import time

import pytest

from conftest import make_pdf
from grounding_index.core.errors import (
    ExtractionError,
    InvalidTransitionError,
    MaterialBusyError,
    NotFoundError,
    ProcessingTimeoutError,
    TransientProviderError,
    UnsupportedFormatError,
)
from grounding_index.ingest.coordinator import IngestionCoordinator
from grounding_index.ingest.embeddings import HashedEmbeddingProvider
from grounding_index.ingest.extractors import PDF_MIME, ExtractorRegistry, decoder_from_callable
from grounding_index.models.entities import MaterialStatus


class FlakyEmbedder(HashedEmbeddingProvider):
    """Fails on the n-th call."""

    def __init__(self, dim: int, fail_on: int) -> None:
        super().__init__(dim)
        self.calls = 0
        self.fail_on = fail_on

    def _embed(self, text: str) -> list[float]:
        self.calls += 1
        if self.calls == self.fail_on:
            raise TransientProviderError("rate limited", provider_name="flaky")
        return super()._embed(text)


class SlowEmbedder(HashedEmbeddingProvider):
    def _embed(self, text: str) -> list[float]:
        time.sleep(0.5)
        return super()._embed(text)


def test_process_indexes_material(materials, coordinator, vectors, sample_text: str) -> None:
    material = materials.upload("owner", "guide.txt", sample_text.encode(), "text/plain")
    assert material.status is MaterialStatus.UPLOADED

    result = coordinator.process(material.id)

    assert result.status is MaterialStatus.INDEXED
    assert result.chunk_count > 1
    stored = materials.get("owner", material.id)
    assert stored.status is MaterialStatus.INDEXED
    assert stored.chunk_count == result.chunk_count
    assert stored.processed_at is not None
    assert stored.last_error is None
    chunks = materials.chunks("owner", material.id)
    assert [chunk.ordinal for chunk in chunks] == list(range(result.chunk_count))
    assert all(chunk.material_id == material.id for chunk in chunks)
    assert vectors.count(owner_id="owner") == result.chunk_count


def test_reprocess_replaces_chunks(materials, coordinator, sample_text: str) -> None:
    material = materials.upload("owner", "guide.txt", sample_text.encode(), "text/plain")
    first = coordinator.process(material.id)
    before = [(c.text, c.start_char) for c in materials.chunks("owner", material.id)]

    second = coordinator.process(material.id)

    after = [(c.text, c.start_char) for c in materials.chunks("owner", material.id)]
    assert second.chunk_count == first.chunk_count
    assert after == before


def test_owner_mismatch_is_not_found(materials, coordinator, sample_text: str) -> None:
    material = materials.upload("owner", "guide.txt", sample_text.encode(), "text/plain")
    with pytest.raises(NotFoundError):
        coordinator.process(material.id, owner_id="someone-else")
    assert materials.get("owner", material.id).status is MaterialStatus.UPLOADED


def test_corrupt_pdf_fails_then_recovers(materials, coordinator, blobs, vectors) -> None:
    material = materials.upload("owner", "broken.pdf", b"%PDF-1.4 garbage", PDF_MIME)

    with pytest.raises(ExtractionError):
        coordinator.process(material.id)

    failed = materials.get("owner", material.id)
    assert failed.status is MaterialStatus.FAILED
    assert failed.last_error
    assert vectors.rows_for_parent(material.id) == []

    blobs.delete(material.blob_path)
    blobs.put(material.blob_path, make_pdf("Campus tours leave from the visitor center"), PDF_MIME)
    result = coordinator.process(material.id)
    assert result.status is MaterialStatus.INDEXED
    assert materials.get("owner", material.id).last_error is None


def test_embedding_failure_marks_failed_and_leaves_no_chunks(
    materials, metadata, vectors, blobs, settings, sample_text: str
) -> None:
    embedder = FlakyEmbedder(settings.embedding_dim, fail_on=2)
    coordinator = IngestionCoordinator(metadata, vectors, blobs, embedder, settings.model_copy(update={"embed_workers": 1}))
    material = materials.upload("owner", "guide.txt", sample_text.encode(), "text/plain")

    with pytest.raises(TransientProviderError) as info:
        coordinator.process(material.id)

    assert info.value.retryable is True
    failed = materials.get("owner", material.id)
    assert failed.status is MaterialStatus.FAILED
    assert "rate limited" in failed.last_error

    # A later successful attempt purges whatever the failed one wrote.
    healthy = IngestionCoordinator(metadata, vectors, blobs, HashedEmbeddingProvider(settings.embedding_dim), settings)
    result = healthy.process(material.id)
    assert len(vectors.rows_for_parent(material.id)) == result.chunk_count


def test_held_lease_rejects_second_attempt(materials, metadata, coordinator, sample_text: str) -> None:
    material = materials.upload("owner", "guide.txt", sample_text.encode(), "text/plain")
    assert metadata.acquire_lease(material.id, "other-worker", ttl_seconds=60)

    with pytest.raises(MaterialBusyError):
        coordinator.process(material.id)

    assert materials.get("owner", material.id).status is MaterialStatus.UPLOADED
    assert metadata.lease_holder(material.id) == "other-worker"


def test_expired_lease_can_be_taken_over(materials, metadata, coordinator, sample_text: str) -> None:
    material = materials.upload("owner", "guide.txt", sample_text.encode(), "text/plain")
    assert metadata.acquire_lease(material.id, "crashed-worker", ttl_seconds=0)

    result = coordinator.process(material.id)

    assert result.status is MaterialStatus.INDEXED
    assert metadata.lease_holder(material.id) is None


def test_lease_released_after_failure(materials, metadata, coordinator) -> None:
    material = materials.upload("owner", "notes.bin", b"\x00\x01\x02", "application/octet-stream")
    with pytest.raises(UnsupportedFormatError):
        coordinator.process(material.id)
    assert metadata.lease_holder(material.id) is None
    assert materials.get("owner", material.id).status is MaterialStatus.FAILED


def test_time_budget_exceeded(materials, metadata, vectors, blobs, settings, sample_text: str) -> None:
    tight = settings.model_copy(update={"processing_timeout_seconds": 0.05})
    coordinator = IngestionCoordinator(metadata, vectors, blobs, SlowEmbedder(settings.embedding_dim), tight)
    material = materials.upload("owner", "guide.txt", sample_text.encode(), "text/plain")

    with pytest.raises(ProcessingTimeoutError):
        coordinator.process(material.id)

    assert materials.get("owner", material.id).status is MaterialStatus.FAILED


def test_no_surviving_chunks_indexes_zero(materials, coordinator) -> None:
    material = materials.upload("owner", "short.txt", b"tiny", "text/plain")
    result = coordinator.process(material.id)
    assert result.status is MaterialStatus.INDEXED
    assert result.chunk_count == 0


def test_status_transitions_are_enforced(materials, metadata) -> None:
    material = materials.upload("owner", "guide.txt", b"hello world, hello again", "text/plain")
    with pytest.raises(InvalidTransitionError):
        metadata.set_status(material.id, MaterialStatus.INDEXED)
    with pytest.raises(InvalidTransitionError):
        metadata.set_status(material.id, MaterialStatus.FAILED, error="nope")
    metadata.set_status(material.id, MaterialStatus.PROCESSING)
    assert metadata.set_status(material.id, MaterialStatus.INDEXED, chunk_count=1).status is MaterialStatus.INDEXED
    with pytest.raises(NotFoundError):
        metadata.set_status("mat_missing", MaterialStatus.PROCESSING)


def _stalled_coordinator(metadata, vectors, blobs, settings, on_extract) -> IngestionCoordinator:
    """A coordinator whose text decoder calls ``on_extract`` before returning."""

    def decode(data: bytes) -> str:
        on_extract()
        return data.decode("utf-8")

    registry = ExtractorRegistry({"text/*": decoder_from_callable("stalled", decode)})
    return IngestionCoordinator(
        metadata, vectors, blobs, HashedEmbeddingProvider(settings.embedding_dim), settings, extractors=registry
    )


def test_attempt_that_outlives_its_lease_records_nothing(
    materials, metadata, vectors, blobs, settings, coordinator, sample_text: str
) -> None:
    material = materials.upload("owner", "guide.txt", sample_text.encode(), "text/plain")
    short_lease = settings.model_copy(update={"processing_timeout_seconds": 0.05, "lease_grace_seconds": 0})
    takeover = {}

    def expire_and_take_over() -> None:
        time.sleep(0.1)
        takeover["result"] = coordinator.process(material.id)

    stale = _stalled_coordinator(metadata, vectors, blobs, short_lease, expire_and_take_over)

    with pytest.raises(ProcessingTimeoutError):
        stale.process(material.id)

    stored = materials.get("owner", material.id)
    assert stored.status is MaterialStatus.INDEXED
    assert stored.last_error is None
    assert stored.chunk_count == takeover["result"].chunk_count
    assert len(vectors.rows_for_parent(material.id)) == takeover["result"].chunk_count
    assert metadata.lease_holder(material.id) is None


def test_chunk_writes_stop_once_lease_is_taken(
    materials, metadata, vectors, blobs, db, settings, sample_text: str
) -> None:
    material = materials.upload("owner", "guide.txt", sample_text.encode(), "text/plain")

    def steal_lease() -> None:
        with db.transaction() as conn:
            conn.execute("UPDATE source_materials SET lease_token = 'other-worker' WHERE id = ?", [material.id])

    stale = _stalled_coordinator(metadata, vectors, blobs, settings, steal_lease)

    with pytest.raises(MaterialBusyError):
        stale.process(material.id)

    assert vectors.rows_for_parent(material.id) == []
    assert materials.get("owner", material.id).status is MaterialStatus.PROCESSING
    assert metadata.lease_holder(material.id) == "other-worker"


def test_status_write_requires_current_lease(materials, metadata) -> None:
    material = materials.upload("owner", "guide.txt", b"hello world, hello again", "text/plain")
    assert metadata.acquire_lease(material.id, "current", ttl_seconds=60)
    metadata.set_status(material.id, MaterialStatus.PROCESSING, lease_token="current")

    with pytest.raises(MaterialBusyError):
        metadata.set_status(material.id, MaterialStatus.FAILED, error="late", lease_token="stale")

    stored = materials.get("owner", material.id)
    assert stored.status is MaterialStatus.PROCESSING
    assert stored.last_error is None


def test_storage_error_before_processing_keeps_prior_state(
    materials, metadata, vectors, coordinator, monkeypatch: pytest.MonkeyPatch, sample_text: str
) -> None:
    material = materials.upload("owner", "guide.txt", sample_text.encode(), "text/plain")
    indexed = coordinator.process(material.id)

    def locked(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(vectors, "delete_by_parent", locked)
    with pytest.raises(sqlite3.OperationalError):
        coordinator.process(material.id)

    stored = materials.get("owner", material.id)
    assert stored.status is MaterialStatus.INDEXED
    assert stored.chunk_count == indexed.chunk_count
    assert len(vectors.rows_for_parent(material.id)) == indexed.chunk_count
    assert metadata.lease_holder(material.id) is None


def test_storage_error_while_indexing_marks_failed(
    materials, metadata, vectors, coordinator, monkeypatch: pytest.MonkeyPatch, sample_text: str
) -> None:
    material = materials.upload("owner", "guide.txt", sample_text.encode(), "text/plain")

    def disk_full(*args, **kwargs):
        raise sqlite3.OperationalError("database or disk is full")

    monkeypatch.setattr(vectors, "insert", disk_full)
    with pytest.raises(sqlite3.OperationalError):
        coordinator.process(material.id)

    failed = materials.get("owner", material.id)
    assert failed.status is MaterialStatus.FAILED
    assert "disk is full" in failed.last_error
    assert metadata.lease_holder(material.id) is None
