"""Ingestion coordinator: extraction -> chunking -> embedding -> storage."""

from __future__ import annotations

import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout

from grounding_index.core.config import Settings
from grounding_index.core.errors import MaterialBusyError, ProcessingTimeoutError
from grounding_index.core.logging import get_logger, log_context
from grounding_index.core.metrics import PROCESSING_ATTEMPTS, PROCESSING_DURATION
from grounding_index.db.metadata import MetadataStore
from grounding_index.ingest.chunker import ChunkerConfig, build_chunk_payloads, chunk_segments
from grounding_index.ingest.embeddings import EmbeddingProvider
from grounding_index.ingest.extractors import ExtractorRegistry
from grounding_index.models.entities import MaterialStatus, ProcessingResult, SourceMaterial
from grounding_index.retrieval.vector_index import CHUNKS, VectorStore
from grounding_index.storage.blobs import BlobStore
from grounding_index.utils.ids import new_id
from grounding_index.utils.text import excerpt
from grounding_index.utils.time import now_ms

logger = get_logger(__name__)

MAX_ERROR_CHARS = 1000


class IngestionCoordinator:
    """Owns the processing state machine of a source material.

    One call to :meth:`process` is one attempt. Attempts on the same material
    are serialized by a lease on the material row; existing chunks are purged
    before any new chunk is written, so reprocessing replaces rather than
    appends. Errors are recorded on the material and re-raised; nothing is
    retried here.
    """

    def __init__(
        self,
        metadata: MetadataStore,
        vectors: VectorStore,
        blobs: BlobStore,
        embedder: EmbeddingProvider,
        settings: Settings,
        extractors: ExtractorRegistry | None = None,
        chunker_config: ChunkerConfig | None = None,
    ) -> None:
        self.metadata = metadata
        self.vectors = vectors
        self.blobs = blobs
        self.embedder = embedder
        self.settings = settings
        self.extractors = extractors or ExtractorRegistry()
        self.chunker_config = chunker_config or settings.chunker_config()
    def process(self, material_id: str, owner_id: str | None = None) -> ProcessingResult:
        material = self.metadata.get_material(material_id, owner_id=owner_id)
        token = new_id("lease")
        if not self.metadata.acquire_lease(material_id, token, self.settings.lease_seconds):
            raise MaterialBusyError(f"Material {material_id} is already being processed")

        started = time.monotonic()
        deadline = started + self.settings.processing_timeout_seconds
        try:
            return self._run_attempt(material, token, started, deadline)
        finally:
            self.metadata.release_lease(material_id, token)
            PROCESSING_DURATION.observe(time.monotonic() - started)

    def _run_attempt(self, material: SourceMaterial, token: str, started: float, deadline: float) -> ProcessingResult:
        """Every status and chunk write is fenced by ``token``.

        An attempt whose lease was taken over (it outlived ``lease_seconds``)
        stops at its next write and records nothing, so it cannot clobber the
        attempt that now owns the material.
        """
        ids = {"material_id": material.id, "owner_id": material.owner_id}
        entered = False
        try:
            self._begin(material, token)
            entered = True
            logger.info("Processing %s", material.file_name, extra=log_context(**ids, status="PROCESSING"))
            written = self._index(material, token, deadline)
            self.metadata.set_status(
                material.id,
                MaterialStatus.INDEXED,
                processed_at=now_ms(),
                chunk_count=written,
                lease_token=token,
            )
        except MaterialBusyError:
            PROCESSING_ATTEMPTS.labels(status="LEASE_LOST").inc()
            logger.warning(
                "Lease lost while processing %s; attempt abandoned",
                material.file_name,
                extra=log_context(**ids, status="LEASE_LOST"),
            )
            raise
        except Exception as exc:
            # Before PROCESSING commits the purge is rolled back and the prior state stands.
            if entered:
                self._record_failure(material, token, exc)
            raise

        PROCESSING_ATTEMPTS.labels(status=MaterialStatus.INDEXED.value).inc()
        self.vectors.update_size_metric()
        duration = time.monotonic() - started
        logger.info(
            "Indexed %s chunks for %s in %.2fs",
            written,
            material.file_name,
            duration,
            extra=log_context(**ids, status="INDEXED"),
        )
        return ProcessingResult(
            material_id=material.id,
            status=MaterialStatus.INDEXED,
            chunk_count=written,
            duration_seconds=duration,
        )

    def _begin(self, material: SourceMaterial, token: str) -> None:
        """Purge old chunks and enter PROCESSING in one transaction."""
        with self.metadata.db.transaction() as conn:
            purged = self.vectors.delete_by_parent(material.id, conn=conn)
            self.metadata.set_status(
                material.id,
                MaterialStatus.PROCESSING,
                processed_at=now_ms(),
                lease_token=token,
                conn=conn,
            )
        if purged:
            logger.info("Purged %s stale chunks", purged, extra=log_context(material_id=material.id))

    def _record_failure(self, material: SourceMaterial, token: str, exc: Exception) -> None:
        ids = {"material_id": material.id, "owner_id": material.owner_id}
        try:
            self.metadata.set_status(
                material.id,
                MaterialStatus.FAILED,
                error=excerpt(str(exc), MAX_ERROR_CHARS),
                lease_token=token,
            )
        except MaterialBusyError:
            PROCESSING_ATTEMPTS.labels(status="LEASE_LOST").inc()
            logger.warning(
                "Lease lost before %s could be marked FAILED: %s",
                material.file_name,
                exc,
                extra=log_context(**ids, status="LEASE_LOST", error=type(exc).__name__),
            )
            return
        PROCESSING_ATTEMPTS.labels(status=MaterialStatus.FAILED.value).inc()
        logger.warning(
            "Processing failed for %s: %s",
            material.file_name,
            exc,
            extra=log_context(**ids, status="FAILED", error=type(exc).__name__),
        )

    def _index(self, material: SourceMaterial, token: str, deadline: float) -> int:
        data = self.blobs.get(material.blob_path)
        try:
            text = self.extractors.extract(data, material.mime_type)
        finally:
            del data
        _check_deadline(deadline, material.id)

        payloads = build_chunk_payloads(material.id, chunk_segments(text, self.chunker_config))
        del text
        if not payloads:
            logger.warning("Material %s produced no chunks above the minimum length", material.id)
            return 0

        written = 0
        executor = ThreadPoolExecutor(max_workers=self.settings.embed_workers, thread_name_prefix="gidx-embed")
        try:
            futures: list[Future[list[float]]] = [
                executor.submit(self.embedder.embed, payload["text"]) for payload in payloads
            ]
            for payload, future in zip(payloads, futures):
                vector = _await(future, deadline, material.id)
                with self.metadata.db.transaction() as conn:
                    if not self.metadata.renew_lease(conn, material.id, token, self.settings.lease_seconds):
                        raise MaterialBusyError(f"Lease on material {material.id} was taken over")
                    self.vectors.insert(
                        owner_id=material.owner_id,
                        parent_id=material.id,
                        text=payload["text"],
                        vector=vector,
                        collection=CHUNKS,
                        meta={
                            "ordinal": payload["ordinal"],
                            "start_char": payload["start_char"],
                            "end_char": payload["end_char"],
                        },
                        conn=conn,
                    )
                written += 1
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return written


def _await(future: Future[list[float]], deadline: float, material_id: str) -> list[float]:
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise ProcessingTimeoutError(f"Processing of {material_id} exceeded its time budget")
    try:
        return future.result(timeout=remaining)
    except FutureTimeout as exc:
        raise ProcessingTimeoutError(f"Processing of {material_id} exceeded its time budget") from exc


def _check_deadline(deadline: float, material_id: str) -> None:
    if time.monotonic() >= deadline:
        raise ProcessingTimeoutError(f"Processing of {material_id} exceeded its time budget")


__all__ = ["IngestionCoordinator"]
