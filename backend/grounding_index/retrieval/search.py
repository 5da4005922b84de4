"""Retrieval service: top-N similarity lookups for images and document chunks."""

from __future__ import annotations

import time
from typing import Sequence

from grounding_index.core.config import Settings
from grounding_index.core.errors import InvalidQueryError
from grounding_index.core.logging import get_logger, log_context
from grounding_index.core.metrics import RETRIEVAL_LATENCY
from grounding_index.db.metadata import MetadataStore
from grounding_index.ingest.embeddings import EmbeddingProvider
from grounding_index.models.entities import ChunkSummary, ImageSummary
from grounding_index.retrieval.vector_index import CHUNKS, IMAGES, VectorStore

logger = get_logger(__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"


class RetrievalService:
    """Embeds query text and runs owner-scoped nearest-neighbor search.

    Results come back in vector-store order; rows are mapped to display
    metadata without re-ranking. Provider errors propagate unchanged, so an
    empty list always means "valid query, no matches".
    """

    def __init__(
        self,
        metadata: MetadataStore,
        vectors: VectorStore,
        embedder: EmbeddingProvider,
        settings: Settings,
    ) -> None:
        self.metadata = metadata
        self.vectors = vectors
        self.embedder = embedder
        self.settings = settings

    def recommend(self, owner_id: str, query_text: str, top_n: int | None = None) -> list[ImageSummary]:
        """Images whose descriptions are closest to ``query_text``."""
        started = time.perf_counter()
        limit = self._resolve_top_n(top_n)
        query_vector = self._embed_query(query_text)
        neighbors = self.vectors.nearest_neighbors(owner_id, query_vector, limit, collection=IMAGES)
        images = self.metadata.get_images([neighbor.row.parent_id for neighbor in neighbors])
        results: list[ImageSummary] = []
        for neighbor in neighbors:
            image = images.get(neighbor.row.parent_id)
            if image is None:
                logger.warning("Vector row %s has no image record", neighbor.row.id)
                continue
            results.append(
                ImageSummary(
                    id=image.id,
                    file_name=image.file_name,
                    public_url=image.public_url,
                    description=image.description,
                    width=image.width,
                    height=image.height,
                    distance=neighbor.distance,
                )
            )
        RETRIEVAL_LATENCY.labels(kind="images").observe(time.perf_counter() - started)
        logger.info("Found %s image recommendations", len(results), extra=log_context(owner_id=owner_id))
        return results

    def search_chunks(
        self,
        owner_id: str,
        query_text: str,
        top_n: int | None = None,
        material_ids: Sequence[str] | None = None,
    ) -> list[ChunkSummary]:
        """Closest passages from the owner's ``INDEXED`` materials.

        Materials in any other status are excluded, so a failed or in-flight
        attempt never contributes partial chunks.
        """
        started = time.perf_counter()
        limit = self._resolve_top_n(top_n)
        query_vector = self._embed_query(query_text)
        allowed = self.metadata.indexed_material_ids(owner_id, material_ids)
        neighbors = self.vectors.nearest_neighbors(
            owner_id, query_vector, limit, collection=CHUNKS, parent_ids=allowed
        )
        names = self.metadata.material_names(neighbor.row.parent_id for neighbor in neighbors)
        results = [
            ChunkSummary(
                chunk_id=neighbor.row.id,
                material_id=neighbor.row.parent_id,
                file_name=names.get(neighbor.row.parent_id, ""),
                text=neighbor.row.text,
                distance=neighbor.distance,
                meta=neighbor.row.meta,
            )
            for neighbor in neighbors
        ]
        RETRIEVAL_LATENCY.labels(kind="chunks").observe(time.perf_counter() - started)
        return results

    def grounding_context(
        self,
        owner_id: str,
        query_text: str,
        material_ids: Sequence[str] | None = None,
        top_n: int | None = None,
    ) -> str:
        """Retrieved passages joined into one block for prompt assembly."""
        chunks = self.search_chunks(owner_id, query_text, top_n=top_n, material_ids=material_ids)
        return format_context(chunks)

    def _embed_query(self, query_text: str) -> list[float]:
        if query_text is None or not query_text.strip():
            raise InvalidQueryError("Text content is required for recommendations.")
        return self.embedder.embed(query_text)

    def _resolve_top_n(self, top_n: int | None) -> int:
        if top_n is None:
            return self.settings.default_top_n
        if top_n > self.settings.max_top_n:
            logger.debug("Clamping top_n %s to %s", top_n, self.settings.max_top_n)
            return self.settings.max_top_n
        return top_n


def format_context(chunks: Sequence[ChunkSummary]) -> str:
    return CONTEXT_SEPARATOR.join(f"[{chunk.file_name}]\n{chunk.text.strip()}" for chunk in chunks)


__all__ = ["RetrievalService", "CONTEXT_SEPARATOR", "format_context"]
