"""Upload, listing and deletion of source materials."""

from __future__ import annotations

from grounding_index.core.errors import InvalidQueryError, MaterialBusyError, NotFoundError
from grounding_index.core.logging import get_logger, log_context
from grounding_index.db.metadata import MetadataStore
from grounding_index.models.entities import DocumentChunk, MaterialStatus, SourceMaterial
from grounding_index.retrieval.vector_index import VectorStore
from grounding_index.storage.blobs import BlobStore, blob_path_for
from grounding_index.utils.ids import new_id
from grounding_index.utils.time import ms_to_datetime

logger = get_logger(__name__)


class MaterialLibrary:
    def __init__(
        self,
        metadata: MetadataStore,
        vectors: VectorStore,
        blobs: BlobStore,
        lease_seconds: float = 60.0,
    ) -> None:
        self.metadata = metadata
        self.vectors = vectors
        self.blobs = blobs
        self.lease_seconds = lease_seconds

    def upload(
        self,
        owner_id: str,
        file_name: str,
        data: bytes,
        content_type: str | None,
        description: str | None = None,
    ) -> SourceMaterial:
        """Store the blob and create an ``UPLOADED`` record; nothing is indexed yet."""
        if not file_name:
            raise InvalidQueryError("A file name is required")
        path = self.blobs.put(blob_path_for(owner_id, file_name), data, content_type)
        try:
            material = self.metadata.create_material(
                owner_id=owner_id,
                file_name=file_name,
                mime_type=content_type,
                blob_path=path,
                size_bytes=len(data),
                description=description or None,
            )
        except Exception:
            self._remove_blob(path)
            raise
        logger.info("Uploaded material %s (%s bytes)", material.id, material.size_bytes, extra=log_context(owner_id=owner_id))
        return material

    def get(self, owner_id: str, material_id: str) -> SourceMaterial:
        return self.metadata.get_material(material_id, owner_id=owner_id)

    def list(self, owner_id: str, status: MaterialStatus | None = None) -> list[SourceMaterial]:
        return self.metadata.list_materials(owner_id, status=status)

    def chunks(self, owner_id: str, material_id: str) -> list[DocumentChunk]:
        """Stored chunks in write order; only authoritative when the material is INDEXED."""
        material = self.metadata.get_material(material_id, owner_id=owner_id)
        return [
            DocumentChunk(
                id=row.id,
                material_id=material.id,
                text=row.text,
                embedding=row.vector,
                created_at=ms_to_datetime(row.created_at),
                ordinal=row.meta.get("ordinal"),
                start_char=row.meta.get("start_char"),
                end_char=row.meta.get("end_char"),
            )
            for row in self.vectors.rows_for_parent(material.id)
        ]

    def delete(self, owner_id: str, material_id: str) -> None:
        """Drop chunks and record in one transaction, then remove the blob."""
        material = self.metadata.get_material(material_id, owner_id=owner_id)
        token = new_id("lease")
        if not self.metadata.acquire_lease(material.id, token, self.lease_seconds):
            raise MaterialBusyError(f"Material {material.id} is being processed; retry the delete later")
        try:
            with self.metadata.db.transaction() as conn:
                removed = self.vectors.delete_by_parent(material.id, conn=conn)
                self.metadata.delete_material(material.id, conn=conn)
        finally:
            # No-op once the row is gone.
            self.metadata.release_lease(material.id, token)
        self.vectors.update_size_metric()
        logger.info("Deleted material %s and %s chunks", material.id, removed, extra=log_context(owner_id=owner_id))
        self._remove_blob(material.blob_path)

    def _remove_blob(self, path: str) -> None:
        try:
            self.blobs.delete(path)
        except NotFoundError:
            logger.warning("Blob %s already missing", path)


__all__ = ["MaterialLibrary"]
