"""Image library: single-shot upload with description and embedding."""

from __future__ import annotations

from grounding_index.core.errors import NotFoundError, UnsupportedFormatError
from grounding_index.core.logging import get_logger, log_context
from grounding_index.db.metadata import MetadataStore
from grounding_index.ingest.embeddings import EmbeddingProvider
from grounding_index.ingest.vision import FilenameDescriber, ImageDescriber, inspect_image
from grounding_index.models.entities import ImageResource
from grounding_index.retrieval.vector_index import IMAGES, VectorStore
from grounding_index.storage.blobs import BlobStore, blob_path_for
from grounding_index.utils.ids import new_id
from grounding_index.utils.time import ms_to_datetime, now_ms

logger = get_logger(__name__)


class ImageLibrary:
    """Describes, embeds and stores uploaded images.

    The description embedding is computed synchronously during upload, before
    anything is written, so a provider failure leaves no blob or record behind.
    """

    def __init__(
        self,
        metadata: MetadataStore,
        vectors: VectorStore,
        blobs: BlobStore,
        embedder: EmbeddingProvider,
        describer: ImageDescriber | None = None,
    ) -> None:
        self.metadata = metadata
        self.vectors = vectors
        self.blobs = blobs
        self.embedder = embedder
        self.describer = describer or FilenameDescriber()

    def upload(self, owner_id: str, file_name: str, data: bytes, content_type: str | None) -> ImageResource:
        mime_type = (content_type or "").split(";", 1)[0].strip().lower()
        if not mime_type.startswith("image/"):
            raise UnsupportedFormatError(f"Invalid file type {content_type!r}; only images are allowed")

        info = inspect_image(data)
        description = self.describer.describe(data, mime_type, file_name, info)
        embedding = self.embedder.embed(description)

        path = self.blobs.put(blob_path_for(owner_id, file_name, prefix="images", default_ext="png"), data, mime_type)
        uploaded_at = now_ms()
        image = ImageResource(
            id=new_id("img"),
            owner_id=owner_id,
            file_name=file_name,
            mime_type=mime_type,
            blob_path=path,
            public_url=self.blobs.public_url(path),
            description=description,
            width=info.width,
            height=info.height,
            size_bytes=len(data),
            uploaded_at=ms_to_datetime(uploaded_at),
            embedding=embedding,
        )
        try:
            with self.metadata.db.transaction() as conn:
                self.metadata.insert_image(conn, image, uploaded_at)
                self.vectors.insert(
                    owner_id=owner_id,
                    parent_id=image.id,
                    text=description,
                    vector=embedding,
                    collection=IMAGES,
                    conn=conn,
                )
        except Exception:
            self._remove_blob(path)
            raise
        self.vectors.update_size_metric()
        logger.info("Stored image %s (%sx%s)", image.id, info.width, info.height, extra=log_context(owner_id=owner_id))
        return image

    def list(self, owner_id: str) -> list[ImageResource]:
        return self.metadata.list_images(owner_id)

    def delete(self, owner_id: str, image_id: str) -> None:
        image = self.metadata.get_image(image_id, owner_id=owner_id)
        with self.metadata.db.transaction() as conn:
            self.vectors.delete_by_parent(image.id, conn=conn)
            self.metadata.delete_image(conn, image.id)
        self._remove_blob(image.blob_path)
        self.vectors.update_size_metric()
        logger.info("Deleted image %s", image.id, extra=log_context(owner_id=owner_id))

    def _remove_blob(self, path: str) -> None:
        try:
            self.blobs.delete(path)
        except NotFoundError:
            logger.warning("Blob %s already missing", path)


__all__ = ["ImageLibrary"]
