"""Internal dataclasses representing persisted entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class MaterialStatus(str, Enum):
    UPLOADED = "UPLOADED"
    PROCESSING = "PROCESSING"
    INDEXED = "INDEXED"
    FAILED = "FAILED"


# Allowed status changes; PROCESSING -> PROCESSING covers a reprocess that
# replaces an abandoned attempt whose lease has expired.
TRANSITIONS: dict[MaterialStatus, frozenset[MaterialStatus]] = {
    MaterialStatus.UPLOADED: frozenset({MaterialStatus.PROCESSING}),
    MaterialStatus.PROCESSING: frozenset(
        {MaterialStatus.PROCESSING, MaterialStatus.INDEXED, MaterialStatus.FAILED}
    ),
    MaterialStatus.INDEXED: frozenset({MaterialStatus.PROCESSING}),
    MaterialStatus.FAILED: frozenset({MaterialStatus.PROCESSING}),
}


@dataclass(slots=True)
class SourceMaterial:
    id: str
    owner_id: str
    file_name: str
    mime_type: str | None
    blob_path: str
    description: str | None
    size_bytes: int
    status: MaterialStatus
    chunk_count: int
    last_error: str | None
    uploaded_at: datetime
    processed_at: datetime | None


@dataclass(slots=True)
class DocumentChunk:
    id: str
    material_id: str
    text: str
    embedding: list[float]
    created_at: datetime
    ordinal: int | None = None
    start_char: int | None = None
    end_char: int | None = None


@dataclass(slots=True)
class ImageResource:
    id: str
    owner_id: str
    file_name: str
    mime_type: str | None
    blob_path: str
    public_url: str | None
    description: str
    width: int | None
    height: int | None
    size_bytes: int
    uploaded_at: datetime
    embedding: list[float] | None = None


@dataclass(slots=True)
class ImageSummary:
    id: str
    file_name: str
    public_url: str | None
    description: str
    width: int | None
    height: int | None
    distance: float


@dataclass(slots=True)
class ChunkSummary:
    chunk_id: str
    material_id: str
    file_name: str
    text: str
    distance: float
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ProcessingResult:
    material_id: str
    status: MaterialStatus
    chunk_count: int
    duration_seconds: float


__all__ = [
    "MaterialStatus",
    "TRANSITIONS",
    "SourceMaterial",
    "DocumentChunk",
    "ImageResource",
    "ImageSummary",
    "ChunkSummary",
    "ProcessingResult",
]
