"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from grounding_index.models.entities import (
    ChunkSummary,
    DocumentChunk,
    ImageResource,
    ImageSummary,
    MaterialStatus,
    ProcessingResult,
    SourceMaterial,
)


class MaterialResponse(BaseModel):
    id: str
    file_name: str
    mime_type: str | None
    description: str | None
    size_bytes: int
    status: MaterialStatus
    chunk_count: int
    last_error: str | None
    uploaded_at: datetime
    processed_at: datetime | None

    @classmethod
    def from_entity(cls, material: SourceMaterial) -> "MaterialResponse":
        return cls(
            id=material.id,
            file_name=material.file_name,
            mime_type=material.mime_type,
            description=material.description,
            size_bytes=material.size_bytes,
            status=material.status,
            chunk_count=material.chunk_count,
            last_error=material.last_error,
            uploaded_at=material.uploaded_at,
            processed_at=material.processed_at,
        )


class ProcessResponse(BaseModel):
    material_id: str
    status: MaterialStatus
    chunk_count: int
    duration_seconds: float

    @classmethod
    def from_result(cls, result: ProcessingResult) -> "ProcessResponse":
        return cls(
            material_id=result.material_id,
            status=result.status,
            chunk_count=result.chunk_count,
            duration_seconds=result.duration_seconds,
        )


class ChunkResponse(BaseModel):
    id: str
    material_id: str
    ordinal: int | None
    text: str
    start_char: int | None
    end_char: int | None
    created_at: datetime

    @classmethod
    def from_entity(cls, chunk: DocumentChunk) -> "ChunkResponse":
        return cls(
            id=chunk.id,
            material_id=chunk.material_id,
            ordinal=chunk.ordinal,
            text=chunk.text,
            start_char=chunk.start_char,
            end_char=chunk.end_char,
            created_at=chunk.created_at,
        )


class UploadMaterialResponse(BaseModel):
    material: MaterialResponse
    processing: ProcessResponse | None = None


class ImageResponse(BaseModel):
    id: str
    file_name: str
    mime_type: str | None
    public_url: str | None
    description: str
    width: int | None
    height: int | None
    size_bytes: int
    uploaded_at: datetime

    @classmethod
    def from_entity(cls, image: ImageResource) -> "ImageResponse":
        return cls(
            id=image.id,
            file_name=image.file_name,
            mime_type=image.mime_type,
            public_url=image.public_url,
            description=image.description,
            width=image.width,
            height=image.height,
            size_bytes=image.size_bytes,
            uploaded_at=image.uploaded_at,
        )


class RecommendationRequest(BaseModel):
    text_content: str = Field(description="Text to find matching images for")
    top_n: int | None = Field(default=None, ge=1, le=20)


class ImageRecommendation(BaseModel):
    id: str
    file_name: str
    public_url: str | None
    description: str
    width: int | None
    height: int | None
    distance: float

    @classmethod
    def from_summary(cls, summary: ImageSummary) -> "ImageRecommendation":
        return cls(
            id=summary.id,
            file_name=summary.file_name,
            public_url=summary.public_url,
            description=summary.description,
            width=summary.width,
            height=summary.height,
            distance=summary.distance,
        )


class RecommendationResponse(BaseModel):
    recommendations: list[ImageRecommendation]


class ChunkSearchRequest(BaseModel):
    query: str
    top_n: int | None = Field(default=None, ge=1, le=20)
    material_ids: list[str] | None = None


class ChunkResult(BaseModel):
    chunk_id: str
    material_id: str
    file_name: str
    text: str
    distance: float
    meta: dict[str, Any]

    @classmethod
    def from_summary(cls, summary: ChunkSummary) -> "ChunkResult":
        return cls(
            chunk_id=summary.chunk_id,
            material_id=summary.material_id,
            file_name=summary.file_name,
            text=summary.text,
            distance=summary.distance,
            meta=summary.meta,
        )


class ChunkSearchResponse(BaseModel):
    results: list[ChunkResult]
    context: str


class DeleteResponse(BaseModel):
    status: Literal["ok"] = "ok"
    id: str


class ErrorResponse(BaseModel):
    detail: str
    error: str
    retryable: bool = False


__all__ = [
    "MaterialResponse",
    "ProcessResponse",
    "ChunkResponse",
    "UploadMaterialResponse",
    "ImageResponse",
    "RecommendationRequest",
    "ImageRecommendation",
    "RecommendationResponse",
    "ChunkSearchRequest",
    "ChunkResult",
    "ChunkSearchResponse",
    "DeleteResponse",
    "ErrorResponse",
]
