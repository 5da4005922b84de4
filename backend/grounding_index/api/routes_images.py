"""Image library routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile

from grounding_index.api.dependencies import get_image_library, get_owner_id, get_retrieval_service
from grounding_index.ingest.images import ImageLibrary
from grounding_index.models.dto import (
    DeleteResponse,
    ImageRecommendation,
    ImageResponse,
    RecommendationRequest,
    RecommendationResponse,
)
from grounding_index.retrieval.search import RetrievalService

router = APIRouter()


@router.post("", response_model=ImageResponse, status_code=201, summary="Upload and describe an image")
async def upload_image(
    file: UploadFile = File(...),
    owner_id: str = Depends(get_owner_id),
    library: ImageLibrary = Depends(get_image_library),
) -> ImageResponse:
    data = await file.read()
    image = library.upload(owner_id, file.filename or "image", data, file.content_type)
    return ImageResponse.from_entity(image)


@router.get("", response_model=list[ImageResponse], summary="List images")
async def list_images(
    owner_id: str = Depends(get_owner_id),
    library: ImageLibrary = Depends(get_image_library),
) -> list[ImageResponse]:
    return [ImageResponse.from_entity(image) for image in library.list(owner_id)]


@router.post("/recommendations", response_model=RecommendationResponse, summary="Recommend images for text")
async def recommend_images(
    request: RecommendationRequest,
    owner_id: str = Depends(get_owner_id),
    service: RetrievalService = Depends(get_retrieval_service),
) -> RecommendationResponse:
    summaries = service.recommend(owner_id, request.text_content, top_n=request.top_n)
    return RecommendationResponse(recommendations=[ImageRecommendation.from_summary(item) for item in summaries])


@router.delete("/{image_id}", response_model=DeleteResponse, summary="Delete an image")
async def delete_image(
    image_id: str,
    owner_id: str = Depends(get_owner_id),
    library: ImageLibrary = Depends(get_image_library),
) -> DeleteResponse:
    library.delete(owner_id, image_id)
    return DeleteResponse(id=image_id)


__all__ = ["router"]
