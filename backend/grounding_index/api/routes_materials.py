"""Source material routes: upload, process, list, delete, search."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile

from grounding_index.api.dependencies import (
    get_coordinator,
    get_material_library,
    get_owner_id,
    get_retrieval_service,
)
from grounding_index.ingest.coordinator import IngestionCoordinator
from grounding_index.ingest.materials import MaterialLibrary
from grounding_index.models.dto import (
    ChunkResponse,
    ChunkResult,
    ChunkSearchRequest,
    ChunkSearchResponse,
    DeleteResponse,
    MaterialResponse,
    ProcessResponse,
    UploadMaterialResponse,
)
from grounding_index.models.entities import MaterialStatus
from grounding_index.retrieval.search import RetrievalService, format_context

router = APIRouter()


@router.post("", response_model=UploadMaterialResponse, status_code=201, summary="Upload a source material")
async def upload_material(
    file: UploadFile = File(...),
    description: str | None = Form(default=None),
    process: bool = Form(default=False),
    owner_id: str = Depends(get_owner_id),
    library: MaterialLibrary = Depends(get_material_library),
    coordinator: IngestionCoordinator = Depends(get_coordinator),
) -> UploadMaterialResponse:
    data = await file.read()
    material = library.upload(
        owner_id=owner_id,
        file_name=file.filename or "upload",
        data=data,
        content_type=file.content_type,
        description=description,
    )
    processing = None
    if process:
        result = coordinator.process(material.id, owner_id=owner_id)
        processing = ProcessResponse.from_result(result)
        material = library.get(owner_id, material.id)
    return UploadMaterialResponse(material=MaterialResponse.from_entity(material), processing=processing)


@router.get("", response_model=list[MaterialResponse], summary="List source materials")
async def list_materials(
    status: MaterialStatus | None = None,
    owner_id: str = Depends(get_owner_id),
    library: MaterialLibrary = Depends(get_material_library),
) -> list[MaterialResponse]:
    return [MaterialResponse.from_entity(material) for material in library.list(owner_id, status=status)]


@router.post("/search", response_model=ChunkSearchResponse, summary="Find grounding passages")
async def search_materials(
    request: ChunkSearchRequest,
    owner_id: str = Depends(get_owner_id),
    service: RetrievalService = Depends(get_retrieval_service),
) -> ChunkSearchResponse:
    chunks = service.search_chunks(owner_id, request.query, top_n=request.top_n, material_ids=request.material_ids)
    return ChunkSearchResponse(
        results=[ChunkResult.from_summary(chunk) for chunk in chunks],
        context=format_context(chunks),
    )


@router.get("/{material_id}", response_model=MaterialResponse, summary="Fetch one source material")
async def get_material(
    material_id: str,
    owner_id: str = Depends(get_owner_id),
    library: MaterialLibrary = Depends(get_material_library),
) -> MaterialResponse:
    return MaterialResponse.from_entity(library.get(owner_id, material_id))


@router.get("/{material_id}/chunks", response_model=list[ChunkResponse], summary="List stored chunks")
async def list_chunks(
    material_id: str,
    owner_id: str = Depends(get_owner_id),
    library: MaterialLibrary = Depends(get_material_library),
) -> list[ChunkResponse]:
    return [ChunkResponse.from_entity(chunk) for chunk in library.chunks(owner_id, material_id)]


@router.post("/{material_id}/process", response_model=ProcessResponse, summary="(Re)index a source material")
def process_material(
    material_id: str,
    owner_id: str = Depends(get_owner_id),
    coordinator: IngestionCoordinator = Depends(get_coordinator),
) -> ProcessResponse:
    return ProcessResponse.from_result(coordinator.process(material_id, owner_id=owner_id))


@router.delete("/{material_id}", response_model=DeleteResponse, summary="Delete a source material")
async def delete_material(
    material_id: str,
    owner_id: str = Depends(get_owner_id),
    library: MaterialLibrary = Depends(get_material_library),
) -> DeleteResponse:
    library.delete(owner_id, material_id)
    return DeleteResponse(id=material_id)


__all__ = ["router"]
