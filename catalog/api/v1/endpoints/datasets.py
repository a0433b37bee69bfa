"""
Dataset catalog endpoints: upload, browse, review and versioning.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, UploadFile, status

from catalog.core.dependencies import (
    get_dataset_service,
    get_review_service,
    get_versioning_service,
)
from catalog.core.logging import logger
from catalog.models.dataset import Dataset, DatasetStatus
from catalog.schemas.dataset import (
    ApiResponse,
    DatasetFilters,
    DatasetListResponse,
    DatasetQuery,
    DatasetResponse,
    MetadataSubmission,
    UploadResult,
)
from catalog.services.dataset_service import DatasetService
from catalog.services.review import MetadataReviewService
from catalog.services.versioning import VersioningService

router = APIRouter()


def _dataset_payload(dataset: Dataset) -> Dict[str, Any]:
    return DatasetResponse.model_validate(dataset.to_dict()).model_dump(mode="json")


@router.post(
    "/upload",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a dataset",
    description="Upload a CSV or Excel file; metadata generation starts in the background",
)
async def upload_dataset(
    file: UploadFile = File(..., description="CSV, XLSX or XLS file"),
    service: DatasetService = Depends(get_dataset_service),
):
    logger.info("Dataset upload received", filename=file.filename, content_type=file.content_type)
    dataset, preview = await service.create_dataset(file)
    result = UploadResult(dataset=DatasetResponse.model_validate(dataset.to_dict()), preview=preview)
    return ApiResponse(
        data=result.model_dump(mode="json"),
        message="File uploaded successfully",
    )


@router.get(
    "/",
    response_model=ApiResponse,
    summary="List datasets",
    description="Retrieve a paginated list of datasets with optional search and filtering",
)
async def list_datasets(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
    search: Optional[str] = Query(None, description="Search titles, descriptions, tags, file name and type"),
    categories: Optional[List[str]] = Query(None, description="Categories, repeated or comma separated"),
    status: Optional[DatasetStatus] = Query(None, description="Filter by status"),
    service: DatasetService = Depends(get_dataset_service),
):
    query = DatasetQuery(page=page, limit=limit, search=search, categories=categories, status=status)
    result = await service.list_datasets(query)
    response = DatasetListResponse(
        datasets=[DatasetResponse.model_validate(d.to_dict()) for d in result["datasets"]],
        pagination=result["pagination"],
    )
    return ApiResponse(data=response.model_dump(mode="json"))


@router.get(
    "/filters",
    response_model=ApiResponse,
    summary="Get filter values",
    description="All statuses and the categories currently in use",
)
async def get_dataset_filters(service: DatasetService = Depends(get_dataset_service)):
    filters = DatasetFilters(**await service.get_dataset_filters())
    return ApiResponse(data=filters.model_dump(mode="json"))


@router.get(
    "/{dataset_id}",
    response_model=ApiResponse,
    summary="Get dataset",
)
async def get_dataset(
    dataset_id: UUID,
    service: DatasetService = Depends(get_dataset_service),
):
    dataset = await service.get_dataset(dataset_id)
    return ApiResponse(data=_dataset_payload(dataset))


@router.delete(
    "/{dataset_id}",
    response_model=ApiResponse,
    summary="Delete dataset",
    description="Delete a dataset together with all of its files",
)
async def delete_dataset(
    dataset_id: UUID,
    service: DatasetService = Depends(get_dataset_service),
):
    await service.delete_dataset(dataset_id)
    return ApiResponse(message="Dataset deleted successfully")


@router.put(
    "/{dataset_id}/metadata",
    response_model=ApiResponse,
    summary="Submit metadata",
    description="Editors submit for review; admins approve or request changes",
)
async def update_metadata(
    dataset_id: UUID,
    submission: MetadataSubmission,
    service: MetadataReviewService = Depends(get_review_service),
):
    dataset = await service.submit_metadata(dataset_id, submission)
    return ApiResponse(data=_dataset_payload(dataset), message="Metadata updated successfully")


@router.post(
    "/{dataset_id}/versions",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a new version",
    description="Replace the file of an approved dataset, archiving the current one",
)
async def create_version(
    dataset_id: UUID,
    file: UploadFile = File(..., description="CSV, XLSX or XLS file"),
    service: VersioningService = Depends(get_versioning_service),
):
    dataset = await service.create_version(dataset_id, file)
    return ApiResponse(data=_dataset_payload(dataset), message="New version uploaded successfully")


@router.get(
    "/{dataset_id}/versions",
    response_model=ApiResponse,
    summary="List versions",
)
async def list_versions(
    dataset_id: UUID,
    service: VersioningService = Depends(get_versioning_service),
):
    versions = await service.list_versions(dataset_id)
    return ApiResponse(data=versions.model_dump(mode="json"))
