"""Image generation API endpoints.

This module implements the generation job lifecycle:
- POST /api/v1/generate - Submit an asynchronous generation job (202)
- POST /api/v1/generate/sync - Generate inline and return the images
- GET /api/v1/generate/history - Caller's generations, newest first
- GET /api/v1/generate/{job_id}/status - Poll a job's status and progress
- GET /api/v1/generate/{job_id} - Fetch the result of a completed job

The caller is identified by the X-User-Id header.
"""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from pydantic import BaseModel, Field

from fortyfive.api.dependencies import get_current_user_id, get_generation_service
from fortyfive.models.generation import GenerationStatus
from fortyfive.services.generation import GenerationService

logger = structlog.get_logger()
router = APIRouter(prefix="/api/v1/generate", tags=["generation"])


# Response Models


class SubmitJobResponse(BaseModel):
    """Response model for an accepted generation job."""

    job_id: str = Field(..., description="Opaque job identifier (32 hex characters)")
    status: GenerationStatus = Field(..., description="Always 'pending' on submission")
    message: str = Field(..., description="Human-readable acknowledgement")


class SyncGenerationResponse(BaseModel):
    """Response model for the synchronous generation path."""

    images: list[str] = Field(..., description="Generated image URLs")
    credits_used: int = Field(..., description="Credits debited for this generation")


class JobStatusResponse(BaseModel):
    """Response model for job status polling."""

    job_id: str
    status: GenerationStatus
    progress: int = Field(..., ge=0, le=100, description="Advisory progress percentage")
    image_url: str | None = Field(None, description="Result URL once completed")
    error: str | None = Field(None, description="Failure reason once failed")


class JobResultResponse(BaseModel):
    """Response model for a completed job's result."""

    job_id: str
    image_url: str
    status: GenerationStatus


class GenerationHistoryItem(BaseModel):
    """One entry of the caller's generation history."""

    job_id: str
    template_id: int
    status: GenerationStatus
    progress: int
    image_url: str | None = None
    error: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class GenerationHistoryResponse(BaseModel):
    """Paginated generation history."""

    generations: list[GenerationHistoryItem]
    limit: int
    offset: int


# Endpoints


@router.post("", response_model=SubmitJobResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_generation(
    template_id: int = Form(..., description="Style template to apply"),
    image: UploadFile = File(..., description="Source photo"),
    user_id: int = Depends(get_current_user_id),
    service: GenerationService = Depends(get_generation_service),
) -> SubmitJobResponse:
    """Submit an asynchronous generation job.

    Creates a pending generation record, enqueues the job and returns
    immediately. Poll /api/v1/generate/{job_id}/status for progress.

    Returns:
        SubmitJobResponse with the new job id

    Raises:
        400: Empty or oversized image
        401: Missing X-User-Id
        503: Job queue is full
    """
    image_bytes = await image.read()
    job_id = await service.submit_job(user_id, template_id, image_bytes)
    return SubmitJobResponse(
        job_id=job_id,
        status=GenerationStatus.PENDING,
        message="Generation job queued",
    )


@router.post("/sync", response_model=SyncGenerationResponse, status_code=status.HTTP_200_OK)
async def generate_sync(
    template_id: int = Form(..., description="Style template to apply"),
    image: UploadFile = File(..., description="Source photo"),
    user_id: int = Depends(get_current_user_id),
    service: GenerationService = Depends(get_generation_service),
) -> SyncGenerationResponse:
    """Generate images inline, checking content safety and credits first.

    Raises:
        400: Empty or oversized image
        402: Insufficient credits
        404: Unknown template or user
        422: Image rejected by the content-safety check
        502: Image generation failed
    """
    image_bytes = await image.read()
    result = await service.generate_sync(user_id, template_id, image_bytes)
    return SyncGenerationResponse(images=result.images, credits_used=result.credits_used)


@router.get("/history", response_model=GenerationHistoryResponse)
async def generation_history(
    limit: int = Query(20, ge=1, le=100, description="Maximum entries to return"),
    offset: int = Query(0, ge=0, description="Entries to skip"),
    user_id: int = Depends(get_current_user_id),
    service: GenerationService = Depends(get_generation_service),
) -> GenerationHistoryResponse:
    """List the caller's generations, newest first."""
    generations = await service.list_history(user_id, limit=limit, offset=offset)
    return GenerationHistoryResponse(
        generations=[
            GenerationHistoryItem(
                job_id=g.job_id,
                template_id=g.template_id,
                status=g.status,
                progress=g.progress,
                image_url=g.image_url,
                error=g.error,
                created_at=g.created_at,
                completed_at=g.completed_at,
            )
            for g in generations
        ],
        limit=limit,
        offset=offset,
    )


@router.get("/{job_id}/status", response_model=JobStatusResponse)
async def job_status(
    job_id: str,
    user_id: int = Depends(get_current_user_id),
    service: GenerationService = Depends(get_generation_service),
) -> JobStatusResponse:
    """Poll a job's status.

    Raises:
        404: Unknown job id
    """
    view = await service.get_status(job_id)
    return JobStatusResponse(
        job_id=view.job_id,
        status=view.status,
        progress=view.progress,
        image_url=view.image_url,
        error=view.error,
    )


@router.get("/{job_id}", response_model=JobResultResponse)
async def job_result(
    job_id: str,
    user_id: int = Depends(get_current_user_id),
    service: GenerationService = Depends(get_generation_service),
) -> JobResultResponse:
    """Fetch the result of a completed job.

    Raises:
        404: Unknown job id
        409: Job has not completed
    """
    view = await service.get_result(job_id)
    return JobResultResponse(job_id=view.job_id, image_url=view.image_url, status=view.status)
