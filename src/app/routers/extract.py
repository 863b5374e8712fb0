# src/app/routers/extract.py
"""
Recipe extraction routes.

POST /extract starts a job and returns at once; clients poll
GET /extract/{job_id} until the status is completed or failed.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from starlette.concurrency import run_in_threadpool

from src.app.deps import CurrentUser, get_current_user
from src.app.domain.errors import JobRepositoryError, UsageLimitExceededError
from src.app.infra.db.base import ExtractionJobRepository, RecipeRepository
from src.app.routers.providers import get_extraction_queue, get_job_repo, get_recipe_repo, get_usage_service
from src.app.schemas.extract import ExtractRequest, ExtractResponse, JobStatusResponse
from src.app.services.usage_service import UsageService
from src.services import platforms
from src.services.extraction_queue import ExtractionQueue
from src.services.platforms import PlatformDetection

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/extract", tags=["extract"])

START_FAILED_MESSAGE = "Failed to start extraction"


async def resolve_source_url(url: str) -> tuple[str, PlatformDetection]:
    """Strip, resolve and classify ``url``; 400 when it cannot be extracted from."""
    url = url.strip()
    if not url:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="URL is required")

    normalized_url = await run_in_threadpool(platforms.resolve, url)
    detection = platforms.classify(normalized_url)
    if not detection.is_valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detection.error or "Invalid URL")
    return normalized_url, detection


def ensure_usage_left(usage: UsageService, user_id: str) -> None:
    try:
        usage.ensure_can_extract(user_id)
    except UsageLimitExceededError as e:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": str(e),
                "used": e.used,
                "limit": e.limit,
                "planTier": e.plan_tier,
            },
        )


@router.post("", response_model=ExtractResponse, response_model_exclude_none=True)
async def start_extraction(
    request: ExtractRequest,
    current_user: CurrentUser = Depends(get_current_user),
    jobs: ExtractionJobRepository = Depends(get_job_repo),
    recipes: RecipeRepository = Depends(get_recipe_repo),
    usage: UsageService = Depends(get_usage_service),
    queue: ExtractionQueue = Depends(get_extraction_queue),
):
    url = request.url.strip()
    normalized_url, detection = await resolve_source_url(url)

    existing_id = recipes.find_recipe_id_by_source_url(current_user.id, normalized_url)
    if existing_id:
        return ExtractResponse(existingRecipeId=existing_id, message="Recipe already exists")

    ensure_usage_left(usage, current_user.id)

    try:
        job = jobs.create_job(
            user_id=current_user.id,
            source_url=url,
            normalized_url=normalized_url,
            platform=detection.platform,
            target_language=request.targetLanguage,
        )
    except JobRepositoryError as e:
        logger.error("Failed to create extraction job: user=%s error=%s", current_user.id, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=START_FAILED_MESSAGE)

    try:
        await queue.enqueue(job.id)
    except Exception:
        logger.exception("Failed to dispatch extraction job: job=%s", job.id)
        job.fail(START_FAILED_MESSAGE)
        jobs.update_job(job)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=START_FAILED_MESSAGE)

    return ExtractResponse(jobId=job.id, status=job.status.value, message="Extraction started")


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_extraction_job(
    job_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    jobs: ExtractionJobRepository = Depends(get_job_repo),
):
    job = jobs.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    if job.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    return JobStatusResponse(
        id=job.id,
        status=job.status.value,
        progress=job.progress,
        statusMessage=job.status_message,
        recipeId=job.recipe_id,
        error=job.error,
    )
