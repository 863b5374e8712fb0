# src/app/routers/jobs.py
"""
Internal job routes for out-of-band callers (chat bot, cron).

POST /jobs creates a pending job on behalf of a user, optionally tied to a
Telegram chat for progress messages; POST /jobs/process then runs a pending
job synchronously.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from starlette.concurrency import run_in_threadpool

from src.app.deps import require_internal_token
from src.app.domain.errors import InvalidJobTransitionError, JobNotFoundError, JobRepositoryError
from src.app.infra.db.base import ExtractionJobRepository, RecipeRepository
from src.app.routers.extract import START_FAILED_MESSAGE, ensure_usage_left, resolve_source_url
from src.app.routers.providers import get_extraction_pipeline, get_job_repo, get_recipe_repo, get_usage_service
from src.app.schemas.extract import CreateJobRequest, ExtractResponse, ProcessJobRequest, ProcessJobResponse
from src.app.services.extraction_pipeline import ExtractionPipeline
from src.app.services.usage_service import UsageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["internal"], dependencies=[Depends(require_internal_token)])


@router.post("", response_model=ExtractResponse, response_model_exclude_none=True)
async def create_job(
    request: CreateJobRequest,
    jobs: ExtractionJobRepository = Depends(get_job_repo),
    recipes: RecipeRepository = Depends(get_recipe_repo),
    usage: UsageService = Depends(get_usage_service),
):
    if not request.userId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing userId")

    url = request.url.strip()
    normalized_url, detection = await resolve_source_url(url)

    existing_id = recipes.find_recipe_id_by_source_url(request.userId, normalized_url)
    if existing_id:
        return ExtractResponse(existingRecipeId=existing_id, message="Recipe already exists")

    ensure_usage_left(usage, request.userId)

    try:
        job = jobs.create_job(
            user_id=request.userId,
            source_url=url,
            normalized_url=normalized_url,
            platform=detection.platform,
            target_language=request.targetLanguage,
            telegram_chat_id=request.telegramChatId,
        )
    except JobRepositoryError as e:
        logger.error("Failed to create internal job: user=%s error=%s", request.userId, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=START_FAILED_MESSAGE)

    logger.info("Internal job created: job=%s user=%s chat=%s", job.id, job.user_id, job.telegram_chat_id)
    return ExtractResponse(jobId=job.id, status=job.status.value, message="Job created")


@router.post("/process", response_model=ProcessJobResponse)
async def process_job(
    request: ProcessJobRequest,
    pipeline: ExtractionPipeline = Depends(get_extraction_pipeline),
):
    if not request.jobId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing jobId")

    try:
        job = await run_in_threadpool(pipeline.process_job_id, request.jobId)
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    except InvalidJobTransitionError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Job already processed")
    except Exception:
        logger.exception("Job processing error: job=%s", request.jobId)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Processing failed")

    return ProcessJobResponse(success=True, status=job.status.value)
