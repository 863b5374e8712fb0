# src/app/routers/recipes.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from starlette.concurrency import run_in_threadpool

from src.app.deps import CurrentUser, get_current_user
from src.app.domain.errors import JobRepositoryError, RecipeAccessDeniedError, RecipeNotFoundError
from src.app.routers.providers import get_recipe_media_service
from src.app.schemas.extract import ThumbnailRefreshResponse
from src.app.services.recipe_media_service import RecipeMediaService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recipes", tags=["recipes"])


@router.post("/{recipe_id}/refresh-thumbnail", response_model=ThumbnailRefreshResponse)
async def refresh_recipe_thumbnail(
    recipe_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: RecipeMediaService = Depends(get_recipe_media_service),
):
    try:
        thumbnail_url = await run_in_threadpool(service.refresh_thumbnail, recipe_id, current_user.id)
    except RecipeNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipe not found")
    except RecipeAccessDeniedError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    except JobRepositoryError as e:
        logger.error("Thumbnail refresh failed: recipe=%s error=%s", recipe_id, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to refresh thumbnail")

    if not thumbnail_url:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Could not fetch thumbnail")

    return ThumbnailRefreshResponse(recipeId=recipe_id, thumbnailUrl=thumbnail_url)
