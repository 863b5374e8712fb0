# src/app/routers/authors.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from starlette.concurrency import run_in_threadpool

from src.app.deps import CurrentUser, get_current_user
from src.app.domain.errors import AuthorNotFoundError
from src.app.routers.providers import get_metadata_service
from src.app.schemas.extract import AvatarRefreshResponse
from src.app.services.metadata_service import MetadataService
from src.services.errors import UnsupportedPlatformError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/authors", tags=["authors"])


@router.post("/{author_id}/refresh-avatar", response_model=AvatarRefreshResponse)
async def refresh_author_avatar(
    author_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: MetadataService = Depends(get_metadata_service),
):
    try:
        avatar_url = await run_in_threadpool(service.refresh_author_avatar, author_id)
    except AuthorNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Author not found")
    except UnsupportedPlatformError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if not avatar_url:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Could not fetch author avatar")

    logger.info("Avatar refreshed by user=%s author=%s", current_user.id, author_id)
    return AvatarRefreshResponse(authorId=author_id, avatarUrl=avatar_url)
