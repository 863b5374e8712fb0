from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from src.app.domain.models import TARGET_ORIGINAL
from src.services.language import is_known


class ExtractRequest(BaseModel):
    url: str = ""
    targetLanguage: str = Field(default=TARGET_ORIGINAL, description="'original' or a language code such as 'en'")

    @field_validator("targetLanguage")
    @classmethod
    def _check_language(cls, value: str) -> str:
        code = (value or TARGET_ORIGINAL).strip().lower()
        if code != TARGET_ORIGINAL and not is_known(code):
            raise ValueError(f"Unsupported target language: {value}")
        return code


class ExtractResponse(BaseModel):
    message: str
    jobId: Optional[str] = None
    status: Optional[str] = None
    existingRecipeId: Optional[str] = None


class JobStatusResponse(BaseModel):
    id: str
    status: str
    progress: int
    statusMessage: Optional[str] = None
    recipeId: Optional[str] = None
    error: Optional[str] = None


class ProcessJobRequest(BaseModel):
    jobId: Optional[str] = None


class ProcessJobResponse(BaseModel):
    success: bool
    status: str


class AvatarRefreshResponse(BaseModel):
    authorId: str
    avatarUrl: str


class ThumbnailRefreshResponse(BaseModel):
    recipeId: str
    thumbnailUrl: str


class CreateJobRequest(ExtractRequest):
    """Internal job creation on behalf of a user, e.g. from the chat bot."""

    userId: str = ""
    telegramChatId: Optional[int] = None
