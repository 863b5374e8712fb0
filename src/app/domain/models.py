# src/app/domain/models.py
"""
Domain models for the recipe extraction pipeline.
These are pure data structures with no infrastructure dependencies.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from src.app.domain.errors import InvalidJobTransitionError

TARGET_ORIGINAL = "original"


class Platform(str, Enum):
    """Supported video platforms."""
    TIKTOK = "tiktok"
    INSTAGRAM = "instagram"
    YOUTUBE = "youtube"
    OTHER = "other"


class ExtractionStatus(str, Enum):
    """Status enum for extraction jobs, in pipeline order."""
    PENDING = "pending"
    FETCHING_TRANSCRIPT = "fetching_transcript"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"


# Forward-only order of the non-failed stages.
STAGE_ORDER: tuple[ExtractionStatus, ...] = (
    ExtractionStatus.PENDING,
    ExtractionStatus.FETCHING_TRANSCRIPT,
    ExtractionStatus.ANALYZING,
    ExtractionStatus.COMPLETED,
)

TERMINAL_STATUSES = frozenset({ExtractionStatus.COMPLETED, ExtractionStatus.FAILED})


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ExtractionJob:
    """
    One user-initiated extraction attempt.

    Status only moves forward through STAGE_ORDER (one stage at a time) or
    jumps to FAILED from any non-terminal status. Progress never decreases.
    Once terminal, exactly one of recipe_id / error is set.
    """
    id: str
    user_id: str
    source_url: str
    normalized_url: str
    platform: Platform
    target_language: str = TARGET_ORIGINAL
    status: ExtractionStatus = ExtractionStatus.PENDING
    progress: int = 0
    status_message: Optional[str] = None
    recipe_id: Optional[str] = None
    error: Optional[str] = None
    telegram_chat_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def advance(self, status: ExtractionStatus, progress: int, message: Optional[str] = None) -> None:
        """Move to a (same or next) non-terminal stage and raise progress."""
        if self.is_terminal or status in TERMINAL_STATUSES:
            raise InvalidJobTransitionError(self.id, self.status.value, status.value)

        current_index = STAGE_ORDER.index(self.status)
        requested_index = STAGE_ORDER.index(status)
        if requested_index < current_index or requested_index > current_index + 1:
            raise InvalidJobTransitionError(self.id, self.status.value, status.value)

        self.status = status
        self.progress = max(self.progress, min(100, int(progress)))
        if message is not None:
            self.status_message = message
        self.updated_at = _now_utc()

    def complete(self, recipe_id: str, message: str = "Recipe extracted successfully") -> None:
        if self.status != ExtractionStatus.ANALYZING:
            raise InvalidJobTransitionError(self.id, self.status.value, ExtractionStatus.COMPLETED.value)

        self.status = ExtractionStatus.COMPLETED
        self.progress = 100
        self.recipe_id = recipe_id
        self.error = None
        self.status_message = message
        self.updated_at = _now_utc()

    def fail(self, error: str) -> None:
        """Mark as failed; progress stays at its last value."""
        if self.is_terminal:
            raise InvalidJobTransitionError(self.id, self.status.value, ExtractionStatus.FAILED.value)

        self.status = ExtractionStatus.FAILED
        self.error = error or "An unexpected error occurred"
        self.recipe_id = None
        self.status_message = self.error
        self.updated_at = _now_utc()


@dataclass
class VideoAuthor:
    username: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    verified: Optional[bool] = None


@dataclass
class VideoMedia:
    type: str = "video"  # video, image, carousel, post
    duration: Optional[float] = None
    thumbnail_url: Optional[str] = None
    url: Optional[str] = None


@dataclass
class VideoMetadata:
    """Platform metadata as returned by the metadata provider."""
    title: Optional[str] = None
    description: Optional[str] = None
    author: Optional[VideoAuthor] = None
    media: Optional[VideoMedia] = None
    tags: list[str] = field(default_factory=list)


@dataclass
class CachedMetadata:
    """A video_metadata_cache row: metadata shared by every job on a URL."""
    normalized_url: str
    platform: Platform
    metadata: VideoMetadata
    author_id: Optional[str] = None
    fetched_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Author:
    """A creator in the author directory, unique per (platform, username)."""
    platform: Platform
    username: str
    id: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    verified: Optional[bool] = None
    first_seen_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None


@dataclass
class TranscriptResult:
    text: str
    language: Optional[str] = None
    source: Optional[str] = None  # transcript_api, subtitles, audio


@dataclass
class RawExtraction:
    """A raw_extractions row. Immutable once written."""
    normalized_url: str
    target_language: str
    detected_language: str
    recipe: dict[str, Any]
    confidence: float
    created_at: Optional[datetime] = None


@dataclass
class UsageStatus:
    """Result of a usage check for a user."""
    allowed: bool
    used: int
    limit: int
    plan_tier: Optional[str] = None
