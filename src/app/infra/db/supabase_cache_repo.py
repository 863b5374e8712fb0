"""
Supabase-backed shared caches: video metadata, author directory and raw
model extractions. All writes are upserts on the tables' unique keys.
"""
from __future__ import annotations

import logging

from supabase import Client

from src.app.deps import get_supabase
from src.app.domain.errors import CacheRepositoryError
from src.app.domain.models import (
    Author,
    CachedMetadata,
    Platform,
    RawExtraction,
    VideoAuthor,
    VideoMedia,
    VideoMetadata,
)
from src.app.infra.db.base import AuthorRepository, MetadataCacheRepository, RawExtractionRepository
from src.app.infra.db.rows import STORAGE_ERRORS, first_row, now_utc, parse_datetime, safe_str

logger = logging.getLogger(__name__)


def _row_to_metadata(row: dict) -> CachedMetadata:
    author = row.get("author") or None
    media = row.get("media") or None
    return CachedMetadata(
        normalized_url=str(row["normalized_url"]),
        platform=Platform(str(row.get("platform") or Platform.OTHER.value)),
        metadata=VideoMetadata(
            title=safe_str(row.get("title")),
            description=safe_str(row.get("description")),
            author=VideoAuthor(**author) if isinstance(author, dict) else None,
            media=VideoMedia(**media) if isinstance(media, dict) else None,
            tags=list(row.get("tags") or []),
        ),
        author_id=safe_str(row.get("author_id")),
        fetched_at=parse_datetime(row.get("fetched_at")),
        updated_at=parse_datetime(row.get("updated_at")),
    )


def _metadata_to_row(entry: CachedMetadata) -> dict:
    metadata = entry.metadata
    author = metadata.author
    media = metadata.media
    now = now_utc().isoformat()
    return {
        "normalized_url": entry.normalized_url,
        "platform": entry.platform.value,
        "title": metadata.title,
        "description": metadata.description,
        "author": {
            "username": author.username,
            "display_name": author.display_name,
            "avatar_url": author.avatar_url,
            "verified": author.verified,
        } if author else None,
        "media": {
            "type": media.type,
            "duration": media.duration,
            "thumbnail_url": media.thumbnail_url,
            "url": media.url,
        } if media else None,
        "tags": metadata.tags,
        "author_id": entry.author_id,
        "fetched_at": (entry.fetched_at.isoformat() if entry.fetched_at else now),
        "updated_at": now,
    }


def _row_to_author(row: dict) -> Author:
    return Author(
        id=safe_str(row.get("id")),
        platform=Platform(str(row["platform"])),
        username=str(row["username"]),
        display_name=safe_str(row.get("display_name")),
        avatar_url=safe_str(row.get("avatar_url")),
        verified=row.get("verified"),
        first_seen_at=parse_datetime(row.get("first_seen_at")),
        last_updated_at=parse_datetime(row.get("last_updated_at")),
    )


def _row_to_extraction(row: dict) -> RawExtraction:
    return RawExtraction(
        normalized_url=str(row["normalized_url"]),
        target_language=str(row["target_language"]),
        detected_language=str(row.get("detected_language") or "unknown"),
        recipe=dict(row.get("recipe") or {}),
        confidence=float(row.get("confidence") if row.get("confidence") is not None else 0.8),
        created_at=parse_datetime(row.get("created_at")),
    )


class SupabaseMetadataCacheRepository(MetadataCacheRepository):
    TABLE_NAME = "video_metadata_cache"

    def __init__(self, client: Client | None = None):
        self._client = client or get_supabase()

    def get_metadata(self, normalized_url: str) -> CachedMetadata | None:
        try:
            result = (
                self._client.table(self.TABLE_NAME)
                .select("*")
                .eq("normalized_url", normalized_url)
                .limit(1)
                .execute()
            )
        except STORAGE_ERRORS as error:
            logger.error("Error reading metadata cache: url=%s error=%s", normalized_url, error)
            raise CacheRepositoryError("get_metadata", str(error)) from error

        row = first_row(result)
        return _row_to_metadata(row) if row else None

    def upsert_metadata(self, entry: CachedMetadata) -> CachedMetadata:
        row = _metadata_to_row(entry)
        try:
            result = (
                self._client.table(self.TABLE_NAME)
                .upsert(row, on_conflict="normalized_url")
                .execute()
            )
        except STORAGE_ERRORS as error:
            logger.error("Error writing metadata cache: url=%s error=%s", entry.normalized_url, error)
            raise CacheRepositoryError("upsert_metadata", str(error)) from error

        stored = first_row(result)
        return _row_to_metadata(stored) if stored else entry


class SupabaseAuthorRepository(AuthorRepository):
    TABLE_NAME = "authors"

    def __init__(self, client: Client | None = None):
        self._client = client or get_supabase()

    def upsert_author(self, author: Author) -> Author:
        now = now_utc().isoformat()
        row = {
            "platform": author.platform.value,
            "username": author.username,
            "display_name": author.display_name,
            "verified": author.verified,
            "last_updated_at": now,
        }
        # never overwrite a known avatar with nothing
        if author.avatar_url:
            row["avatar_url"] = author.avatar_url

        try:
            result = (
                self._client.table(self.TABLE_NAME)
                .upsert(row, on_conflict="platform,username")
                .execute()
            )
        except STORAGE_ERRORS as error:
            logger.error(
                "Error upserting author: platform=%s username=%s error=%s",
                author.platform.value,
                author.username,
                error,
            )
            raise CacheRepositoryError("upsert_author", str(error)) from error

        stored = first_row(result)
        if not stored:
            raise CacheRepositoryError("upsert_author", "upsert returned no row")
        return _row_to_author(stored)

    def get_author(self, author_id: str) -> Author | None:
        try:
            result = self._client.table(self.TABLE_NAME).select("*").eq("id", author_id).limit(1).execute()
        except STORAGE_ERRORS as error:
            logger.error("Error reading author: id=%s error=%s", author_id, error)
            raise CacheRepositoryError("get_author", str(error)) from error

        row = first_row(result)
        return _row_to_author(row) if row else None

    def update_avatar(self, author_id: str, avatar_url: str) -> bool:
        try:
            result = (
                self._client.table(self.TABLE_NAME)
                .update({"avatar_url": avatar_url, "last_updated_at": now_utc().isoformat()})
                .eq("id", author_id)
                .execute()
            )
        except STORAGE_ERRORS as error:
            logger.error("Error updating author avatar: id=%s error=%s", author_id, error)
            raise CacheRepositoryError("update_avatar", str(error)) from error

        return bool(result.data)


class SupabaseRawExtractionRepository(RawExtractionRepository):
    TABLE_NAME = "raw_extractions"

    def __init__(self, client: Client | None = None):
        self._client = client or get_supabase()

    def get_extraction(self, normalized_url: str, target_language: str) -> RawExtraction | None:
        try:
            result = (
                self._client.table(self.TABLE_NAME)
                .select("*")
                .eq("normalized_url", normalized_url)
                .eq("target_language", target_language)
                .limit(1)
                .execute()
            )
        except STORAGE_ERRORS as error:
            logger.error(
                "Error reading raw extraction: url=%s target=%s error=%s",
                normalized_url,
                target_language,
                error,
            )
            raise CacheRepositoryError("get_extraction", str(error)) from error

        row = first_row(result)
        return _row_to_extraction(row) if row else None

    def save_extraction(self, extraction: RawExtraction) -> None:
        row = {
            "normalized_url": extraction.normalized_url,
            "target_language": extraction.target_language,
            "detected_language": extraction.detected_language,
            "recipe": extraction.recipe,
            "confidence": extraction.confidence,
            "created_at": (extraction.created_at or now_utc()).isoformat(),
        }
        try:
            (
                self._client.table(self.TABLE_NAME)
                .upsert(row, on_conflict="normalized_url,target_language", ignore_duplicates=True)
                .execute()
            )
        except STORAGE_ERRORS as error:
            logger.error(
                "Error saving raw extraction: url=%s target=%s error=%s",
                extraction.normalized_url,
                extraction.target_language,
                error,
            )
            raise CacheRepositoryError("save_extraction", str(error)) from error

        logger.info(
            "Raw extraction cached: url=%s target=%s detected=%s",
            extraction.normalized_url,
            extraction.target_language,
            extraction.detected_language,
        )
