# src/app/services/metadata_service.py
"""
Video metadata cache and author directory.

Metadata is enrichment: any failure here is logged and the pipeline carries
on without it.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from src.app.domain.errors import AuthorNotFoundError, CacheRepositoryError
from src.app.domain.models import Author, CachedMetadata, Platform, VideoMetadata
from src.app.infra.db.base import AuthorRepository, MetadataCacheRepository, RecipeRepository
from src.services import fetcher, media_lookup
from src.services.errors import ServiceError, UnsupportedPlatformError

logger = logging.getLogger(__name__)

AVATAR_REFRESH_PLATFORMS = (Platform.INSTAGRAM, Platform.TIKTOK, Platform.YOUTUBE)


class MetadataService:
    def __init__(
        self,
        cache_repo: MetadataCacheRepository,
        author_repo: AuthorRepository,
        recipe_repo: Optional[RecipeRepository] = None,
        fetch_metadata: Callable[[str, Platform], VideoMetadata] = fetcher.fetch_metadata,
        avatar_lookup: Callable[[str, Platform], Optional[str]] = media_lookup.fresh_author_avatar,
    ):
        self._cache = cache_repo
        self._authors = author_repo
        self._recipes = recipe_repo
        self._fetch_metadata = fetch_metadata
        self._avatar_lookup = avatar_lookup

    def get_cached(self, normalized_url: str) -> Optional[CachedMetadata]:
        try:
            return self._cache.get_metadata(normalized_url)
        except CacheRepositoryError as error:
            logger.warning("Metadata cache read failed: url=%s error=%s", normalized_url, error)
            return None

    def get_or_fetch_metadata(
        self,
        normalized_url: str,
        platform: Platform,
        source_url: str,
    ) -> Optional[CachedMetadata]:
        cached = self.get_cached(normalized_url)
        if cached is not None:
            logger.debug("Metadata cache hit: url=%s", normalized_url)
            return cached

        try:
            metadata = self._fetch_metadata(source_url, platform)
        except ServiceError as error:
            logger.warning("Metadata fetch failed: url=%s error=%s", source_url, error)
            return None

        author_id = self._register_author(metadata, platform, source_url)
        entry = CachedMetadata(
            normalized_url=normalized_url,
            platform=platform,
            metadata=metadata,
            author_id=author_id,
        )

        try:
            stored = self._cache.upsert_metadata(entry)
        except CacheRepositoryError as error:
            logger.warning("Metadata cache write failed: url=%s error=%s", normalized_url, error)
            return entry

        logger.info("Metadata cached: url=%s author_id=%s", normalized_url, author_id)
        return stored

    def _register_author(self, metadata: VideoMetadata, platform: Platform, source_url: str) -> Optional[str]:
        author = metadata.author
        if author is None or not author.username:
            return None

        fresh_avatar = self._avatar_lookup(source_url, platform)
        if fresh_avatar:
            author.avatar_url = fresh_avatar

        try:
            stored = self._authors.upsert_author(
                Author(
                    platform=platform,
                    username=author.username,
                    display_name=author.display_name,
                    avatar_url=author.avatar_url,
                    verified=author.verified,
                )
            )
        except CacheRepositoryError as error:
            logger.warning("Author upsert failed: username=%s error=%s", author.username, error)
            return None

        return stored.id

    def refresh_author_avatar(self, author_id: str) -> Optional[str]:
        """
        Re-scrape an author's avatar and store it on the author and their recipes.

        Returns the new URL, or None when no avatar could be found.
        Raises AuthorNotFoundError or UnsupportedPlatformError.
        """
        author = self._authors.get_author(author_id)
        if author is None:
            raise AuthorNotFoundError(author_id)

        if author.platform not in AVATAR_REFRESH_PLATFORMS:
            raise UnsupportedPlatformError("Avatar refresh is only supported for Instagram, TikTok, and YouTube")

        if author.platform == Platform.YOUTUBE:
            lookup_url = self._recipes.find_source_url_by_author_id(author_id) if self._recipes else None
        else:
            lookup_url = media_lookup.profile_url(author.platform, author.username)

        if not lookup_url:
            return None

        avatar_url = self._avatar_lookup(lookup_url, author.platform)
        if not avatar_url:
            logger.info("No avatar found: author=%s platform=%s", author_id, author.platform.value)
            return None

        self._authors.update_avatar(author_id, avatar_url)
        if self._recipes is not None:
            self._recipes.update_author_avatar(author_id, avatar_url)

        logger.info("Author avatar refreshed: author=%s", author_id)
        return avatar_url
