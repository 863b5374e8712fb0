# src/app/infra/db/base.py
"""
Abstract repositories for extraction jobs, shared caches, recipes and usage.
Services depend on these interfaces so tests can swap in in-memory stubs.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from src.app.domain.models import (
    Author,
    CachedMetadata,
    ExtractionJob,
    Platform,
    RawExtraction,
    UsageStatus,
)
from src.services.persist_models import RecipeRecord


class ExtractionJobRepository(ABC):
    """
    Storage for extraction jobs.

    Implementations:
    - SupabaseExtractionJobRepository: the extraction_jobs table
    """

    @abstractmethod
    def create_job(
        self,
        user_id: str,
        source_url: str,
        normalized_url: str,
        platform: Platform,
        target_language: str,
        telegram_chat_id: Optional[int] = None,
    ) -> ExtractionJob:
        """
        Create a job in PENDING status with progress 0.

        Raises:
            JobRepositoryError: if the row could not be written
        """

    @abstractmethod
    def get_job(self, job_id: str) -> Optional[ExtractionJob]:
        """Return the job, or None if it does not exist."""

    @abstractmethod
    def update_job(self, job: ExtractionJob) -> None:
        """
        Persist status, progress, status message, recipe id and error.

        Raises:
            JobNotFoundError: if no row has this id
            JobRepositoryError: on storage failure
        """


class MetadataCacheRepository(ABC):
    @abstractmethod
    def get_metadata(self, normalized_url: str) -> Optional[CachedMetadata]:
        pass

    @abstractmethod
    def upsert_metadata(self, entry: CachedMetadata) -> CachedMetadata:
        """Insert or refresh the single entry for entry.normalized_url."""


class AuthorRepository(ABC):
    @abstractmethod
    def upsert_author(self, author: Author) -> Author:
        """Insert or refresh the entry for (platform, username); returns it with its id."""

    @abstractmethod
    def get_author(self, author_id: str) -> Optional[Author]:
        pass

    @abstractmethod
    def update_avatar(self, author_id: str, avatar_url: str) -> bool:
        pass


class RawExtractionRepository(ABC):
    @abstractmethod
    def get_extraction(self, normalized_url: str, target_language: str) -> Optional[RawExtraction]:
        pass

    @abstractmethod
    def save_extraction(self, extraction: RawExtraction) -> None:
        """Store the extraction unless one already exists for its key (first writer wins)."""


class RecipeRepository(ABC):
    @abstractmethod
    def create_recipe(self, record: RecipeRecord) -> str:
        """Insert the recipe and return its id."""

    @abstractmethod
    def find_recipe_id_by_source_url(self, user_id: str, normalized_url: str) -> Optional[str]:
        pass

    @abstractmethod
    def get_recipe(self, recipe_id: str) -> Optional[dict]:
        pass

    @abstractmethod
    def find_source_url_by_author_id(self, author_id: str) -> Optional[str]:
        pass

    @abstractmethod
    def update_author_avatar(self, author_id: str, avatar_url: str) -> int:
        """Rewrite the cached author avatar on every recipe by this author; returns rows touched."""

    @abstractmethod
    def update_thumbnail(self, recipe_id: str, thumbnail_url: str) -> None:
        pass


class UsageRepository(ABC):
    @abstractmethod
    def get_usage(self, user_id: str) -> UsageStatus:
        pass

    @abstractmethod
    def increment_usage(self, user_id: str) -> None:
        pass
