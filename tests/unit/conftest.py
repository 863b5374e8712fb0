from __future__ import annotations

import json
from typing import Optional
from uuid import uuid4

import pytest

from src.app.domain.errors import JobNotFoundError
from src.app.domain.models import (
    Author,
    CachedMetadata,
    ExtractionJob,
    Platform,
    RawExtraction,
    TranscriptResult,
    UsageStatus,
    VideoAuthor,
    VideoMedia,
    VideoMetadata,
)
from src.app.infra.db.base import (
    AuthorRepository,
    ExtractionJobRepository,
    MetadataCacheRepository,
    RawExtractionRepository,
    RecipeRepository,
    UsageRepository,
)
from src.services.persist_models import RecipeRecord

TRANSCRIPT_EN = (
    "Today we are making garlic butter pasta. Boil the spaghetti in salted water, "
    "melt two tablespoons of butter with three cloves of garlic, then toss everything together."
)

RECIPE_JSON = json.dumps({
    "isRecipe": True,
    "title": "Garlic Butter Pasta",
    "servings": 2,
    "ingredients": [
        {"name": "spaghetti", "quantity": None, "unit": None},
        {"name": "butter", "quantity": "2", "unit": "tablespoons"},
        {"name": "garlic", "quantity": 3, "unit": "cloves"},
    ],
    "instructions": [
        {"stepNumber": 1, "description": "Boil the spaghetti in salted water"},
        {"stepNumber": 2, "description": "Melt the butter with the garlic"},
        {"description": "Toss everything together"},
    ],
    "confidence": 0.9,
})


class JobRepositoryStub(ExtractionJobRepository):
    def __init__(self) -> None:
        self.jobs: dict[str, ExtractionJob] = {}
        self.history: list[tuple[str, str, int]] = []

    def create_job(
        self,
        user_id: str,
        source_url: str,
        normalized_url: str,
        platform: Platform,
        target_language: str,
        telegram_chat_id: Optional[int] = None,
    ) -> ExtractionJob:
        job = ExtractionJob(
            id=str(uuid4()),
            user_id=user_id,
            source_url=source_url,
            normalized_url=normalized_url,
            platform=platform,
            target_language=target_language,
            telegram_chat_id=telegram_chat_id,
        )
        self.jobs[job.id] = job
        return job

    def get_job(self, job_id: str) -> Optional[ExtractionJob]:
        return self.jobs.get(job_id)

    def update_job(self, job: ExtractionJob) -> None:
        if job.id not in self.jobs:
            raise JobNotFoundError(job.id)
        self.jobs[job.id] = job
        self.history.append((job.id, job.status.value, job.progress))


class MetadataCacheStub(MetadataCacheRepository):
    def __init__(self) -> None:
        self.entries: dict[str, CachedMetadata] = {}
        self.upserts = 0

    def get_metadata(self, normalized_url: str) -> Optional[CachedMetadata]:
        return self.entries.get(normalized_url)

    def upsert_metadata(self, entry: CachedMetadata) -> CachedMetadata:
        self.upserts += 1
        self.entries[entry.normalized_url] = entry
        return entry


class AuthorRepositoryStub(AuthorRepository):
    def __init__(self) -> None:
        self.authors: dict[tuple[str, str], Author] = {}
        self.upserts = 0

    def upsert_author(self, author: Author) -> Author:
        self.upserts += 1
        key = (author.platform.value, author.username)
        existing = self.authors.get(key)
        author.id = existing.id if existing else f"author-{len(self.authors) + 1}"
        if existing and not author.avatar_url:
            author.avatar_url = existing.avatar_url
        self.authors[key] = author
        return author

    def get_author(self, author_id: str) -> Optional[Author]:
        for author in self.authors.values():
            if author.id == author_id:
                return author
        return None

    def update_avatar(self, author_id: str, avatar_url: str) -> bool:
        author = self.get_author(author_id)
        if author is None:
            return False
        author.avatar_url = avatar_url
        return True


class RawExtractionStub(RawExtractionRepository):
    def __init__(self) -> None:
        self.entries: dict[tuple[str, str], RawExtraction] = {}
        self.saves = 0

    def get_extraction(self, normalized_url: str, target_language: str) -> Optional[RawExtraction]:
        return self.entries.get((normalized_url, target_language))

    def save_extraction(self, extraction: RawExtraction) -> None:
        self.saves += 1
        self.entries.setdefault((extraction.normalized_url, extraction.target_language), extraction)


class RecipeRepositoryStub(RecipeRepository):
    def __init__(self) -> None:
        self.recipes: dict[str, RecipeRecord] = {}
        self.avatar_updates: list[tuple[str, str]] = []

    def create_recipe(self, record: RecipeRecord) -> str:
        recipe_id = f"recipe-{len(self.recipes) + 1}"
        self.recipes[recipe_id] = record
        return recipe_id

    def find_recipe_id_by_source_url(self, user_id: str, normalized_url: str) -> Optional[str]:
        for recipe_id, record in self.recipes.items():
            if record.owner_id == user_id and record.source.normalized_url == normalized_url:
                return recipe_id
        return None

    def get_recipe(self, recipe_id: str) -> Optional[dict]:
        record = self.recipes.get(recipe_id)
        return record.to_row() if record else None

    def find_source_url_by_author_id(self, author_id: str) -> Optional[str]:
        for record in self.recipes.values():
            if record.source.author_id == author_id:
                return record.source.url
        return None

    def update_author_avatar(self, author_id: str, avatar_url: str) -> int:
        self.avatar_updates.append((author_id, avatar_url))
        return 1

    def update_thumbnail(self, recipe_id: str, thumbnail_url: str) -> None:
        self.recipes[recipe_id].source.thumbnail_url = thumbnail_url


class UsageRepositoryStub(UsageRepository):
    def __init__(self, used: int = 0, limit: int = 10) -> None:
        self.used = used
        self.limit = limit

    def get_usage(self, user_id: str) -> UsageStatus:
        return UsageStatus(allowed=self.used < self.limit, used=self.used, limit=self.limit, plan_tier="free")

    def increment_usage(self, user_id: str) -> None:
        self.used += 1


class GeminiClientStub:
    def __init__(self, response: str = RECIPE_JSON) -> None:
        self.response = response
        self.calls: list[tuple[str, str]] = []

    def generate_content(self, user_prompt: str, system_instruction: str) -> str:
        self.calls.append((user_prompt, system_instruction))
        return self.response


class NotifierStub:
    def __init__(self) -> None:
        self.statuses: list[tuple[int, str]] = []
        self.previews: list[tuple[int, str]] = []
        self.errors: list[tuple[int, str]] = []

    def send_status(self, chat_id: int, message: str) -> None:
        self.statuses.append((chat_id, message))

    def send_recipe_preview(self, chat_id: int, record: RecipeRecord, recipe_id: str) -> None:
        self.previews.append((chat_id, recipe_id))

    def send_error(self, chat_id: int, error: str) -> None:
        self.errors.append((chat_id, error))


def make_metadata(description: Optional[str] = None) -> VideoMetadata:
    return VideoMetadata(
        title="Garlic butter pasta in 10 minutes",
        description=description,
        author=VideoAuthor(username="pastachef", display_name="Pasta Chef", avatar_url="https://cdn.example/old.jpg"),
        media=VideoMedia(type="video", duration=58, thumbnail_url="https://cdn.example/thumb.jpg"),
        tags=["pasta"],
    )


def make_transcript(text: str = TRANSCRIPT_EN, language: Optional[str] = "en") -> TranscriptResult:
    return TranscriptResult(text=text, language=language, source="transcript_api")


@pytest.fixture
def job_repo() -> JobRepositoryStub:
    return JobRepositoryStub()


@pytest.fixture
def metadata_cache() -> MetadataCacheStub:
    return MetadataCacheStub()


@pytest.fixture
def author_repo() -> AuthorRepositoryStub:
    return AuthorRepositoryStub()


@pytest.fixture
def raw_repo() -> RawExtractionStub:
    return RawExtractionStub()


@pytest.fixture
def recipe_repo() -> RecipeRepositoryStub:
    return RecipeRepositoryStub()


@pytest.fixture
def usage_repo() -> UsageRepositoryStub:
    return UsageRepositoryStub()


@pytest.fixture
def gemini() -> GeminiClientStub:
    return GeminiClientStub()


@pytest.fixture
def notifier() -> NotifierStub:
    return NotifierStub()
