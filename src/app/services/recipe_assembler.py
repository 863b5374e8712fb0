# src/app/services/recipe_assembler.py
from __future__ import annotations

import logging
from typing import Optional

from src.app.domain.models import CachedMetadata, ExtractionJob
from src.app.infra.db.base import RecipeRepository
from src.app.infra.db.rows import now_utc
from src.app.services.extraction_cache import ExtractionOutcome
from src.services.persist_models import ExtractionMetadata, RecipeRecord, RecipeSource
from src.services.slugify import recipe_slug

logger = logging.getLogger(__name__)

UNTITLED_RECIPE = "Untitled Recipe"


class RecipeAssembler:
    """Builds the user's recipe from a draft plus video metadata and saves it."""

    def __init__(self, recipes: RecipeRepository):
        self._recipes = recipes

    def assemble(
        self,
        job: ExtractionJob,
        outcome: ExtractionOutcome,
        metadata: Optional[CachedMetadata],
        thumbnail_url: Optional[str],
        author_avatar_url: Optional[str],
    ) -> RecipeRecord:
        draft = outcome.draft
        title = draft.title or UNTITLED_RECIPE
        video = metadata.metadata if metadata else None
        author = video.author if video else None

        source = RecipeSource(
            url=job.source_url,
            normalized_url=job.normalized_url,
            platform=job.platform.value,
            video_title=video.title if video else None,
            author_username=author.username if author else None,
            author_display_name=author.display_name if author else None,
            author_avatar_url=author_avatar_url,
            author_id=metadata.author_id if metadata else None,
            thumbnail_url=thumbnail_url,
        )

        return RecipeRecord(
            owner_id=job.user_id,
            slug=recipe_slug(title),
            title=title,
            description=draft.description,
            cuisine_type=draft.cuisine_type,
            difficulty=draft.difficulty,
            prep_time=draft.prep_time,
            cook_time=draft.cook_time,
            total_time=draft.total_time,
            servings=draft.servings,
            dietary_tags=draft.dietary_tags,
            meal_type=draft.meal_type,
            ingredients=[item.model_dump(by_alias=True) for item in draft.ingredients],
            instructions=[step.model_dump(by_alias=True) for step in draft.instructions],
            equipment=draft.equipment,
            tips_and_notes=draft.tips_and_notes,
            nutrition=draft.nutrition.model_dump(by_alias=True) if draft.nutrition else None,
            source=source,
            extraction_metadata=ExtractionMetadata(
                extracted_at=now_utc().isoformat(),
                confidence=outcome.confidence,
                detected_language=outcome.detected_language,
                target_language=job.target_language,
                from_cache=outcome.from_cache,
            ),
        )

    def persist(
        self,
        job: ExtractionJob,
        outcome: ExtractionOutcome,
        metadata: Optional[CachedMetadata],
        thumbnail_url: Optional[str],
        author_avatar_url: Optional[str],
    ) -> tuple[RecipeRecord, str]:
        record = self.assemble(job, outcome, metadata, thumbnail_url, author_avatar_url)
        recipe_id = self._recipes.create_recipe(record)
        logger.info("Recipe saved: job=%s recipe=%s from_cache=%s", job.id, recipe_id, outcome.from_cache)
        return record, recipe_id
