# src/app/services/recipe_media_service.py
from __future__ import annotations

import logging
from typing import Callable, Optional

from src.app.domain.errors import RecipeAccessDeniedError, RecipeNotFoundError
from src.app.domain.models import Platform
from src.app.infra.db.base import RecipeRepository
from src.services import media_lookup

logger = logging.getLogger(__name__)


def _platform(value: object) -> Platform:
    try:
        return Platform(value)
    except ValueError:
        return Platform.OTHER


class RecipeMediaService:
    """Re-scrapes media links stored on a saved recipe once the CDN copies expire."""

    def __init__(
        self,
        recipes: RecipeRepository,
        thumbnail_lookup: Callable[[str, Platform], Optional[str]] = media_lookup.fresh_thumbnail,
    ):
        self._recipes = recipes
        self._thumbnail_lookup = thumbnail_lookup

    def refresh_thumbnail(self, recipe_id: str, user_id: str) -> Optional[str]:
        """
        Look up a fresh thumbnail for the recipe's source video and store it.

        Returns the new URL, or None when the platform gave nothing back.
        Raises RecipeNotFoundError, or RecipeAccessDeniedError when user_id
        does not own the recipe.
        """
        row = self._recipes.get_recipe(recipe_id)
        if row is None:
            raise RecipeNotFoundError(recipe_id)
        if row.get("owner_id") != user_id:
            raise RecipeAccessDeniedError(recipe_id, user_id)

        source = row.get("source") or {}
        source_url = source.get("url")
        if not source_url:
            return None

        platform = _platform(source.get("platform"))
        thumbnail_url = self._thumbnail_lookup(source_url, platform)
        if not thumbnail_url:
            logger.info("No thumbnail found: recipe=%s platform=%s", recipe_id, platform.value)
            return None

        self._recipes.update_thumbnail(recipe_id, thumbnail_url)
        return thumbnail_url
