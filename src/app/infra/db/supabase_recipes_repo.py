from __future__ import annotations

import logging

from supabase import Client

from src.app.config import settings
from src.app.deps import get_supabase
from src.app.domain.errors import JobRepositoryError, RecipeNotFoundError
from src.app.domain.models import UsageStatus
from src.app.infra.db.base import RecipeRepository, UsageRepository
from src.app.infra.db.rows import STORAGE_ERRORS, first_row, now_utc, safe_int, safe_str
from src.services.persist_models import RecipeRecord

logger = logging.getLogger(__name__)

FREE_PLAN_TIER = "free"


class SupabaseRecipeRepository(RecipeRepository):
    TABLE_NAME = "recipes"

    def __init__(self, client: Client | None = None):
        self._client = client or get_supabase()

    def create_recipe(self, record: RecipeRecord) -> str:
        row = record.to_row()
        now = now_utc().isoformat()
        row["created_at"] = now
        row["updated_at"] = now

        try:
            result = self._client.table(self.TABLE_NAME).insert(row).execute()
        except STORAGE_ERRORS as error:
            logger.error("Error creating recipe: owner=%s error=%s", record.owner_id, error)
            raise JobRepositoryError("create_recipe", str(error)) from error

        stored = first_row(result)
        if not stored or not stored.get("id"):
            raise JobRepositoryError("create_recipe", "insert returned no row")

        recipe_id = str(stored["id"])
        logger.info("Recipe created: id=%s owner=%s slug=%s", recipe_id, record.owner_id, record.slug)
        return recipe_id

    def find_recipe_id_by_source_url(self, user_id: str, normalized_url: str) -> str | None:
        result = (
            self._client.table(self.TABLE_NAME)
            .select("id")
            .eq("owner_id", user_id)
            .eq("source_url", normalized_url)
            .limit(1)
            .execute()
        )
        row = first_row(result)
        return safe_str(row.get("id")) if row else None

    def get_recipe(self, recipe_id: str) -> dict | None:
        result = self._client.table(self.TABLE_NAME).select("*").eq("id", recipe_id).limit(1).execute()
        return first_row(result)

    def find_source_url_by_author_id(self, author_id: str) -> str | None:
        result = (
            self._client.table(self.TABLE_NAME)
            .select("source")
            .eq("source->>authorId", author_id)
            .limit(1)
            .execute()
        )
        row = first_row(result)
        source = (row or {}).get("source") or {}
        return safe_str(source.get("url"))

    def update_author_avatar(self, author_id: str, avatar_url: str) -> int:
        result = (
            self._client.table(self.TABLE_NAME)
            .select("id, source")
            .eq("source->>authorId", author_id)
            .execute()
        )

        updated = 0
        for row in result.data or []:
            source = dict(row.get("source") or {})
            source["authorAvatarUrl"] = avatar_url
            self._client.table(self.TABLE_NAME).update(
                {"source": source, "updated_at": now_utc().isoformat()}
            ).eq("id", row["id"]).execute()
            updated += 1

        logger.info("Recipes author avatar updated: author=%s count=%d", author_id, updated)
        return updated

    def update_thumbnail(self, recipe_id: str, thumbnail_url: str) -> None:
        row = self.get_recipe(recipe_id)
        if row is None:
            raise RecipeNotFoundError(recipe_id)

        source = dict(row.get("source") or {})
        source["thumbnailUrl"] = thumbnail_url
        try:
            self._client.table(self.TABLE_NAME).update(
                {"source": source, "updated_at": now_utc().isoformat()}
            ).eq("id", recipe_id).execute()
        except STORAGE_ERRORS as error:
            logger.error("Error updating recipe thumbnail: id=%s error=%s", recipe_id, error)
            raise JobRepositoryError("update_thumbnail", str(error)) from error
        logger.info("Recipe thumbnail updated: id=%s", recipe_id)


class SupabaseUsageRepository(UsageRepository):
    TABLE_NAME = "subscriptions"

    def __init__(self, client: Client | None = None):
        self._client = client or get_supabase()

    def _get_or_create(self, user_id: str) -> dict:
        result = self._client.table(self.TABLE_NAME).select("*").eq("user_id", user_id).limit(1).execute()
        row = first_row(result)
        if row:
            return row

        now = now_utc().isoformat()
        defaults = {
            "user_id": user_id,
            "plan_tier": FREE_PLAN_TIER,
            "extractions_used": 0,
            "extractions_limit": settings.FREE_EXTRACTIONS_LIMIT,
            "created_at": now,
            "updated_at": now,
        }
        created = self._client.table(self.TABLE_NAME).upsert(defaults, on_conflict="user_id").execute()
        return first_row(created) or defaults

    def get_usage(self, user_id: str) -> UsageStatus:
        row = self._get_or_create(user_id)
        used = safe_int(row.get("extractions_used"))
        limit = safe_int(row.get("extractions_limit"), settings.FREE_EXTRACTIONS_LIMIT)
        return UsageStatus(
            allowed=used < limit,
            used=used,
            limit=limit,
            plan_tier=safe_str(row.get("plan_tier")),
        )

    def increment_usage(self, user_id: str) -> None:
        self._client.rpc("increment_extractions_used", {"p_user_id": user_id}).execute()
        logger.debug("Usage incremented: user=%s", user_id)
