# src/app/routers/providers.py
"""FastAPI dependency providers; tests swap them via app.dependency_overrides."""
from __future__ import annotations

from src.app.infra.db.base import ExtractionJobRepository, RecipeRepository
from src.app.infra.db.supabase_cache_repo import SupabaseAuthorRepository, SupabaseMetadataCacheRepository
from src.app.infra.db.supabase_jobs_repo import SupabaseExtractionJobRepository
from src.app.infra.db.supabase_recipes_repo import SupabaseRecipeRepository, SupabaseUsageRepository
from src.app.services.extraction_pipeline import ExtractionPipeline, get_pipeline
from src.app.services.metadata_service import MetadataService
from src.app.services.recipe_media_service import RecipeMediaService
from src.app.services.usage_service import UsageService
from src.services import extraction_queue
from src.services.extraction_queue import ExtractionQueue


def get_job_repo() -> ExtractionJobRepository:
    return SupabaseExtractionJobRepository()


def get_recipe_repo() -> RecipeRepository:
    return SupabaseRecipeRepository()


def get_usage_service() -> UsageService:
    return UsageService(SupabaseUsageRepository())


def get_metadata_service() -> MetadataService:
    return MetadataService(SupabaseMetadataCacheRepository(), SupabaseAuthorRepository(), SupabaseRecipeRepository())


def get_recipe_media_service() -> RecipeMediaService:
    return RecipeMediaService(SupabaseRecipeRepository())


def get_extraction_queue() -> ExtractionQueue:
    return extraction_queue.get_queue()


def get_extraction_pipeline() -> ExtractionPipeline:
    return get_pipeline()
