# src/app/services/extraction_pipeline.py
"""
Extraction job orchestrator.

Runs one job through metadata, transcript, language resolution, the
raw-extraction cache and recipe assembly. Synchronous; the extraction
queue runs it in a worker thread. Every failure ends up as job
state; process() never raises for a job it was handed.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from src.app.config import settings
from src.app.domain.errors import (
    ExtractionError,
    InvalidJobTransitionError,
    JobNotFoundError,
    JobRepositoryError,
    TranscriptUnavailableError,
)
from src.app.domain.models import (
    TARGET_ORIGINAL,
    CachedMetadata,
    ExtractionJob,
    ExtractionStatus,
    Platform,
    TranscriptResult,
)
from src.app.infra.db.base import ExtractionJobRepository
from src.app.services.extraction_cache import ExtractionCache
from src.app.services.metadata_service import MetadataService
from src.app.services.recipe_assembler import RecipeAssembler
from src.app.services.usage_service import UsageService
from src.services import fetcher, language, media_lookup
from src.services.notifier import NullNotifier, Notifier

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR = "An unexpected error occurred"
TRANSCRIPT_ERROR = "Could not fetch transcript"
# description language must be this certain before it steers the transcript
HINT_MIN_CONFIDENCE = 0.9
TERMINAL_WRITE_ATTEMPTS = 3


class ExtractionPipeline:
    def __init__(
        self,
        jobs: ExtractionJobRepository,
        metadata: MetadataService,
        extraction_cache: ExtractionCache,
        assembler: RecipeAssembler,
        usage: UsageService,
        notifier: Optional[Notifier] = None,
        fetch_transcript: Callable[..., TranscriptResult] = fetcher.fetch_transcript,
        detect_language: Callable[..., str] = language.detect,
        thumbnail_lookup: Callable[[str, Platform], Optional[str]] = media_lookup.fresh_thumbnail,
        avatar_lookup: Callable[[str, Platform], Optional[str]] = media_lookup.fresh_author_avatar,
        default_language: str = settings.DEFAULT_LANGUAGE,
        retry_delay: float = 0.5,
    ):
        self._jobs = jobs
        self._metadata = metadata
        self._cache = extraction_cache
        self._assembler = assembler
        self._usage = usage
        self._notifier = notifier or NullNotifier()
        self._fetch_transcript = fetch_transcript
        self._detect_language = detect_language
        self._thumbnail_lookup = thumbnail_lookup
        self._avatar_lookup = avatar_lookup
        self.default_language = default_language
        self._retry_delay = retry_delay

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def process_job_id(self, job_id: str) -> ExtractionJob:
        """
        Load a PENDING job and run it.

        Raises:
            JobNotFoundError: no job with this id
            InvalidJobTransitionError: the job already left PENDING
        """
        job = self._jobs.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.status != ExtractionStatus.PENDING:
            raise InvalidJobTransitionError(job_id, job.status.value, ExtractionStatus.FETCHING_TRANSCRIPT.value)
        return self.process(job)

    def process(self, job: ExtractionJob) -> ExtractionJob:
        logger.info(
            "Extraction started: job=%s url=%s platform=%s target=%s",
            job.id,
            job.normalized_url,
            job.platform.value,
            job.target_language,
        )
        try:
            self._run(job)
        except ExtractionError as error:
            self._fail(job, str(error))
        except Exception as error:
            logger.exception("Extraction failed unexpectedly: job=%s", job.id)
            self._fail(job, str(error) or UNEXPECTED_ERROR)
        return job

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _run(self, job: ExtractionJob) -> None:
        self._advance(job, ExtractionStatus.FETCHING_TRANSCRIPT, 10, "Checking video details...")
        metadata = self._metadata.get_or_fetch_metadata(job.normalized_url, job.platform, job.source_url)
        description = metadata.metadata.description if metadata else None

        self._advance(job, ExtractionStatus.FETCHING_TRANSCRIPT, 20, "Fetching video transcript...")
        self._notify_status(job, "Fetching video transcript...")
        hint = self.transcript_language_hint(job.target_language, description)

        try:
            transcript = self._fetch_transcript(job.source_url, job.platform, hint)
        except TranscriptUnavailableError as error:
            logger.warning("Transcript unavailable: job=%s kind=%s error=%s", job.id, error.kind, error)
            self._fail(job, str(error) or TRANSCRIPT_ERROR)
            return

        if transcript is None or not (transcript.text or "").strip():
            self._fail(job, TRANSCRIPT_ERROR)
            return

        self._advance(job, ExtractionStatus.FETCHING_TRANSCRIPT, 30, "Video transcript received")

        detected = self._source_language(transcript)
        target = language.effective_target_language(job.target_language, detected, self.default_language)
        logger.info(
            "Language resolved: job=%s detected=%s requested=%s effective=%s",
            job.id,
            detected,
            job.target_language,
            target,
        )

        self._advance(job, ExtractionStatus.ANALYZING, 40, "Checking extraction cache...")
        self._notify_status(job, "Analyzing recipe...")

        outcome = self._cache.get_or_extract(
            normalized_url=job.normalized_url,
            target_language=target,
            transcript=transcript.text,
            description=description,
            detected_language=detected,
            on_miss=lambda: self._advance(job, ExtractionStatus.ANALYZING, 50, "Analyzing recipe with AI..."),
        )

        message = "Using cached extraction..." if outcome.from_cache else "Recipe extracted, saving..."
        self._advance(job, ExtractionStatus.ANALYZING, 80, message)

        metadata = self._metadata.get_cached(job.normalized_url) or metadata
        thumbnail_url, avatar_url = self._media_urls(job, metadata)

        record, recipe_id = self._assembler.persist(job, outcome, metadata, thumbnail_url, avatar_url)

        job.complete(recipe_id)
        self._save_terminal(job)
        logger.info("Extraction completed: job=%s recipe=%s from_cache=%s", job.id, recipe_id, outcome.from_cache)

        self._record_usage(job)
        if job.telegram_chat_id is not None:
            self._notifier.send_recipe_preview(job.telegram_chat_id, record, recipe_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def transcript_language_hint(self, requested: str, description: Optional[str]) -> Optional[str]:
        if requested == TARGET_ORIGINAL:
            detected = self._detect_language(description, min_confidence=HINT_MIN_CONFIDENCE) if description else None
            return detected if language.is_known(detected) else None
        if requested == self.default_language:
            return self.default_language
        return None

    def _source_language(self, transcript: TranscriptResult) -> str:
        detected = self._detect_language(transcript.text)
        if language.is_known(detected):
            return detected
        if language.is_known(transcript.language):
            return transcript.language
        return language.UNKNOWN

    def _media_urls(self, job: ExtractionJob, metadata: Optional[CachedMetadata]) -> tuple[Optional[str], Optional[str]]:
        video = metadata.metadata if metadata else None
        cached_thumbnail = video.media.thumbnail_url if video and video.media else None
        cached_avatar = video.author.avatar_url if video and video.author else None

        thumbnail_url = self._thumbnail_lookup(job.source_url, job.platform) or cached_thumbnail
        avatar_url = self._avatar_lookup(job.source_url, job.platform) or cached_avatar
        return thumbnail_url, avatar_url

    def _advance(self, job: ExtractionJob, status: ExtractionStatus, progress: int, message: str) -> None:
        job.advance(status, progress, message)
        self._jobs.update_job(job)
        logger.debug("Job progress: job=%s status=%s progress=%d", job.id, status.value, job.progress)

    def _record_usage(self, job: ExtractionJob) -> None:
        try:
            self._usage.record_extraction(job.user_id)
        except Exception:
            logger.exception("Usage increment failed: job=%s user=%s", job.id, job.user_id)

    def _notify_status(self, job: ExtractionJob, message: str) -> None:
        if job.telegram_chat_id is not None:
            self._notifier.send_status(job.telegram_chat_id, message)

    def _save_terminal(self, job: ExtractionJob) -> None:
        """Persist a completed or failed job, retrying repository errors."""
        for attempt in range(1, TERMINAL_WRITE_ATTEMPTS + 1):
            try:
                self._jobs.update_job(job)
                return
            except JobRepositoryError as error:
                logger.warning(
                    "Terminal job write failed: job=%s status=%s attempt=%d error=%s",
                    job.id,
                    job.status.value,
                    attempt,
                    error,
                )
                if attempt == TERMINAL_WRITE_ATTEMPTS:
                    raise
                time.sleep(self._retry_delay * attempt)

    def _fail(self, job: ExtractionJob, error: str) -> None:
        if job.is_terminal:
            # in-memory state is final but the stored row may still be mid-run
            logger.error("Error after job reached %s: job=%s error=%s", job.status.value, job.id, error)
            try:
                self._save_terminal(job)
            except Exception:
                logger.exception("Could not record final job state: job=%s status=%s", job.id, job.status.value)
            return

        job.fail(error)
        logger.warning("Extraction failed: job=%s progress=%d error=%s", job.id, job.progress, job.error)
        try:
            self._save_terminal(job)
        except Exception:
            logger.exception("Could not record job failure: job=%s", job.id)

        if job.telegram_chat_id is not None:
            self._notifier.send_error(job.telegram_chat_id, job.error)


_PIPELINE: Optional[ExtractionPipeline] = None
_PIPELINE_LOCK = threading.Lock()


def build_pipeline() -> ExtractionPipeline:
    from src.app.infra.db.supabase_cache_repo import (
        SupabaseAuthorRepository,
        SupabaseMetadataCacheRepository,
        SupabaseRawExtractionRepository,
    )
    from src.app.infra.db.supabase_jobs_repo import SupabaseExtractionJobRepository
    from src.app.infra.db.supabase_recipes_repo import SupabaseRecipeRepository, SupabaseUsageRepository
    from src.services.notifier import build_notifier
    from src.services.recipe_extractor import RecipeExtractor

    recipes = SupabaseRecipeRepository()
    return ExtractionPipeline(
        jobs=SupabaseExtractionJobRepository(),
        metadata=MetadataService(SupabaseMetadataCacheRepository(), SupabaseAuthorRepository(), recipes),
        extraction_cache=ExtractionCache(SupabaseRawExtractionRepository(), RecipeExtractor()),
        assembler=RecipeAssembler(recipes),
        usage=UsageService(SupabaseUsageRepository()),
        notifier=build_notifier(),
    )


def get_pipeline() -> ExtractionPipeline:
    global _PIPELINE
    # worker threads share one pipeline so they share its SingleFlight
    with _PIPELINE_LOCK:
        if _PIPELINE is None:
            _PIPELINE = build_pipeline()
    return _PIPELINE
