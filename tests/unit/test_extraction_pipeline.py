from __future__ import annotations

import dataclasses
import json
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional
from unittest.mock import patch

import pytest

from conftest import (
    AuthorRepositoryStub,
    GeminiClientStub,
    JobRepositoryStub,
    MetadataCacheStub,
    NotifierStub,
    RawExtractionStub,
    RecipeRepositoryStub,
    UsageRepositoryStub,
    make_metadata,
    make_transcript,
)
from src.app.domain.errors import (
    InvalidJobTransitionError,
    JobNotFoundError,
    JobRepositoryError,
    TranscriptUnavailableError,
)
from src.app.domain.models import ExtractionJob, ExtractionStatus, Platform
from src.app.services import extraction_pipeline
from src.app.services.extraction_cache import ExtractionCache
from src.app.services.extraction_pipeline import ExtractionPipeline
from src.app.services.metadata_service import MetadataService
from src.app.services.recipe_assembler import RecipeAssembler
from src.app.services.usage_service import UsageService
from src.services.errors import FetchFailedError
from src.services.fetcher import NOT_FOUND_MESSAGE
from src.services.recipe_extractor import RecipeExtractor

URL = "https://www.tiktok.com/@pastachef/video/7312345678901234567"


class TranscriptStub:
    def __init__(self, result=None, error: Optional[Exception] = None) -> None:
        self.result = result or make_transcript()
        self.error = error
        self.calls: list[tuple[str, Platform, Optional[str]]] = []

    def __call__(self, url: str, platform: Platform, language_hint: Optional[str] = None):
        self.calls.append((url, platform, language_hint))
        if self.error:
            raise self.error
        return self.result


class DetectorStub:
    """Fixed answer for transcripts, optional separate answer for descriptions."""

    def __init__(self, transcript_language: str = "en", description_language: str = "unknown") -> None:
        self.transcript_language = transcript_language
        self.description_language = description_language

    def __call__(self, text, min_confidence: float = 0.0) -> str:
        return self.description_language if min_confidence >= 0.9 else self.transcript_language


class FailingMetadataFetch:
    def __call__(self, url: str, platform: Platform):
        raise FetchFailedError("provider down")


class Harness:
    def __init__(
        self,
        gemini: Optional[GeminiClientStub] = None,
        transcript: Optional[TranscriptStub] = None,
        detector: Optional[DetectorStub] = None,
        description: Optional[str] = None,
        usage: Optional[UsageRepositoryStub] = None,
        jobs: Optional[JobRepositoryStub] = None,
    ) -> None:
        self.jobs = jobs or JobRepositoryStub()
        self.metadata_cache = MetadataCacheStub()
        self.authors = AuthorRepositoryStub()
        self.raw = RawExtractionStub()
        self.recipes = RecipeRepositoryStub()
        self.usage = usage or UsageRepositoryStub()
        self.gemini = gemini or GeminiClientStub()
        self.transcript = transcript or TranscriptStub()
        self.notifier = NotifierStub()
        self.metadata_fetches = 0

        def fetch_metadata(url, platform):
            self.metadata_fetches += 1
            return make_metadata(description)

        self.pipeline = ExtractionPipeline(
            jobs=self.jobs,
            metadata=MetadataService(
                self.metadata_cache,
                self.authors,
                self.recipes,
                fetch_metadata=fetch_metadata,
                avatar_lookup=lambda url, platform: None,
            ),
            extraction_cache=ExtractionCache(self.raw, RecipeExtractor(client=self.gemini)),
            assembler=RecipeAssembler(self.recipes),
            usage=UsageService(self.usage),
            notifier=self.notifier,
            fetch_transcript=self.transcript,
            detect_language=detector or DetectorStub(),
            thumbnail_lookup=lambda url, platform: None,
            avatar_lookup=lambda url, platform: None,
            default_language="en",
            retry_delay=0,
        )

    def new_job(self, target_language: str = "original", user_id: str = "user-1", chat_id: Optional[int] = None) -> ExtractionJob:
        return self.jobs.create_job(user_id, URL, URL, Platform.TIKTOK, target_language, telegram_chat_id=chat_id)

    def run(self, **kwargs) -> ExtractionJob:
        job = self.new_job(**kwargs)
        return self.pipeline.process_job_id(job.id)

    def progress_of(self, job_id: str) -> list[int]:
        return [progress for jid, _, progress in self.jobs.history if jid == job_id]

    def statuses_of(self, job_id: str) -> list[str]:
        return [status for jid, status, _ in self.jobs.history if jid == job_id]


class TestSuccessfulExtraction:
    def test_completes_with_recipe(self) -> None:
        h = Harness()

        job = h.run()

        assert job.status == ExtractionStatus.COMPLETED
        assert job.progress == 100
        assert job.recipe_id == "recipe-1"
        assert job.error is None
        assert h.jobs.get_job(job.id).status == ExtractionStatus.COMPLETED
        record = h.recipes.recipes["recipe-1"]
        assert record.title == "Garlic Butter Pasta"
        assert record.source.author_username == "pastachef"
        assert record.extraction_metadata.from_cache is False

    def test_progress_sequence(self) -> None:
        h = Harness()

        job = h.run()

        assert h.progress_of(job.id) == [10, 20, 30, 40, 50, 80, 100]
        assert h.statuses_of(job.id)[-1] == "completed"

    def test_progress_is_monotonic(self) -> None:
        h = Harness()

        job = h.run()

        progress = h.progress_of(job.id)
        assert progress == sorted(progress)

    def test_usage_is_recorded_once(self) -> None:
        h = Harness()

        h.run()

        assert h.usage.used == 1

    def test_usage_failure_does_not_fail_job(self) -> None:
        h = Harness()

        def broken_increment(user_id):
            raise RuntimeError("rpc down")

        h.usage.increment_usage = broken_increment

        job = h.run()

        assert job.status == ExtractionStatus.COMPLETED

    def test_original_request_in_default_language_is_cached_under_default(self) -> None:
        h = Harness(detector=DetectorStub(transcript_language="en"))

        h.run(target_language="original")

        assert set(h.raw.entries) == {(URL, "en")}

    def test_original_request_in_other_language_stays_original(self) -> None:
        h = Harness(detector=DetectorStub(transcript_language="hu"))

        job = h.run(target_language="original")

        assert set(h.raw.entries) == {(URL, "original")}
        assert h.recipes.recipes[job.recipe_id].extraction_metadata.detected_language == "hu"


class TestCacheSharing:
    def test_second_job_reuses_extraction(self) -> None:
        h = Harness()

        first = h.run(user_id="user-1")
        second = h.run(user_id="user-2")

        assert len(h.gemini.calls) == 1
        assert h.metadata_fetches == 1
        assert first.recipe_id != second.recipe_id
        assert h.recipes.recipes[second.recipe_id].extraction_metadata.from_cache is True
        assert h.recipes.recipes[second.recipe_id].title == h.recipes.recipes[first.recipe_id].title

    def test_cache_hit_skips_analyzing_step(self) -> None:
        h = Harness()
        h.run()

        second = h.run()

        assert h.progress_of(second.id) == [10, 20, 30, 40, 80, 100]
        assert second.status_message == "Recipe extracted successfully"

    def test_explicit_target_matching_collapsed_original_shares_entry(self) -> None:
        h = Harness(detector=DetectorStub(transcript_language="en"))

        h.run(target_language="original")
        h.run(target_language="en")

        assert len(h.gemini.calls) == 1

    def test_different_target_calls_model_again(self) -> None:
        h = Harness()

        h.run(target_language="en")
        h.run(target_language="de")

        assert len(h.gemini.calls) == 2


class TestTranscriptLanguageHint:
    def test_original_uses_confident_description_language(self) -> None:
        h = Harness(detector=DetectorStub(description_language="hu"), description="Ma egy isteni rakott krumplit készítünk")

        h.run(target_language="original")

        assert h.transcript.calls[0][2] == "hu"

    def test_original_without_description(self) -> None:
        h = Harness()

        h.run(target_language="original")

        assert h.transcript.calls[0][2] is None

    def test_default_language_request(self) -> None:
        h = Harness()

        h.run(target_language="en")

        assert h.transcript.calls[0][2] == "en"

    def test_other_language_request(self) -> None:
        h = Harness()

        h.run(target_language="de")

        assert h.transcript.calls[0][2] is None


class TestFailures:
    def test_transcript_not_found(self) -> None:
        error = TranscriptUnavailableError(NOT_FOUND_MESSAGE, TranscriptUnavailableError.NOT_FOUND)
        h = Harness(transcript=TranscriptStub(error=error))

        job = h.run()

        assert job.status == ExtractionStatus.FAILED
        assert job.error == NOT_FOUND_MESSAGE
        assert job.progress == 20
        assert job.recipe_id is None
        assert h.gemini.calls == []
        assert h.usage.used == 0

    def test_empty_transcript(self) -> None:
        h = Harness(transcript=TranscriptStub(result=make_transcript(text="   ")))

        job = h.run()

        assert job.status == ExtractionStatus.FAILED
        assert job.error == "Could not fetch transcript"

    def test_not_a_recipe_leaves_cache_untouched(self) -> None:
        gemini = GeminiClientStub(json.dumps({"isRecipe": False, "reason": "This is a travel vlog."}))
        h = Harness(gemini=gemini)

        job = h.run()

        assert job.status == ExtractionStatus.FAILED
        assert job.error == "This is a travel vlog."
        assert job.progress == 50
        assert h.raw.entries == {}
        assert h.recipes.recipes == {}
        assert h.usage.used == 0

    def test_malformed_model_output(self) -> None:
        h = Harness(gemini=GeminiClientStub("definitely not json"))

        job = h.run()

        assert job.status == ExtractionStatus.FAILED
        assert job.error == "Failed to parse AI response"

    def test_unexpected_exception_becomes_failure(self) -> None:
        h = Harness(transcript=TranscriptStub(error=RuntimeError("socket closed")))

        job = h.run()

        assert job.status == ExtractionStatus.FAILED
        assert job.error == "socket closed"

    def test_exactly_one_of_recipe_or_error(self) -> None:
        ok = Harness().run()
        failed = Harness(gemini=GeminiClientStub("")).run()

        assert (ok.recipe_id is None) != (ok.error is None)
        assert (failed.recipe_id is None) != (failed.error is None)

    def test_metadata_failure_is_not_fatal(self) -> None:
        h = Harness()
        h.pipeline._metadata = MetadataService(
            h.metadata_cache,
            h.authors,
            fetch_metadata=FailingMetadataFetch(),
            avatar_lookup=lambda url, platform: None,
        )

        job = h.run()

        assert job.status == ExtractionStatus.COMPLETED
        assert h.recipes.recipes[job.recipe_id].source.author_username is None

    def test_unknown_job(self) -> None:
        h = Harness()

        with pytest.raises(JobNotFoundError):
            h.pipeline.process_job_id("missing")

    def test_job_already_processed(self) -> None:
        h = Harness()
        job = h.run()

        with pytest.raises(InvalidJobTransitionError):
            h.pipeline.process_job_id(job.id)


class FlakyJobRepository(JobRepositoryStub):
    """Stores copies, so the stored row only changes when a write succeeds."""

    def __init__(self, failing_status: ExtractionStatus, failures: int = 1) -> None:
        super().__init__()
        self.failing_status = failing_status
        self.failures = failures
        self.rejected = 0

    def get_job(self, job_id: str) -> Optional[ExtractionJob]:
        job = self.jobs.get(job_id)
        return dataclasses.replace(job) if job else None

    def update_job(self, job: ExtractionJob) -> None:
        if job.status == self.failing_status and self.rejected < self.failures:
            self.rejected += 1
            raise JobRepositoryError("update_job", "connection reset")
        super().update_job(dataclasses.replace(job))


class TestTerminalWrites:
    def test_completion_write_is_retried(self) -> None:
        h = Harness(jobs=FlakyJobRepository(ExtractionStatus.COMPLETED))

        job = h.run()

        stored = h.jobs.jobs[job.id]
        assert stored.status == ExtractionStatus.COMPLETED
        assert stored.progress == 100
        assert stored.recipe_id == job.recipe_id
        assert h.jobs.rejected == 1
        assert h.usage.used == 1

    def test_completion_write_recovered_after_retries_run_out(self) -> None:
        h = Harness(jobs=FlakyJobRepository(ExtractionStatus.COMPLETED, failures=3))

        job = h.run()

        stored = h.jobs.jobs[job.id]
        assert stored.status == ExtractionStatus.COMPLETED
        assert stored.recipe_id == job.recipe_id

    def test_failure_write_is_retried(self) -> None:
        h = Harness(
            jobs=FlakyJobRepository(ExtractionStatus.FAILED),
            transcript=TranscriptStub(error=TranscriptUnavailableError("No captions")),
        )

        job = h.run()

        stored = h.jobs.jobs[job.id]
        assert stored.status == ExtractionStatus.FAILED
        assert stored.error == "No captions"
        assert h.jobs.rejected == 1

    def test_repository_down_does_not_raise(self) -> None:
        h = Harness(jobs=FlakyJobRepository(ExtractionStatus.COMPLETED, failures=100))

        job = h.run()

        assert job.status == ExtractionStatus.COMPLETED
        assert h.jobs.rejected == 6


class TestNotifications:
    def test_success_sends_status_and_preview(self) -> None:
        h = Harness()

        job = h.run(chat_id=42)

        assert h.notifier.statuses == [(42, "Fetching video transcript..."), (42, "Analyzing recipe...")]
        assert h.notifier.previews == [(42, job.recipe_id)]
        assert h.notifier.errors == []

    def test_failure_sends_error(self) -> None:
        h = Harness(transcript=TranscriptStub(error=TranscriptUnavailableError("No captions")))

        h.run(chat_id=42)

        assert h.notifier.errors == [(42, "No captions")]
        assert h.notifier.previews == []

    def test_web_jobs_send_nothing(self) -> None:
        h = Harness()

        h.run()

        assert h.notifier.statuses == []
        assert h.notifier.previews == []


class TestGetPipeline:
    def test_built_once_across_threads(self) -> None:
        built: list[object] = []

        def slow_build() -> object:
            time.sleep(0.05)
            pipeline = object()
            built.append(pipeline)
            return pipeline

        with patch.object(extraction_pipeline, "_PIPELINE", None), \
                patch.object(extraction_pipeline, "build_pipeline", side_effect=slow_build):
            with ThreadPoolExecutor(max_workers=8) as pool:
                results = list(pool.map(lambda _: extraction_pipeline.get_pipeline(), range(8)))

        assert len(built) == 1
        assert all(result is built[0] for result in results)
