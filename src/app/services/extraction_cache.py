# src/app/services/extraction_cache.py
"""
Raw-extraction cache in front of the recipe extractor.

The model is called at most once per (normalized URL, effective target
language). A cache hit hands back the stored draft unchanged.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from src.app.domain.errors import CacheRepositoryError
from src.app.domain.models import RawExtraction
from src.app.infra.db.base import RawExtractionRepository
from src.services import language
from src.services.persist_models import RecipeDraft
from src.services.recipe_extractor import RecipeExtractor

logger = logging.getLogger(__name__)


@dataclass
class ExtractionOutcome:
    draft: RecipeDraft
    confidence: float
    detected_language: str
    from_cache: bool


class SingleFlight:
    """Per-key locks so concurrent jobs in this process share one model call."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], list] = {}

    @contextmanager
    def hold(self, key: tuple[str, str]) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class ExtractionCache:
    def __init__(
        self,
        repository: RawExtractionRepository,
        extractor: RecipeExtractor,
        detect_language: Callable[[str], str] = language.detect,
        single_flight: Optional[SingleFlight] = None,
    ):
        self._repo = repository
        self._extractor = extractor
        self._detect_language = detect_language
        self._single_flight = single_flight or SingleFlight()

    def _lookup(self, normalized_url: str, target_language: str) -> Optional[RawExtraction]:
        try:
            return self._repo.get_extraction(normalized_url, target_language)
        except CacheRepositoryError as error:
            logger.warning("Raw extraction lookup failed, treating as miss: url=%s error=%s", normalized_url, error)
            return None

    def get_or_extract(
        self,
        normalized_url: str,
        target_language: str,
        transcript: str,
        description: Optional[str] = None,
        detected_language: Optional[str] = None,
        on_miss: Optional[Callable[[], None]] = None,
    ) -> ExtractionOutcome:
        """
        Stored draft for the key, or a fresh extraction that is stored first.

        Raises the extractor's ExtractionError subclasses. Nothing is cached
        when extraction fails.
        """
        with self._single_flight.hold((normalized_url, target_language)):
            cached = self._lookup(normalized_url, target_language)
            if cached is not None:
                logger.info("Raw extraction cache hit: url=%s target=%s", normalized_url, target_language)
                return ExtractionOutcome(
                    draft=RecipeDraft.model_validate(cached.recipe),
                    confidence=cached.confidence,
                    detected_language=cached.detected_language,
                    from_cache=True,
                )

            if on_miss is not None:
                on_miss()

            detected = detected_language or self._detect_language(transcript)
            result = self._extractor.extract(
                transcript=transcript,
                target_language=target_language,
                detected_language=detected,
                description=description,
            )

            try:
                self._repo.save_extraction(
                    RawExtraction(
                        normalized_url=normalized_url,
                        target_language=target_language,
                        detected_language=detected,
                        recipe=result.draft.to_payload(),
                        confidence=result.confidence,
                    )
                )
            except CacheRepositoryError as error:
                logger.warning("Raw extraction not cached: url=%s error=%s", normalized_url, error)

            return ExtractionOutcome(
                draft=result.draft,
                confidence=result.confidence,
                detected_language=detected,
                from_cache=False,
            )
