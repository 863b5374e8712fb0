# src/services/language.py
from __future__ import annotations

import logging

from langdetect import DetectorFactory, LangDetectException, detect_langs

from src.app.domain.models import TARGET_ORIGINAL

logger = logging.getLogger(__name__)

# langdetect is probabilistic; a fixed seed keeps results stable across runs.
DetectorFactory.seed = 0

UNKNOWN = "unknown"
MIN_DETECTION_CHARS = 20

LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "hu": "Hungarian",
    "de": "German",
    "fr": "French",
    "es": "Spanish",
    "it": "Italian",
    "pt": "Portuguese",
    "nl": "Dutch",
    "pl": "Polish",
    "ro": "Romanian",
    "cs": "Czech",
    "ru": "Russian",
    "uk": "Ukrainian",
    "ja": "Japanese",
    "ko": "Korean",
    "zh": "Chinese",
    "ar": "Arabic",
    "tr": "Turkish",
    "sq": "Albanian",
    UNKNOWN: "the same language as the transcript",
}

# langdetect emits a few region-qualified codes.
_DETECTOR_ALIASES = {
    "zh-cn": "zh",
    "zh-tw": "zh",
}


def _to_language_code(raw: str) -> str:
    code = _DETECTOR_ALIASES.get(raw.lower(), raw.lower())
    return code if code in LANGUAGE_NAMES else UNKNOWN


def detect(text: str | None, min_confidence: float = 0.0) -> str:
    """Best-guess language code for ``text``, or ``"unknown"``."""
    if not text or len(text.strip()) < MIN_DETECTION_CHARS:
        return UNKNOWN

    try:
        candidates = detect_langs(text)
    except LangDetectException as exc:
        logger.debug("Language detection failed: %s", exc)
        return UNKNOWN

    if not candidates:
        return UNKNOWN

    best = candidates[0]
    if best.prob < min_confidence:
        return UNKNOWN
    return _to_language_code(best.lang)


def is_known(code: str | None) -> bool:
    return bool(code) and code != UNKNOWN and code in LANGUAGE_NAMES


def language_display_name(code: str | None) -> str:
    if not code:
        return LANGUAGE_NAMES[UNKNOWN]
    return LANGUAGE_NAMES.get(code, code)


def effective_target_language(requested: str, detected: str, default: str) -> str:
    """
    Language bucket used as the raw-extraction cache key.

    Keeping the original language of a video that is already in the default
    language produces the same output as asking for the default language, so
    both requests share one bucket. Every other request is its own bucket.
    """
    if requested == TARGET_ORIGINAL and detected == default:
        return default
    return requested
