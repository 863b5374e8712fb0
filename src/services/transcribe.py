"""
Speech-to-text fallback for videos that carry no captions at all.

faster-whisper is an optional extra. Without it (or with
AUDIO_TRANSCRIPTION_ENABLED off) the fetcher never downloads audio and the
transcript cascade ends at captions.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from src.app.config import settings

if TYPE_CHECKING:  # pragma: no cover
    from faster_whisper import WhisperModel

logger = logging.getLogger(__name__)

_model: Optional["WhisperModel"] = None
_load_failed = False


def _device() -> tuple[str, str]:
    """(device, compute_type) for WHISPER_DEVICE; "auto" asks ctranslate2 about CUDA."""
    choice = settings.WHISPER_DEVICE.lower()
    if choice == "cuda":
        return "cuda", "float16"
    if choice == "cpu":
        return "cpu", "int8"

    try:
        import ctranslate2

        if "float16" in ctranslate2.get_supported_compute_types("cuda"):
            return "cuda", "float16"
    except Exception as exc:
        logger.debug("CUDA check failed: error=%s", exc)
    return "cpu", "int8"


def _get_model() -> Optional["WhisperModel"]:
    global _model, _load_failed

    if _model is not None or _load_failed:
        return _model

    try:
        from faster_whisper import WhisperModel as _WhisperModel
    except ImportError:  # pragma: no cover - depends on the deploy
        _load_failed = True
        logger.info("faster-whisper not installed; audio transcription disabled")
        return None

    device, compute_type = _device()
    try:
        _model = _WhisperModel(settings.WHISPER_MODEL, device=device, compute_type=compute_type)
    except Exception as exc:  # pragma: no cover - model download or driver errors
        _load_failed = True
        logger.warning("Whisper model failed to load: model=%s device=%s error=%s", settings.WHISPER_MODEL, device, exc)
        return None

    logger.info("Whisper model loaded: model=%s device=%s compute_type=%s", settings.WHISPER_MODEL, device, compute_type)
    return _model


def is_available() -> bool:
    return settings.AUDIO_TRANSCRIPTION_ENABLED and _get_model() is not None


def transcribe_audio(path: str, language: str | None = None) -> tuple[str, str | None]:
    """
    Returns (text, detected_language). Empty text means no model or no speech.

    `language` is only a hint; Whisper's own detection wins when it reports one.
    """
    model = _get_model()
    if model is None:
        return "", None

    segments, info = model.transcribe(
        path,
        language=language,
        beam_size=settings.WHISPER_BEAM_SIZE,
        vad_filter=True,
        condition_on_previous_text=False,
    )
    text = " ".join(segment.text.strip() for segment in segments if segment.text.strip())
    return text, getattr(info, "language", None) or language
