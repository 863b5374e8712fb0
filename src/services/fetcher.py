from __future__ import annotations

import logging
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path

import httpx
import yt_dlp
from youtube_transcript_api import (
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    TranscriptsDisabled,
    VideoUnavailable,
    YouTubeTranscriptApi,
)

from src.app.domain.errors import TranscriptUnavailableError
from src.app.domain.models import Platform, TranscriptResult, VideoAuthor, VideoMedia, VideoMetadata
from src.services import transcribe
from src.services.platforms import extract_youtube_video_id
from .errors import (
    AudioUnavailableError,
    FetchFailedError,
    NetworkTimeoutError,
    PrivateOrUnavailableError,
    RateLimitedError,
)

logger = logging.getLogger(__name__)

VTT_TAG_PATTERN = re.compile(r"<[^>]+>")
WHITESPACE_PATTERN = re.compile(r"\s+")
VTT_SKIP_PREFIXES = ("NOTE", "STYLE", "REGION", "WEBVTT", "Kind:", "Language:")
RATE_LIMIT_MARKERS = ("429", "too many requests", "rate-limit", "rate limit")

NOT_FOUND_MESSAGE = (
    "Could not find transcript for this video. "
    "The video may not have captions or may not be accessible."
)
RATE_LIMITED_MESSAGE = "Rate limit exceeded. Please wait a minute and try again."
PRIVATE_MESSAGE = "This video is private or requires login."

# Username keys in yt-dlp info, per platform, in order of preference.
_USERNAME_KEYS = {
    Platform.YOUTUBE: ("uploader_id", "channel_id", "uploader"),
    Platform.TIKTOK: ("uploader", "uploader_id", "creator"),
    Platform.INSTAGRAM: ("channel", "uploader_id", "uploader"),
}


@dataclass(frozen=True)
class CaptionSource:
    url: str
    language: str
    extension: str


def _clean_string(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _safe_numeric(value: object, default: int | float = 0) -> int | float:
    return value if isinstance(value, (int, float)) else default


def _extract_thumbnail(info: dict | None) -> str | None:
    if not isinstance(info, dict):
        return None

    direct_url = _clean_string(info.get("thumbnail")) or _clean_string(info.get("thumbnail_url"))
    if direct_url:
        return direct_url

    return _find_best_thumbnail_from_list(info.get("thumbnails"))


def _find_best_thumbnail_from_list(thumbnails: list | None) -> str | None:
    if not isinstance(thumbnails, list):
        return None

    scored_thumbnails = [
        (_score_thumbnail(entry), _clean_string(entry.get("url")))
        for entry in thumbnails
        if isinstance(entry, dict) and _clean_string(entry.get("url"))
    ]

    if not scored_thumbnails:
        return None

    scored_thumbnails.sort(reverse=True, key=lambda x: x[0])
    return scored_thumbnails[0][1]


def _score_thumbnail(entry: dict) -> tuple[int | float, int | float, int | float]:
    return (
        _safe_numeric(entry.get("preference")),
        _safe_numeric(entry.get("width")),
        _safe_numeric(entry.get("height")),
    )


def _create_ydl_options(download: bool = False, audio_only: bool = False) -> dict:
    base_opts = {
        "quiet": True,
        "noprogress": True,
        "check_formats": False,
        "extractor_args": {"youtube": {"player_client": ["android"]}},
    }

    if not download:
        base_opts["skip_download"] = True
        return base_opts

    if audio_only:
        base_opts["format"] = "bestaudio/best"
        base_opts["postprocessors"] = [{
            "key": "FFmpegExtractAudio",
            "preferredcodec": "m4a",
            "preferredquality": "192",
        }]

    return base_opts


def _is_rate_limited(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


def _check_video_availability(info: dict) -> None:
    is_private = info.get("is_private")
    availability = info.get("availability")
    if is_private or availability in {"private", "needs_auth"}:
        raise PrivateOrUnavailableError(PRIVATE_MESSAGE)


def _extract_info(url: str) -> dict:
    try:
        with yt_dlp.YoutubeDL(_create_ydl_options()) as ydl:
            info = ydl.extract_info(url, download=False)
    except yt_dlp.utils.DownloadError as error:
        if _is_rate_limited(error):
            raise RateLimitedError(RATE_LIMITED_MESSAGE) from error
        raise FetchFailedError(f"Could not load video: {error}") from error
    except (ConnectionError, TimeoutError) as error:
        raise FetchFailedError(f"Network error while loading video: {error}") from error

    if not info:
        raise PrivateOrUnavailableError(PRIVATE_MESSAGE)

    _check_video_availability(info)
    return info


# =============================================================================
# Metadata provider
# =============================================================================

def _author_username(info: dict, platform: Platform) -> str | None:
    for key in _USERNAME_KEYS.get(platform, ("uploader_id", "uploader")):
        value = _clean_string(info.get(key))
        if value:
            return value.lstrip("@")
    return None


def _metadata_from_info(info: dict, platform: Platform) -> VideoMetadata:
    username = _author_username(info, platform)
    display_name = _clean_string(info.get("uploader")) or _clean_string(info.get("channel"))

    author = None
    if username or display_name:
        author = VideoAuthor(
            username=username,
            display_name=display_name,
            avatar_url=None,
            verified=info.get("channel_is_verified"),
        )

    tags = [tag for tag in (info.get("tags") or []) if isinstance(tag, str) and tag.strip()]

    return VideoMetadata(
        title=_clean_string(info.get("title")),
        description=_clean_string(info.get("description")),
        author=author,
        media=VideoMedia(
            type="video",
            duration=info.get("duration") if isinstance(info.get("duration"), (int, float)) else None,
            thumbnail_url=_extract_thumbnail(info),
            url=_clean_string(info.get("webpage_url")),
        ),
        tags=tags,
    )


def fetch_metadata(url: str, platform: Platform) -> VideoMetadata:
    """Title, description, author and media for a video. Raises ServiceError."""
    info = _extract_info(url)
    metadata = _metadata_from_info(info, platform)
    logger.info(
        "Metadata fetched: url=%s title=%r author=%s",
        url,
        metadata.title,
        metadata.author.username if metadata.author else None,
    )
    return metadata


# =============================================================================
# Transcript provider
# =============================================================================

def _base_language(code: str | None) -> str:
    return (code or "").split("-")[0].lower()


def _pick_caption_source(submap: dict | None, language_hint: str | None) -> CaptionSource | None:
    if not submap:
        return None

    languages = list(submap.keys())
    if language_hint:
        # eng-US style keys show up on some extractors
        preferred = [
            lang for lang in languages
            if _base_language(lang) in (language_hint, {"en": "eng"}.get(language_hint, ""))
        ]
        languages = preferred + [lang for lang in languages if lang not in preferred]

    for lang in languages:
        vtt_url = _find_vtt_entry(submap.get(lang) or [])
        if vtt_url:
            return CaptionSource(url=vtt_url, language=lang, extension="vtt")

    return None


def _find_vtt_entry(entries: list) -> str | None:
    for item in entries:
        if item.get("ext") == "vtt" and item.get("url"):
            return item.get("url")
    return None


def _is_vtt_content_line(line: str) -> bool:
    if not line:
        return False
    if line.startswith(VTT_SKIP_PREFIXES):
        return False
    if "-->" in line:
        return False
    if line.isdigit():
        return False
    return True


def _vtt_to_plain_text(content: str) -> str:
    in_note_block = False
    text_lines: list[str] = []

    for raw_line in content.splitlines():
        stripped = raw_line.strip()

        if in_note_block:
            if not stripped:
                in_note_block = False
            continue

        if stripped.startswith("NOTE"):
            in_note_block = True
            continue

        if not _is_vtt_content_line(stripped):
            continue

        cleaned = VTT_TAG_PATTERN.sub("", stripped).strip()
        # auto captions repeat the previous cue line
        if cleaned and (not text_lines or text_lines[-1] != cleaned):
            text_lines.append(cleaned)

    joined = " ".join(text_lines)
    return WHITESPACE_PATTERN.sub(" ", joined).strip()


def _download_vtt_as_text(url: str, timeout: float = 15.0) -> str:
    try:
        with httpx.Client(timeout=timeout, follow_redirects=True) as client:
            response = client.get(url)
            response.raise_for_status()
            return _vtt_to_plain_text(response.text)
    except httpx.TimeoutException as error:
        raise NetworkTimeoutError(url, timeout) from error
    except httpx.HTTPError as error:
        raise FetchFailedError(f"HTTP error downloading VTT: {error}") from error


def _caption_transcript(info: dict, language_hint: str | None) -> TranscriptResult | None:
    for key in ("subtitles", "automatic_captions"):
        source = _pick_caption_source(info.get(key), language_hint)
        if not source:
            continue

        try:
            text = _download_vtt_as_text(source.url)
        except (NetworkTimeoutError, FetchFailedError) as error:
            logger.warning("Caption download failed: lang=%s error=%s", source.language, error)
            continue

        if text:
            return TranscriptResult(text=text, language=_base_language(source.language), source="subtitles")

    return None


def _list_transcripts(video_id: str):
    return YouTubeTranscriptApi().list(video_id)


def _pick_youtube_transcript(transcript_list, language_hint: str | None):
    transcripts = list(transcript_list)
    if not transcripts:
        return None

    if language_hint:
        for candidate in transcripts:
            if _base_language(candidate.language_code) == language_hint:
                return candidate

    # auto-generated tracks are in the spoken language
    generated = [t for t in transcripts if getattr(t, "is_generated", False)]
    return (generated or transcripts)[0]


def _snippets_to_text(fetched) -> str:
    data = fetched.to_raw_data() if hasattr(fetched, "to_raw_data") else fetched
    parts = [item.get("text", "").strip() for item in data if item.get("text")]
    return WHITESPACE_PATTERN.sub(" ", " ".join(parts)).strip()


def _youtube_api_transcript(url: str, language_hint: str | None) -> TranscriptResult | None:
    video_id = extract_youtube_video_id(url)
    if not video_id:
        return None

    try:
        transcript = _pick_youtube_transcript(_list_transcripts(video_id), language_hint)
        if transcript is None:
            return None
        text = _snippets_to_text(transcript.fetch())
    except VideoUnavailable as error:
        raise TranscriptUnavailableError(NOT_FOUND_MESSAGE, TranscriptUnavailableError.NOT_FOUND) from error
    except (TranscriptsDisabled, NoTranscriptFound):
        return None
    except CouldNotRetrieveTranscript as error:
        logger.warning("YouTube transcript API failed: video=%s error=%s", video_id, type(error).__name__)
        return None
    except (ConnectionError, TimeoutError) as error:
        logger.warning("Network error fetching transcript: %s", error)
        return None

    if not text:
        return None
    return TranscriptResult(text=text, language=_base_language(transcript.language_code), source="transcript_api")


def download_audio(url: str, target_dir: Path) -> str | None:
    opts = _create_ydl_options(download=True, audio_only=True)
    opts["outtmpl"] = str(target_dir / "%(id)s.%(ext)s")

    try:
        with yt_dlp.YoutubeDL(opts) as ydl:
            info_audio = ydl.extract_info(url, download=True)
    except yt_dlp.utils.DownloadError as error:
        raise AudioUnavailableError(f"Error downloading audio: {error}") from error
    except (ConnectionError, TimeoutError) as error:
        raise AudioUnavailableError(f"Network error downloading audio: {error}") from error

    return _extract_audio_filepath(info_audio)


def _extract_audio_filepath(info: dict) -> str | None:
    requested = info.get("requested_downloads")
    if requested:
        first = requested[0]
        return first.get("filepath") or first.get("filename")
    return info.get("filepath") or info.get("_filename")


def _audio_transcript(url: str, language_hint: str | None) -> TranscriptResult | None:
    if not transcribe.is_available():
        return None

    with tempfile.TemporaryDirectory(prefix="recipe-audio-") as tmp:
        try:
            audio_path = download_audio(url, Path(tmp))
        except AudioUnavailableError as error:
            logger.warning("Audio fallback unavailable: url=%s error=%s", url, error)
            return None
        if not audio_path:
            return None
        text, language = transcribe.transcribe_audio(audio_path, language=language_hint)

    if not text:
        return None
    return TranscriptResult(text=text, language=_base_language(language), source="audio")


def fetch_transcript(url: str, platform: Platform, language_hint: str | None = None) -> TranscriptResult:
    """
    Transcript text for a video.

    Tries the YouTube transcript API, then platform captions via yt-dlp,
    then (when enabled) local audio transcription.
    Raises TranscriptUnavailableError with a user-facing message.
    """
    if platform == Platform.YOUTUBE:
        result = _youtube_api_transcript(url, language_hint)
        if result:
            return result

    try:
        info = _extract_info(url)
    except RateLimitedError as error:
        raise TranscriptUnavailableError(str(error), TranscriptUnavailableError.RATE_LIMITED) from error
    except PrivateOrUnavailableError as error:
        raise TranscriptUnavailableError(str(error), TranscriptUnavailableError.NOT_FOUND) from error
    except FetchFailedError as error:
        raise TranscriptUnavailableError(str(error), TranscriptUnavailableError.OTHER) from error

    result = _caption_transcript(info, language_hint) or _audio_transcript(url, language_hint)
    if result:
        return result

    raise TranscriptUnavailableError(NOT_FOUND_MESSAGE, TranscriptUnavailableError.NOT_FOUND)
