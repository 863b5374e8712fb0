# src/services/platforms.py
"""
URL classification for supported video platforms.

Each platform is one row in PLATFORM_RULES: the hosts it owns, the paths
that point at a single piece of content, and the message used to reject
every other page on those hosts (profiles, channels, playlists, settings).
Supporting a new platform means adding a row.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urlsplit, urlunsplit

import httpx

from src.app.domain.models import Platform

logger = logging.getLogger(__name__)

INVALID_URL_ERROR = "Invalid URL format"
UNSUPPORTED_PLATFORM_ERROR = "URL is not from a supported platform (TikTok, Instagram, or YouTube)"

_HOST_PREFIXES = ("www.", "m.")
_RESOLVE_TIMEOUT_SECONDS = 10.0

_YT_ID_RE = re.compile(
    r"(?:youtu\.be/|youtube\.com/(?:watch\?(?:.*&)?v=|embed/|shorts/|live/))([A-Za-z0-9_-]{6,})",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class PlatformDetection:
    platform: Platform
    is_valid: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class PlatformRule:
    platform: Platform
    hosts: tuple[str, ...]
    content_patterns: tuple[re.Pattern[str], ...]
    rejection: Callable[[str], str]
    short_link_patterns: tuple[re.Pattern[str], ...] = ()

    def owns_host(self, host: str) -> bool:
        return any(host == domain or host.endswith("." + domain) for domain in self.hosts)

    def matches_content(self, target: str) -> bool:
        return any(pattern.search(target) for pattern in self.content_patterns)

    def is_short_link(self, target: str) -> bool:
        return any(pattern.search(target) for pattern in self.short_link_patterns)


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


def _reject_social_profile(name: str, content_kind: str) -> Callable[[str], str]:
    def rejection(path: str) -> str:
        return (
            f"This appears to be a {name} profile, channel, or settings page. "
            f"Please provide a direct link to a {content_kind}."
        )
    return rejection


def _reject_youtube_page(path: str) -> str:
    if path.lower().startswith("/playlist"):
        return "This appears to be a YouTube playlist. Please provide a direct link to a single video."
    return "This appears to be a YouTube channel page. Please provide a direct link to a video or Short."


PLATFORM_RULES: tuple[PlatformRule, ...] = (
    PlatformRule(
        platform=Platform.TIKTOK,
        hosts=("tiktok.com",),
        content_patterns=_compile(
            r"^tiktok\.com/@[\w.-]+/video/\d+",
            r"^(?:vm|vt)\.tiktok\.com/\w+",
            r"^tiktok\.com/t/\w+",
        ),
        rejection=_reject_social_profile("TikTok", "video"),
        short_link_patterns=_compile(
            r"^(?:vm|vt)\.tiktok\.com/\w+",
            r"^tiktok\.com/t/\w+",
        ),
    ),
    PlatformRule(
        platform=Platform.INSTAGRAM,
        hosts=("instagram.com",),
        content_patterns=_compile(
            r"^instagram\.com/(?:p|reel|reels|tv)/[\w-]+",
            r"^instagram\.com/[\w.-]+/(?:p|reel|reels)/[\w-]+",
        ),
        rejection=_reject_social_profile("Instagram", "post or Reel"),
        short_link_patterns=_compile(r"^instagram\.com/share/(?:p|reel|reels)?/?[\w-]+"),
    ),
    PlatformRule(
        platform=Platform.YOUTUBE,
        hosts=("youtube.com", "youtu.be"),
        content_patterns=_compile(
            r"^youtube\.com/watch\?(?:.*&)?v=[\w-]+",
            r"^youtube\.com/shorts/[\w-]+",
            r"^youtube\.com/embed/[\w-]+",
            r"^youtube\.com/live/[\w-]+",
            r"^youtu\.be/[\w-]+",
        ),
        rejection=_reject_youtube_page,
    ),
)


def _split(url: str):
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
        return None
    return parts


def _bare_host(hostname: str) -> str:
    host = hostname.lower()
    for prefix in _HOST_PREFIXES:
        if host.startswith(prefix):
            return host[len(prefix):]
    return host


def _match_target(parts) -> str:
    target = f"{_bare_host(parts.hostname)}{parts.path}"
    if parts.query:
        target += f"?{parts.query}"
    return target


def _rule_for_host(host: str) -> Optional[PlatformRule]:
    for rule in PLATFORM_RULES:
        if rule.owns_host(host):
            return rule
    return None


def classify(url: str) -> PlatformDetection:
    """Validate a submitted URL and tell which platform it belongs to."""
    parts = _split(url)
    if parts is None:
        return PlatformDetection(platform=Platform.OTHER, is_valid=False, error=INVALID_URL_ERROR)

    target = _match_target(parts)
    for rule in PLATFORM_RULES:
        if rule.matches_content(target):
            return PlatformDetection(platform=rule.platform, is_valid=True)

    rule = _rule_for_host(_bare_host(parts.hostname))
    if rule is not None:
        return PlatformDetection(platform=rule.platform, is_valid=False, error=rule.rejection(parts.path or "/"))

    return PlatformDetection(platform=Platform.OTHER, is_valid=False, error=UNSUPPORTED_PLATFORM_ERROR)


def normalize(url: str) -> str:
    """Drop query string, fragment and trailing slash. Unparsable input is returned as-is."""
    parts = _split(url)
    if parts is None:
        return url

    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))


def extract_youtube_video_id(url: str) -> Optional[str]:
    match = _YT_ID_RE.search(url)
    return match.group(1) if match else None


def youtube_stable_thumbnail(url: str) -> Optional[str]:
    video_id = extract_youtube_video_id(url)
    if not video_id:
        return None
    return f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"


def _canonical_youtube_watch(parts) -> Optional[str]:
    # watch?v=<id> carries the video id in the query string, which
    # normalize() drops; rewrite to the path-based short form first.
    if _bare_host(parts.hostname) != "youtube.com" or parts.path.rstrip("/").lower() != "/watch":
        return None
    video_id = extract_youtube_video_id(urlunsplit(parts))
    return f"https://youtu.be/{video_id}" if video_id else None


def is_short_link(url: str) -> bool:
    parts = _split(url)
    if parts is None:
        return False
    target = _match_target(parts)
    return any(rule.is_short_link(target) for rule in PLATFORM_RULES)


def resolve(url: str, timeout: float = _RESOLVE_TIMEOUT_SECONDS) -> str:
    """
    Turn a submitted URL into the canonical normalized form used as cache key.

    Short links are expanded with a redirect-following HEAD request. Never
    raises: on network failure the normalized input is returned.
    """
    parts = _split(url)
    if parts is None:
        return normalize(url)

    canonical = _canonical_youtube_watch(parts)
    if canonical:
        return normalize(canonical)

    if not is_short_link(url):
        return normalize(url)

    try:
        with httpx.Client(timeout=timeout, follow_redirects=True) as client:
            response = client.head(url.strip())
        final_url = str(response.url)
    except httpx.HTTPError as error:
        logger.warning("Short link resolution failed: url=%s error=%s", url, error)
        return normalize(url)

    logger.debug("Short link resolved: %s -> %s", url, final_url)
    return normalize(final_url)
