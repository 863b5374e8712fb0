"""
Fresh avatar and thumbnail lookups.

Provider metadata often carries signed CDN links that expire within hours,
so recipes are enriched with values scraped at save time. Every function
here returns None on failure; callers fall back to cached provider values.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx
from bs4 import BeautifulSoup

from src.app.config import settings
from src.app.domain.models import Platform
from src.services.platforms import youtube_stable_thumbnail

logger = logging.getLogger(__name__)

OEMBED_ENDPOINTS = {
    Platform.TIKTOK: "https://www.tiktok.com/oembed",
    Platform.YOUTUBE: "https://www.youtube.com/oembed",
    Platform.INSTAGRAM: "https://graph.facebook.com/v18.0/instagram_oembed",
}

_BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept-Language": "en-US,en;q=0.9",
}

# TikTok embeds page state as JSON in one of these script tags
_TIKTOK_STATE_SCRIPT_IDS = ("__UNIVERSAL_DATA_FOR_REHYDRATION__", "SIGI_STATE")


def _timeout() -> float:
    return settings.HTTP_TIMEOUT_SECONDS


def _get_text(url: str) -> Optional[str]:
    try:
        with httpx.Client(timeout=_timeout(), follow_redirects=True, headers=_BROWSER_HEADERS) as client:
            response = client.get(url)
            response.raise_for_status()
            return response.text
    except httpx.HTTPError as error:
        logger.debug("Page fetch failed: url=%s error=%s", url, error)
        return None


def _page(url: str) -> Optional[BeautifulSoup]:
    text = _get_text(url)
    return BeautifulSoup(text, "html.parser") if text else None


def _og_image(soup: BeautifulSoup) -> Optional[str]:
    tag = soup.find("meta", property="og:image") or soup.find("meta", attrs={"name": "og:image"})
    content = tag.get("content") if tag else None
    return content.strip() if content and content.strip() else None


def _find_key(data: Any, key: str) -> Any:
    """First value stored under ``key`` anywhere in nested JSON."""
    if isinstance(data, dict):
        if data.get(key):
            return data[key]
        values = data.values()
    elif isinstance(data, list):
        values = data
    else:
        return None
    for value in values:
        found = _find_key(value, key)
        if found:
            return found
    return None


def _tiktok_state_avatar(soup: BeautifulSoup) -> Optional[str]:
    for script_id in _TIKTOK_STATE_SCRIPT_IDS:
        script = soup.find("script", id=script_id)
        if script is None or not script.string:
            continue
        try:
            state = json.loads(script.string)
        except ValueError as error:
            logger.debug("TikTok page state unreadable: script=%s error=%s", script_id, error)
            continue
        avatar = _find_key(state, "avatarLarger")
        if isinstance(avatar, str):
            return avatar
    return None


def get_oembed(url: str, platform: Platform) -> dict:
    """oEmbed payload for ``url`` or an empty dict."""
    endpoint = OEMBED_ENDPOINTS.get(platform)
    if not endpoint:
        return {}

    params = {"url": url, "format": "json"}
    if platform == Platform.INSTAGRAM:
        if not settings.FACEBOOK_ACCESS_TOKEN:
            return {}
        params["access_token"] = settings.FACEBOOK_ACCESS_TOKEN

    try:
        with httpx.Client(timeout=_timeout()) as client:
            response = client.get(endpoint, params=params, headers={"Accept": "application/json"})
        if response.status_code != 200:
            return {}
        data = response.json()
    except (httpx.HTTPError, ValueError) as error:
        logger.debug("oEmbed lookup failed: url=%s error=%s", url, error)
        return {}

    return data if isinstance(data, dict) else {}


def get_instagram_author_avatar(url: str) -> Optional[str]:
    soup = _page(url)
    return _og_image(soup) if soup else None


def get_tiktok_author_avatar(url: str) -> Optional[str]:
    soup = _page(url)
    if soup is None:
        return None
    return _tiktok_state_avatar(soup) or _og_image(soup)


def get_youtube_author_avatar(video_url: str) -> Optional[str]:
    channel_url = get_oembed(video_url, Platform.YOUTUBE).get("author_url")
    if not channel_url:
        return None
    soup = _page(channel_url)
    return _og_image(soup) if soup else None


def get_instagram_thumbnail(url: str) -> Optional[str]:
    soup = _page(url)
    return _og_image(soup) if soup else None


def fresh_author_avatar(url: str, platform: Platform) -> Optional[str]:
    """Avatar of the author of the content (or profile) at ``url``."""
    if platform == Platform.INSTAGRAM:
        return get_instagram_author_avatar(url)
    if platform == Platform.TIKTOK:
        return get_tiktok_author_avatar(url)
    if platform == Platform.YOUTUBE:
        return get_youtube_author_avatar(url)
    return None


def fresh_thumbnail(url: str, platform: Platform) -> Optional[str]:
    if platform == Platform.YOUTUBE:
        return youtube_stable_thumbnail(url)
    if platform == Platform.INSTAGRAM:
        return get_instagram_thumbnail(url)
    return get_oembed(url, platform).get("thumbnail_url")


def profile_url(platform: Platform, username: str) -> Optional[str]:
    if platform == Platform.INSTAGRAM:
        return f"https://www.instagram.com/{username}/"
    if platform == Platform.TIKTOK:
        return f"https://www.tiktok.com/@{username}"
    return None
