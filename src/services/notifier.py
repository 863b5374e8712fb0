"""
Job notifications for users who started an extraction from a chat.

Delivery is best effort: every failure is logged and swallowed so a
notification can never change the outcome of a job.
"""
from __future__ import annotations

import logging
import re
from typing import Optional, Protocol

import httpx

from src.app.config import settings
from src.services.persist_models import RecipeRecord

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
_MARKDOWN_SPECIAL_RE = re.compile(r"([_*`\[])")


class Notifier(Protocol):
    def send_status(self, chat_id: int, message: str) -> None: ...

    def send_recipe_preview(self, chat_id: int, record: RecipeRecord, recipe_id: str) -> None: ...

    def send_error(self, chat_id: int, error: str) -> None: ...


class NullNotifier:
    def send_status(self, chat_id: int, message: str) -> None:
        return None

    def send_recipe_preview(self, chat_id: int, record: RecipeRecord, recipe_id: str) -> None:
        return None

    def send_error(self, chat_id: int, error: str) -> None:
        return None


def escape_markdown(text: str) -> str:
    return _MARKDOWN_SPECIAL_RE.sub(r"\\\1", text)


def format_recipe_preview(record: RecipeRecord, recipe_id: str, app_url: str) -> str:
    parts = ["Recipe extracted!\n", f"*{escape_markdown(record.title)}*"]

    meta = [value for value in (record.difficulty, record.total_time, record.servings) if value]
    if meta:
        parts.append(" · ".join(meta))

    parts.append("")
    parts.append(f"{len(record.ingredients)} ingredients · {len(record.instructions)} steps")
    parts.append("")
    parts.append(f"[View recipe]({app_url.rstrip('/')}/recipes/{recipe_id})")
    return "\n".join(parts)


class TelegramNotifier:
    def __init__(self, bot_token: str, app_url: str, timeout: float = 10.0) -> None:
        self._endpoint = f"{TELEGRAM_API_URL}/bot{bot_token}/sendMessage"
        self._app_url = app_url
        self._timeout = timeout

    def _send(self, payload: dict) -> None:
        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.post(self._endpoint, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as error:
            # the token is part of the URL; log only the chat
            logger.error(
                "Telegram delivery failed: chat=%s error=%s",
                payload.get("chat_id"),
                type(error).__name__,
            )

    def send_status(self, chat_id: int, message: str) -> None:
        self._send({"chat_id": chat_id, "text": message})

    def send_recipe_preview(self, chat_id: int, record: RecipeRecord, recipe_id: str) -> None:
        self._send({
            "chat_id": chat_id,
            "text": format_recipe_preview(record, recipe_id, self._app_url),
            "parse_mode": "Markdown",
            "link_preview_options": {"is_disabled": True},
        })

    def send_error(self, chat_id: int, error: str) -> None:
        self._send({"chat_id": chat_id, "text": f"Extraction failed: {error}"})


def build_notifier(bot_token: Optional[str] = None) -> Notifier:
    token = bot_token if bot_token is not None else settings.TELEGRAM_BOT_TOKEN
    if not token:
        return NullNotifier()
    return TelegramNotifier(token, settings.APP_URL, timeout=settings.HTTP_TIMEOUT_SECONDS)
