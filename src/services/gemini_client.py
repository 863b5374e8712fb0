from __future__ import annotations

import json
import logging
from pathlib import Path

from google import genai
from google.genai import types
from google.genai.errors import APIError, ClientError

from src.services.errors import LLMConfigurationError, RateLimitedError, ServiceError

logger = logging.getLogger(__name__)

RATE_LIMITED_MESSAGE = "AI service rate limit reached. Please try again in a few moments."


class GeminiPromptError(ServiceError):
    pass


def _is_rate_limited_error(exc: Exception) -> bool:
    status_code = getattr(exc, "code", None) or getattr(exc, "status_code", None)
    return status_code == 429 or "RESOURCE_EXHAUSTED" in str(exc)


def load_prompt(file_path: Path) -> str:
    try:
        return file_path.read_text(encoding="utf-8")
    except FileNotFoundError as not_found_error:
        raise GeminiPromptError(f"Prompt file not found: {file_path}") from not_found_error
    except OSError as io_error:
        raise GeminiPromptError(f"Unable to read prompt file: {io_error}") from io_error


class GeminiClient:
    """Thin wrapper around google-genai returning the model's JSON text."""

    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-2.5-flash",
        temperature: float = 0.3,
    ) -> None:
        if not api_key:
            raise LLMConfigurationError("Missing Gemini API key.")
        self.model_name = model_name
        self.temperature = temperature
        self._client = genai.Client(api_key=api_key)

    def _serialize_prompt(self, user_prompt: str | dict[str, str | int | float | list | dict]) -> str:
        if isinstance(user_prompt, str):
            return user_prompt
        try:
            return json.dumps(user_prompt, indent=2, ensure_ascii=False)
        except TypeError:
            return str(user_prompt)

    def generate_content(
        self,
        user_prompt: str | dict[str, str | int | float | list | dict],
        system_instruction: str,
    ) -> str:
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=self.temperature,
            response_mime_type="application/json",
        )

        try:
            response = self._client.models.generate_content(
                model=self.model_name,
                contents=self._serialize_prompt(user_prompt),
                config=config,
            )
        except ClientError as err:
            if _is_rate_limited_error(err):
                raise RateLimitedError(RATE_LIMITED_MESSAGE) from err
            raise
        except APIError as err:
            logger.error("Gemini request failed: model=%s error=%s", self.model_name, err)
            raise

        return response.text or ""
