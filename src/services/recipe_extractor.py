from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from google.genai.errors import APIError
from pydantic import ValidationError

from src.app.config import settings
from src.app.domain.errors import (
    EmptyModelResponseError,
    MalformedModelResponseError,
    ModelUnavailableError,
    NotARecipeError,
    TranscriptTooShortError,
)
from src.app.domain.models import TARGET_ORIGINAL
from src.services.errors import RateLimitedError, ServiceError
from src.services.gemini_client import GeminiClient, load_prompt
from src.services.language import is_known, language_display_name
from src.services.persist_models import RecipeDraft

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = Path(__file__).parent / "prompts" / "recipe_extraction.txt"
LANGUAGE_RULE_PLACEHOLDER = "{{LANGUAGE_RULE}}"

MIN_CONTENT_CHARS = 50
DEFAULT_CONFIDENCE = 0.8
NO_RECIPE_REASON = "Could not extract a recipe from this transcript. The video may not contain a recipe."

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


@dataclass
class ExtractedRecipe:
    draft: RecipeDraft
    confidence: float


def language_rule(target_language: str, detected_language: str) -> str:
    """Instruction that pins every output field to one language."""
    if target_language == TARGET_ORIGINAL:
        source = language_display_name(detected_language) if is_known(detected_language) else None
        if source:
            return (
                f"Write every field in {source}, the language of the transcript. "
                "Do NOT translate anything, not even ingredient names or the title."
            )
        return (
            "Write every field in the same language as the transcript. "
            "Do NOT translate anything, not even ingredient names or the title."
        )

    target = language_display_name(target_language)
    return (
        f"Write every field in {target}. If the transcript or description is in another "
        f"language, translate the title, description, ingredients, instructions, equipment "
        f"and tips into {target}. Keep the JSON keys in English."
    )


def clamp_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, float(value)))


def _strip_code_fence(text: str) -> str:
    return _CODE_FENCE_RE.sub("", text.strip())


def parse_model_response(text: Optional[str]) -> ExtractedRecipe:
    """Turn raw model output into a draft, or raise the matching ExtractionError."""
    if not text or not text.strip():
        raise EmptyModelResponseError()

    try:
        data = json.loads(_strip_code_fence(text))
    except json.JSONDecodeError as error:
        raise MalformedModelResponseError(str(error)) from error

    if not isinstance(data, dict):
        raise MalformedModelResponseError(f"expected a JSON object, got {type(data).__name__}")

    if data.get("isRecipe") is False:
        reason = data.get("reason")
        raise NotARecipeError(reason.strip() if isinstance(reason, str) and reason.strip() else NO_RECIPE_REASON)

    try:
        draft = RecipeDraft.model_validate(data)
    except ValidationError as error:
        raise MalformedModelResponseError(str(error)) from error

    if draft.is_empty:
        raise NotARecipeError(NO_RECIPE_REASON)

    return ExtractedRecipe(draft=draft, confidence=clamp_confidence(data.get("confidence")))


class RecipeExtractor:
    def __init__(self, client: Optional[GeminiClient] = None, prompt_path: Path = SYSTEM_PROMPT) -> None:
        self._client = client
        self._prompt_path = prompt_path

    @property
    def client(self) -> GeminiClient:
        if self._client is None:
            self._client = GeminiClient(api_key=settings.GEMINI_API_KEY, model_name=settings.GEMINI_MODEL)
        return self._client

    def system_instruction(self, target_language: str, detected_language: str) -> str:
        template = load_prompt(self._prompt_path)
        return template.replace(LANGUAGE_RULE_PLACEHOLDER, language_rule(target_language, detected_language))

    def extract(
        self,
        transcript: str,
        target_language: str,
        detected_language: str,
        description: Optional[str] = None,
    ) -> ExtractedRecipe:
        content_length = len((transcript or "").strip()) + len((description or "").strip())
        if content_length < MIN_CONTENT_CHARS:
            raise TranscriptTooShortError()

        user_prompt = f"Extract the recipe from this video transcript:\n\n{transcript}"
        if description and description.strip():
            user_prompt += f"\n\n---\n\nPost description/caption:\n\n{description.strip()}"

        system_instruction = self.system_instruction(target_language, detected_language)
        try:
            response = self.client.generate_content(user_prompt=user_prompt, system_instruction=system_instruction)
        except RateLimitedError as error:
            raise ModelUnavailableError(str(error)) from error
        except (ServiceError, APIError) as error:
            logger.error("Gemini call failed: error=%s", error)
            raise ModelUnavailableError() from error

        try:
            result = parse_model_response(response)
        except (EmptyModelResponseError, MalformedModelResponseError) as error:
            logger.error(
                "Model response rejected: error=%s detail=%s",
                error,
                getattr(error, "detail", ""),
            )
            raise

        logger.info(
            "Recipe extracted: title=%r ingredients=%d steps=%d confidence=%.2f",
            result.draft.title,
            len(result.draft.ingredients),
            len(result.draft.instructions),
            result.confidence,
        )
        return result
