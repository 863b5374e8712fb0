from __future__ import annotations

import json

import pytest

from conftest import RECIPE_JSON, TRANSCRIPT_EN, GeminiClientStub
from src.app.domain.errors import (
    EmptyModelResponseError,
    MalformedModelResponseError,
    ModelUnavailableError,
    NotARecipeError,
    TranscriptTooShortError,
)
from src.services.errors import LLMConfigurationError, RateLimitedError
from src.services.recipe_extractor import (
    DEFAULT_CONFIDENCE,
    NO_RECIPE_REASON,
    RecipeExtractor,
    clamp_confidence,
    language_rule,
    parse_model_response,
)


class RaisingClient:
    def __init__(self, error: Exception) -> None:
        self.error = error

    def generate_content(self, user_prompt: str, system_instruction: str) -> str:
        raise self.error


class TestParseModelResponse:
    def test_parses_recipe(self) -> None:
        result = parse_model_response(RECIPE_JSON)

        assert result.draft.title == "Garlic Butter Pasta"
        assert result.draft.servings == "2"
        assert [i.name for i in result.draft.ingredients] == ["spaghetti", "butter", "garlic"]
        assert result.draft.ingredients[2].quantity == "3"
        assert result.confidence == 0.9

    def test_steps_are_numbered(self) -> None:
        result = parse_model_response(RECIPE_JSON)

        assert [s.step_number for s in result.draft.instructions] == [1, 2, 3]

    def test_strips_code_fence(self) -> None:
        result = parse_model_response(f"```json\n{RECIPE_JSON}\n```")

        assert result.draft.title == "Garlic Butter Pasta"

    def test_missing_ingredient_name_is_filled(self) -> None:
        payload = json.dumps({"title": "Soup", "ingredients": [{"quantity": "1", "unit": "l"}]})

        result = parse_model_response(payload)

        assert result.draft.ingredients[0].name == "Ingredient 1"

    def test_missing_confidence_defaults(self) -> None:
        result = parse_model_response(json.dumps({"title": "Soup"}))

        assert result.confidence == DEFAULT_CONFIDENCE

    def test_payload_uses_camel_case_keys(self) -> None:
        payload = parse_model_response(RECIPE_JSON).draft.to_payload()

        assert "tipsAndNotes" in payload
        assert payload["instructions"][0]["stepNumber"] == 1

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_empty_response(self, text) -> None:
        with pytest.raises(EmptyModelResponseError):
            parse_model_response(text)

    @pytest.mark.parametrize("text", ["not json at all", "[1, 2, 3]", '{"title": '])
    def test_malformed_response(self, text: str) -> None:
        with pytest.raises(MalformedModelResponseError) as excinfo:
            parse_model_response(text)

        assert str(excinfo.value) == "Failed to parse AI response"

    def test_is_recipe_false_uses_model_reason(self) -> None:
        with pytest.raises(NotARecipeError) as excinfo:
            parse_model_response(json.dumps({"isRecipe": False, "reason": "This is a dance video."}))

        assert excinfo.value.reason == "This is a dance video."

    def test_is_recipe_false_without_reason(self) -> None:
        with pytest.raises(NotARecipeError) as excinfo:
            parse_model_response(json.dumps({"isRecipe": False}))

        assert excinfo.value.reason == NO_RECIPE_REASON

    def test_empty_recipe_is_not_a_recipe(self) -> None:
        with pytest.raises(NotARecipeError):
            parse_model_response(json.dumps({"title": None, "ingredients": [], "instructions": []}))

    def test_title_only_is_accepted(self) -> None:
        result = parse_model_response(json.dumps({"title": "Mystery dish"}))

        assert result.draft.title == "Mystery dish"


class TestClampConfidence:
    @pytest.mark.parametrize(
        "value, expected",
        [(0.5, 0.5), (1.7, 1.0), (-0.2, 0.0), (1, 1.0), (None, DEFAULT_CONFIDENCE), ("high", DEFAULT_CONFIDENCE), (True, DEFAULT_CONFIDENCE)],
    )
    def test_clamp(self, value, expected: float) -> None:
        assert clamp_confidence(value) == expected


class TestLanguageRule:
    def test_original_with_known_language(self) -> None:
        rule = language_rule("original", "hu")

        assert "Hungarian" in rule
        assert "Do NOT translate" in rule

    def test_original_with_unknown_language(self) -> None:
        rule = language_rule("original", "unknown")

        assert "same language as the transcript" in rule

    def test_explicit_target(self) -> None:
        rule = language_rule("de", "en")

        assert "German" in rule
        assert "translate" in rule


class TestRecipeExtractor:
    def test_extract_sends_transcript_and_language_rule(self, gemini: GeminiClientStub) -> None:
        extractor = RecipeExtractor(client=gemini)

        result = extractor.extract(TRANSCRIPT_EN, target_language="de", detected_language="en")

        assert result.draft.title == "Garlic Butter Pasta"
        user_prompt, system_instruction = gemini.calls[0]
        assert TRANSCRIPT_EN in user_prompt
        assert "German" in system_instruction
        assert "{{LANGUAGE_RULE}}" not in system_instruction

    def test_description_is_appended(self, gemini: GeminiClientStub) -> None:
        extractor = RecipeExtractor(client=gemini)

        extractor.extract(TRANSCRIPT_EN, "original", "en", description="Full recipe: 200g spaghetti")

        user_prompt, _ = gemini.calls[0]
        assert "Post description/caption" in user_prompt
        assert "200g spaghetti" in user_prompt

    def test_too_short_content_skips_model(self, gemini: GeminiClientStub) -> None:
        extractor = RecipeExtractor(client=gemini)

        with pytest.raises(TranscriptTooShortError):
            extractor.extract("hi", "original", "en", description="yum")

        assert gemini.calls == []

    def test_description_counts_towards_minimum(self, gemini: GeminiClientStub) -> None:
        extractor = RecipeExtractor(client=gemini)

        extractor.extract("", "original", "en", description="Spaghetti, butter, garlic. Boil, melt, toss and serve hot.")

        assert len(gemini.calls) == 1

    def test_not_a_recipe_propagates(self) -> None:
        extractor = RecipeExtractor(client=GeminiClientStub(json.dumps({"isRecipe": False, "reason": "No food here"})))

        with pytest.raises(NotARecipeError):
            extractor.extract(TRANSCRIPT_EN, "original", "en")

    def test_empty_model_output(self) -> None:
        extractor = RecipeExtractor(client=GeminiClientStub(""))

        with pytest.raises(EmptyModelResponseError):
            extractor.extract(TRANSCRIPT_EN, "original", "en")

    def test_rate_limit_keeps_provider_message(self) -> None:
        extractor = RecipeExtractor(client=RaisingClient(RateLimitedError("AI service rate limit reached.")))

        with pytest.raises(ModelUnavailableError) as excinfo:
            extractor.extract(TRANSCRIPT_EN, "original", "en")

        assert str(excinfo.value) == "AI service rate limit reached."

    def test_provider_failure(self) -> None:
        extractor = RecipeExtractor(client=RaisingClient(LLMConfigurationError("Missing Gemini API key.")))

        with pytest.raises(ModelUnavailableError) as excinfo:
            extractor.extract(TRANSCRIPT_EN, "original", "en")

        assert str(excinfo.value) == "Failed to extract recipe"
