# src/services/persist_models.py
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _CamelModel(BaseModel):
    """Accepts both the model's camelCase keys and snake_case field names."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"{value:g}"
    text = str(value).strip()
    return text or None


def _as_text_list(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = [value]
    return [text for text in (_as_text(item) for item in value) if text]


class Ingredient(_CamelModel):
    name: str
    quantity: Optional[str] = None
    unit: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("name", "quantity", "unit", "notes", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return _as_text(value)


class InstructionStep(_CamelModel):
    step_number: int = Field(alias="stepNumber")
    description: str = ""

    @field_validator("step_number", mode="before")
    @classmethod
    def _coerce_step(cls, value: Any) -> Any:
        if isinstance(value, str):
            digits = "".join(ch for ch in value if ch.isdigit())
            return int(digits) if digits else value
        return value


class Nutrition(_CamelModel):
    calories: Optional[str] = None
    protein: Optional[str] = None
    carbohydrates: Optional[str] = None
    fat: Optional[str] = None

    @field_validator("calories", "protein", "carbohydrates", "fat", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return _as_text(value)


class RecipeDraft(_CamelModel):
    """A recipe as the language model returned it, every field optional."""
    title: Optional[str] = None
    description: Optional[str] = None
    cuisine_type: Optional[str] = Field(default=None, alias="cuisineType")
    difficulty: Optional[str] = None
    prep_time: Optional[str] = Field(default=None, alias="prepTime")
    cook_time: Optional[str] = Field(default=None, alias="cookTime")
    total_time: Optional[str] = Field(default=None, alias="totalTime")
    servings: Optional[str] = None
    dietary_tags: list[str] = Field(default_factory=list, alias="dietaryTags")
    meal_type: Optional[str] = Field(default=None, alias="mealType")
    ingredients: list[Ingredient] = Field(default_factory=list)
    instructions: list[InstructionStep] = Field(default_factory=list)
    equipment: list[str] = Field(default_factory=list)
    tips_and_notes: list[str] = Field(default_factory=list, alias="tipsAndNotes")
    nutrition: Optional[Nutrition] = None
    extraction_notes: Optional[str] = Field(default=None, alias="extractionNotes")

    @field_validator(
        "title", "description", "cuisine_type", "difficulty", "prep_time",
        "cook_time", "total_time", "servings", "meal_type", "extraction_notes",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return _as_text(value)

    @field_validator("dietary_tags", "equipment", "tips_and_notes", mode="before")
    @classmethod
    def _coerce_text_list(cls, value: Any) -> list[str]:
        return _as_text_list(value)

    @field_validator("ingredients", mode="before")
    @classmethod
    def _fill_ingredient_names(cls, value: Any) -> list:
        items = []
        for index, item in enumerate(value or []):
            if not isinstance(item, dict):
                continue
            item = dict(item)
            if not _as_text(item.get("name")):
                item["name"] = f"Ingredient {index + 1}"
            items.append(item)
        return items

    @field_validator("instructions", mode="before")
    @classmethod
    def _number_steps(cls, value: Any) -> list:
        steps = []
        for index, item in enumerate(value or []):
            if isinstance(item, str):
                item = {"description": item}
            if not isinstance(item, dict):
                continue
            item = dict(item)
            number = item.pop("step_number", None) or item.get("stepNumber")
            if not (isinstance(number, int) or (isinstance(number, str) and any(c.isdigit() for c in number))):
                number = index + 1
            item["stepNumber"] = number
            item["description"] = _as_text(item.get("description")) or ""
            steps.append(item)
        return steps

    @property
    def is_empty(self) -> bool:
        return not self.title and not self.ingredients and not self.instructions

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class RecipeSource(_CamelModel):
    url: str
    normalized_url: str = Field(alias="normalizedUrl")
    platform: str
    video_title: Optional[str] = Field(default=None, alias="videoTitle")
    author_username: Optional[str] = Field(default=None, alias="authorUsername")
    author_display_name: Optional[str] = Field(default=None, alias="authorDisplayName")
    author_avatar_url: Optional[str] = Field(default=None, alias="authorAvatarUrl")
    author_id: Optional[str] = Field(default=None, alias="authorId")
    thumbnail_url: Optional[str] = Field(default=None, alias="thumbnailUrl")


class ExtractionMetadata(_CamelModel):
    extracted_at: str = Field(alias="extractedAt")
    confidence: float
    detected_language: str = Field(alias="detectedLanguage")
    target_language: str = Field(alias="targetLanguage")
    from_cache: bool = Field(alias="fromCache")


class RecipeRecord(BaseModel):
    """A row of the recipes table."""
    owner_id: str
    slug: str
    title: str
    description: Optional[str] = None
    cuisine_type: Optional[str] = None
    difficulty: Optional[str] = None
    prep_time: Optional[str] = None
    cook_time: Optional[str] = None
    total_time: Optional[str] = None
    servings: Optional[str] = None
    dietary_tags: list[str] = Field(default_factory=list)
    meal_type: Optional[str] = None
    ingredients: list[dict] = Field(default_factory=list)
    instructions: list[dict] = Field(default_factory=list)
    equipment: list[str] = Field(default_factory=list)
    tips_and_notes: list[str] = Field(default_factory=list)
    nutrition: Optional[dict] = None
    source: RecipeSource
    extraction_metadata: ExtractionMetadata

    def to_row(self) -> dict[str, Any]:
        row = self.model_dump(exclude={"source", "extraction_metadata"})
        row["source"] = self.source.model_dump(by_alias=True)
        row["extraction_metadata"] = self.extraction_metadata.model_dump(by_alias=True)
        row["source_url"] = self.source.normalized_url
        return row
