from __future__ import annotations


class ExtractionError(Exception):
    """Base class for errors that end an extraction job."""


class TranscriptUnavailableError(ExtractionError):
    NOT_FOUND = "not_found"
    QUOTA_EXHAUSTED = "quota_exhausted"
    RATE_LIMITED = "rate_limited"
    OTHER = "other"

    def __init__(self, message: str = "Could not fetch transcript", kind: str = OTHER):
        super().__init__(message)
        self.kind = kind


class TranscriptTooShortError(ExtractionError):
    def __init__(self, message: str = "Transcript is too short to extract a recipe"):
        super().__init__(message)


class NotARecipeError(ExtractionError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class MalformedModelResponseError(ExtractionError):
    def __init__(self, detail: str = ""):
        super().__init__("Failed to parse AI response")
        self.detail = detail


class EmptyModelResponseError(ExtractionError):
    def __init__(self) -> None:
        super().__init__("No response from AI model")


class ModelUnavailableError(ExtractionError):
    def __init__(self, message: str = "Failed to extract recipe"):
        super().__init__(message)


class JobNotFoundError(ExtractionError):
    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class InvalidJobTransitionError(ExtractionError):
    def __init__(self, job_id: str, current: str, requested: str):
        super().__init__(f"Invalid transition for job {job_id}: {current} -> {requested}")
        self.job_id = job_id
        self.current = current
        self.requested = requested


class JobRepositoryError(ExtractionError):
    def __init__(self, operation: str, reason: str):
        super().__init__(f"Job repository error during {operation}: {reason}")
        self.operation = operation
        self.reason = reason


class CacheRepositoryError(ExtractionError):
    def __init__(self, operation: str, reason: str):
        super().__init__(f"Cache repository error during {operation}: {reason}")
        self.operation = operation
        self.reason = reason


class UsageLimitExceededError(ExtractionError):
    def __init__(self, used: int, limit: int, plan_tier: str | None = None):
        super().__init__("Extraction limit reached")
        self.used = used
        self.limit = limit
        self.plan_tier = plan_tier


class AuthorNotFoundError(ExtractionError):
    def __init__(self, author_id: str):
        super().__init__(f"Author not found: {author_id}")
        self.author_id = author_id


class RecipeNotFoundError(ExtractionError):
    def __init__(self, recipe_id: str):
        super().__init__(f"Recipe not found: {recipe_id}")
        self.recipe_id = recipe_id


class RecipeAccessDeniedError(ExtractionError):
    def __init__(self, recipe_id: str, user_id: str):
        super().__init__(f"Recipe {recipe_id} does not belong to user {user_id}")
        self.recipe_id = recipe_id
        self.user_id = user_id
