from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8-sig",
        case_sensitive=False,
        extra="ignore",
    )

    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""
    APP_ENV: str = "local"
    LOG_LEVEL: str = "INFO"
    APP_URL: str = "http://localhost:3000"
    FRONTEND_CORS_ORIGINS: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"],
    )

    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash"

    DEFAULT_LANGUAGE: str = "en"
    FREE_EXTRACTIONS_LIMIT: int = Field(default=10, ge=0)
    EXTRACTION_WORKERS: int = Field(default=4, ge=1, le=32)
    HTTP_TIMEOUT_SECONDS: float = 15.0

    AUDIO_TRANSCRIPTION_ENABLED: bool = False
    WHISPER_MODEL: str = "small"
    WHISPER_DEVICE: str = "auto"
    WHISPER_BEAM_SIZE: int = Field(default=5, ge=1, le=10)

    TELEGRAM_BOT_TOKEN: str = ""
    INTERNAL_API_TOKEN: str = ""
    FACEBOOK_ACCESS_TOKEN: str = ""


settings = Settings()
