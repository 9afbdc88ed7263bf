from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"
    base_url: str = "http://localhost:8000"
    secret_key: str = "change-me"

    database_url: str = "sqlite:///./expense_ocr.db"
    redis_url: str = "redis://localhost:6379/0"

    storage_backend: Literal["local", "s3"] = "local"
    local_storage_path: Path = Path(".local_storage")
    signed_url_ttl_seconds: int = 300

    s3_endpoint_url: str | None = None
    s3_region: str | None = None
    s3_bucket: str = "expense-ocr"
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None

    gemini_api_key: str | None = None
    openai_api_key: str | None = None
    claude_api_key: str | None = None
    openrouter_api_key: str | None = None

    gemini_model: str = "gemini-1.5-flash"
    openai_model: str = "gpt-4o"
    claude_model: str = "claude-3-haiku-20240307"
    openrouter_model: str = "anthropic/claude-3-haiku"
    openrouter_referer: str = "https://expense-tracker-app.com"

    extraction_provider: str = "gemini"
    extraction_template: str = "travel"
    extraction_timeout_seconds: float | None = None

    init_user_email: str | None = None
    init_user_password: str | None = None

    access_token_exp_minutes: int = 60 * 24


settings = Settings()
