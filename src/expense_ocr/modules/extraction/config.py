from __future__ import annotations

from dataclasses import dataclass, field

from expense_ocr.core.config import Settings


@dataclass(frozen=True)
class ExtractionConfig:
    """Everything the provider adapter needs; built once at the edge of the app."""

    api_keys: dict[str, str | None] = field(default_factory=dict)
    models: dict[str, str] = field(default_factory=dict)
    openrouter_referer: str = "https://expense-tracker-app.com"
    timeout_seconds: float | None = None

    def api_key(self, provider: str) -> str | None:
        key = self.api_keys.get(provider)
        return key.strip() if key and key.strip() else None

    @classmethod
    def from_settings(cls, settings: Settings) -> ExtractionConfig:
        return cls(
            api_keys={
                "gemini": settings.gemini_api_key,
                "openai": settings.openai_api_key,
                "claude": settings.claude_api_key,
                "openrouter": settings.openrouter_api_key,
            },
            models={
                "gemini": settings.gemini_model,
                "openai": settings.openai_model,
                "claude": settings.claude_model,
                "openrouter": settings.openrouter_model,
            },
            openrouter_referer=settings.openrouter_referer,
            timeout_seconds=settings.extraction_timeout_seconds,
        )
