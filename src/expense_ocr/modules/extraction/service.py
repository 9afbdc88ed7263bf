from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from expense_ocr.core.logging import get_logger, log_event, monotonic_ms
from expense_ocr.modules.extraction.config import ExtractionConfig
from expense_ocr.modules.extraction.parser import (
    Err,
    parse_odometer_reading,
    parse_receipt_fields,
)
from expense_ocr.modules.extraction.prompts import ODOMETER, get_prompt
from expense_ocr.modules.extraction.providers import (
    PROVIDERS,
    ExtractionProvider,
    ProviderError,
    get_provider_class,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExtractionRequest:
    image_bytes: bytes
    mime_type: str
    template_name: str


@dataclass(frozen=True)
class ExtractionResult:
    success: bool
    raw_text: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)
    error_message: str | None = None

    @classmethod
    def failure(cls, error_message: str, *, raw_text: str | None = None) -> ExtractionResult:
        return cls(success=False, raw_text=raw_text, fields={}, error_message=error_message)


@dataclass(frozen=True)
class KeyCheckResult:
    success: bool
    message: str


class ExtractionAdapter:
    """Uniform entry point over the registered vision providers.

    Each call makes at most one HTTP request; there is no retry at this layer.
    """

    def __init__(self, config: ExtractionConfig, *, client: httpx.Client | None = None):
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=config.timeout_seconds, follow_redirects=True
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def configured_providers(self) -> list[str]:
        return [name for name in PROVIDERS if self.config.api_key(name)]

    def _provider(self, cls: type[ExtractionProvider], api_key: str) -> ExtractionProvider:
        return cls(
            api_key=api_key,
            model=self.config.models.get(cls.name, ""),
            client=self._client,
            referer=self.config.openrouter_referer,
        )

    def extract(
        self, image_bytes: bytes, mime_type: str, template_name: str, provider_name: str
    ) -> ExtractionResult:
        prompt = get_prompt(template_name)
        if prompt is None:
            return ExtractionResult.failure(f"Unknown extraction template: {template_name}")
        cls = get_provider_class(provider_name)
        if cls is None:
            return ExtractionResult.failure(f"Unsupported extraction provider: {provider_name}")
        api_key = self.config.api_key(cls.name)
        if not api_key:
            log_event(logger, "extraction.call.skipped", provider=cls.name, reason="missing_key")
            return ExtractionResult.failure(f"{cls.label} API key not configured")
        if not image_bytes:
            return ExtractionResult.failure("No image data to extract from")

        start = time.monotonic()
        provider = self._provider(cls, api_key)
        try:
            raw_text = provider.complete(image_bytes=image_bytes, mime_type=mime_type, prompt=prompt)
        except ProviderError as e:
            log_event(
                logger,
                "extraction.call.failure",
                provider=cls.name,
                template=template_name,
                status_code=e.status_code,
                error=str(e),
                duration_ms=monotonic_ms(start),
            )
            return ExtractionResult.failure(str(e))

        result = self._parse(template_name, raw_text)
        log_event(
            logger,
            "extraction.call.success" if result.success else "extraction.parse.failure",
            provider=cls.name,
            template=template_name,
            raw_chars=len(raw_text),
            error=result.error_message,
            duration_ms=monotonic_ms(start),
        )
        return result

    def extract_request(self, request: ExtractionRequest, provider_name: str) -> ExtractionResult:
        return self.extract(
            request.image_bytes, request.mime_type, request.template_name, provider_name
        )

    @staticmethod
    def _parse(template_name: str, raw_text: str) -> ExtractionResult:
        if template_name == ODOMETER:
            reading = parse_odometer_reading(raw_text)
            if isinstance(reading, Err):
                return ExtractionResult.failure(reading.reason, raw_text=raw_text)
            return ExtractionResult(success=True, raw_text=raw_text, fields={"reading": reading.value})

        parsed = parse_receipt_fields(raw_text)
        if isinstance(parsed, Err):
            return ExtractionResult.failure(parsed.reason, raw_text=raw_text)
        return ExtractionResult(success=True, raw_text=raw_text, fields=parsed.value)

    def check_key(self, provider_name: str, api_key: str | None = None) -> KeyCheckResult:
        """Probe a provider with the given key (or the configured one)."""
        cls = get_provider_class(provider_name)
        if cls is None:
            return KeyCheckResult(False, f"Unsupported extraction provider: {provider_name}")
        key = (api_key or "").strip() or self.config.api_key(cls.name)
        if not key:
            return KeyCheckResult(False, f"API key is required for testing {cls.label}")
        start = time.monotonic()
        try:
            self._provider(cls, key).check_key()
        except ProviderError as e:
            log_event(
                logger,
                "extraction.key_check.failure",
                provider=cls.name,
                status_code=e.status_code,
                duration_ms=monotonic_ms(start),
            )
            return KeyCheckResult(False, f"{cls.label} API key seems invalid or API error: {e}")
        log_event(
            logger, "extraction.key_check.success", provider=cls.name, duration_ms=monotonic_ms(start)
        )
        return KeyCheckResult(True, f"{cls.label} API key appears valid.")


def build_adapter() -> ExtractionAdapter:
    from expense_ocr.core.config import settings

    return ExtractionAdapter(ExtractionConfig.from_settings(settings))
