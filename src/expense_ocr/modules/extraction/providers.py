from __future__ import annotations

import base64
from typing import Any, ClassVar

import httpx


class ProviderError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ExtractionProvider:
    """One external vision API: ``(image, prompt) -> raw completion text``.

    Subclasses describe the request envelope and where the completion sits in
    the response; the HTTP exchange and error mapping live here.
    """

    name: ClassVar[str]
    label: ClassVar[str]
    check_url: ClassVar[str]

    def __init__(self, *, api_key: str, model: str, client: httpx.Client, referer: str | None = None):
        self.api_key = api_key
        self.model = model
        self.referer = referer
        self._client = client

    def build_request(
        self, *, prompt: str, image_b64: str, mime_type: str
    ) -> tuple[str, dict[str, str], dict[str, Any]]:  # pragma: no cover
        raise NotImplementedError

    def read_completion(self, body: Any) -> Any:  # pragma: no cover
        raise NotImplementedError

    def check_request(self) -> tuple[str, str, dict[str, str], dict[str, Any] | None]:
        """Cheapest authenticated call that proves the key works."""
        return "GET", self.check_url, self.auth_headers(), None

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def complete(self, *, image_bytes: bytes, mime_type: str, prompt: str) -> str:
        image_b64 = base64.b64encode(image_bytes).decode("ascii")
        url, headers, body = self.build_request(
            prompt=prompt, image_b64=image_b64, mime_type=mime_type
        )
        resp = self._send("POST", url, headers=headers, json=body)
        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(f"{self.label} API returned a non-JSON response") from e
        try:
            text = self.read_completion(data)
        except (KeyError, IndexError, TypeError):
            text = None
        if not isinstance(text, str):
            raise ProviderError(f"Unexpected or missing content in response from {self.label} API")
        return text

    def check_key(self) -> None:
        method, url, headers, body = self.check_request()
        self._send(method, url, headers=headers, json=body)

    def _send(
        self, method: str, url: str, *, headers: dict[str, str], json: dict[str, Any] | None
    ) -> httpx.Response:
        try:
            resp = self._client.request(method, url, headers=headers, json=json)
        except httpx.HTTPError as e:
            # The exception text can include the request URL, which carries the key for Gemini.
            raise ProviderError(f"{self.label} API request failed ({type(e).__name__})") from e
        if resp.is_error:
            raise ProviderError(
                f"{self.label} API error ({resp.status_code})", status_code=resp.status_code
            )
        return resp


def _data_url(mime_type: str, image_b64: str) -> str:
    return f"data:{mime_type};base64,{image_b64}"


class GeminiProvider(ExtractionProvider):
    name = "gemini"
    label = "Gemini"
    base_url = "https://generativelanguage.googleapis.com/v1beta/models"

    @property
    def check_url(self) -> str:  # type: ignore[override]
        return f"{self.base_url}?key={self.api_key}"

    def auth_headers(self) -> dict[str, str]:
        return {}

    def build_request(self, *, prompt, image_b64, mime_type):
        url = f"{self.base_url}/{self.model}:generateContent?key={self.api_key}"
        body = {
            "contents": [
                {
                    "parts": [
                        {"text": prompt},
                        {"inline_data": {"mime_type": mime_type, "data": image_b64}},
                    ]
                }
            ],
            "generationConfig": {
                "temperature": 0.1,
                "maxOutputTokens": 2048,
                "response_mime_type": "application/json",
            },
        }
        return url, {"Content-Type": "application/json"}, body

    def read_completion(self, body):
        return body["candidates"][0]["content"]["parts"][0]["text"]


class OpenAIProvider(ExtractionProvider):
    name = "openai"
    label = "OpenAI"
    url = "https://api.openai.com/v1/chat/completions"
    check_url = "https://api.openai.com/v1/models"

    def build_request(self, *, prompt, image_b64, mime_type):
        body = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": _data_url(mime_type, image_b64)}},
                    ],
                }
            ],
            "max_tokens": 2000,
            "response_format": {"type": "json_object"},
        }
        return self.url, {**self.auth_headers(), "Content-Type": "application/json"}, body

    def read_completion(self, body):
        return body["choices"][0]["message"]["content"]


class OpenRouterProvider(OpenAIProvider):
    name = "openrouter"
    label = "OpenRouter"
    url = "https://openrouter.ai/api/v1/chat/completions"
    check_url = "https://openrouter.ai/api/v1/models"

    def auth_headers(self) -> dict[str, str]:
        headers = super().auth_headers()
        if self.referer:
            headers["HTTP-Referer"] = self.referer
        return headers


class ClaudeProvider(ExtractionProvider):
    name = "claude"
    label = "Claude"
    url = "https://api.anthropic.com/v1/messages"
    system_prompt = (
        "You are an AI assistant specialized in extracting and structuring data from "
        "receipts. Return ONLY a valid JSON object."
    )

    def auth_headers(self) -> dict[str, str]:
        return {"x-api-key": self.api_key, "anthropic-version": "2023-06-01"}

    def check_request(self):
        # No cheap listing call; a one-token message proves the key instead.
        body = {
            "model": self.model,
            "max_tokens": 1,
            "messages": [{"role": "user", "content": "test"}],
        }
        return "POST", self.url, self.auth_headers(), body

    def build_request(self, *, prompt, image_b64, mime_type):
        body = {
            "model": self.model,
            "max_tokens": 2000,
            "system": self.system_prompt,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {
                            "type": "image",
                            "source": {"type": "base64", "media_type": mime_type, "data": image_b64},
                        },
                    ],
                }
            ],
        }
        return self.url, {**self.auth_headers(), "Content-Type": "application/json"}, body

    def read_completion(self, body):
        return body["content"][0]["text"]


PROVIDERS: dict[str, type[ExtractionProvider]] = {
    cls.name: cls for cls in (GeminiProvider, OpenAIProvider, ClaudeProvider, OpenRouterProvider)
}


def get_provider_class(name: str) -> type[ExtractionProvider] | None:
    return PROVIDERS.get((name or "").strip().lower())
