from __future__ import annotations

import base64
import json

import httpx
import pytest

from expense_ocr.modules.extraction.config import ExtractionConfig
from expense_ocr.modules.extraction.providers import PROVIDERS
from expense_ocr.modules.extraction.service import ExtractionAdapter

IMAGE = b"\x89PNG fake image bytes"
RECEIPT_JSON = '{"vendor": "City Cabs", "cost": 45.5, "date": "2024-03-15"}'


def _adapter(handler, **keys) -> tuple[ExtractionAdapter, list[httpx.Request]]:
    calls: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return handler(request)

    config = ExtractionConfig(
        api_keys=keys,
        models={
            "gemini": "gemini-1.5-flash",
            "openai": "gpt-4o",
            "claude": "claude-3-haiku-20240307",
            "openrouter": "anthropic/claude-3-haiku",
        },
    )
    client = httpx.Client(transport=httpx.MockTransport(_record))
    return ExtractionAdapter(config, client=client), calls


def test_registry_lists_every_provider():
    assert set(PROVIDERS) == {"gemini", "openai", "claude", "openrouter"}


def test_missing_key_fails_without_network_call():
    adapter, calls = _adapter(lambda request: httpx.Response(200, json={}))

    result = adapter.extract(IMAGE, "image/png", "travel", "openai")

    assert result.success is False
    assert result.error_message == "OpenAI API key not configured"
    assert result.fields == {}
    assert calls == []


def test_unknown_provider_and_template_are_reported():
    adapter, calls = _adapter(lambda request: httpx.Response(200, json={}), openai="sk")

    assert "Unsupported extraction provider" in adapter.extract(IMAGE, "image/png", "travel", "nope").error_message
    assert "Unknown extraction template" in adapter.extract(IMAGE, "image/png", "nope", "openai").error_message
    assert calls == []


def test_gemini_envelope():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        parts = body["contents"][0]["parts"]
        assert parts[1]["inline_data"] == {
            "mime_type": "image/png",
            "data": base64.b64encode(IMAGE).decode(),
        }
        assert body["generationConfig"]["response_mime_type"] == "application/json"
        return httpx.Response(
            200, json={"candidates": [{"content": {"parts": [{"text": RECEIPT_JSON}]}}]}
        )

    adapter, calls = _adapter(handler, gemini="g-key")
    result = adapter.extract(IMAGE, "image/png", "travel", "gemini")

    assert result.success is True
    assert result.fields["vendor"] == "City Cabs"
    assert len(calls) == 1
    assert calls[0].method == "POST"
    assert calls[0].url.params["key"] == "g-key"
    assert calls[0].url.path.endswith("gemini-1.5-flash:generateContent")


def test_openai_envelope():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "gpt-4o"
        assert body["response_format"] == {"type": "json_object"}
        image_part = body["messages"][0]["content"][1]
        assert image_part["image_url"]["url"].startswith("data:image/jpeg;base64,")
        return httpx.Response(200, json={"choices": [{"message": {"content": RECEIPT_JSON}}]})

    adapter, calls = _adapter(handler, openai="sk-test")
    result = adapter.extract(IMAGE, "image/jpeg", "general", "openai")

    assert result.success is True
    assert result.raw_text == RECEIPT_JSON
    assert str(calls[0].url) == "https://api.openai.com/v1/chat/completions"


def test_claude_envelope():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["x-api-key"] == "ck"
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = json.loads(request.content)
        image_part = body["messages"][0]["content"][1]
        assert image_part["type"] == "image"
        assert image_part["source"]["media_type"] == "image/png"
        return httpx.Response(200, json={"content": [{"type": "text", "text": '{"reading": "5"}'}]})

    adapter, _ = _adapter(handler, claude="ck")
    result = adapter.extract(IMAGE, "image/png", "odometer", "claude")

    assert result.success is True
    assert result.fields == {"reading": 5.0}


def test_openrouter_sends_referer():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["authorization"] == "Bearer or-key"
        assert request.headers["http-referer"] == "https://expense-tracker-app.com"
        assert json.loads(request.content)["model"] == "anthropic/claude-3-haiku"
        return httpx.Response(200, json={"choices": [{"message": {"content": RECEIPT_JSON}}]})

    adapter, calls = _adapter(handler, openrouter="or-key")
    assert adapter.extract(IMAGE, "image/png", "travel", "openrouter").success is True
    assert calls[0].url.host == "openrouter.ai"


def test_http_error_reports_status_without_upstream_body():
    adapter, calls = _adapter(
        lambda request: httpx.Response(401, json={"error": {"message": "secret internals"}}),
        openai="sk-test",
    )

    result = adapter.extract(IMAGE, "image/png", "travel", "openai")

    assert result.success is False
    assert result.error_message == "OpenAI API error (401)"
    assert "secret" not in result.error_message
    assert len(calls) == 1


def test_missing_completion_field_is_a_failure():
    adapter, _ = _adapter(
        lambda request: httpx.Response(200, json={"choices": [{"message": {"content": None}}]}),
        openai="sk-test",
    )

    result = adapter.extract(IMAGE, "image/png", "travel", "openai")

    assert result.success is False
    assert result.error_message == "Unexpected or missing content in response from OpenAI API"


def test_transport_error_does_not_leak_key():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError(f"cannot reach {request.url}", request=request)

    adapter, _ = _adapter(handler, gemini="very-secret-key")
    result = adapter.extract(IMAGE, "image/png", "travel", "gemini")

    assert result.success is False
    assert "very-secret-key" not in result.error_message
    assert "Gemini" in result.error_message


def test_unparseable_completion_keeps_raw_text():
    adapter, _ = _adapter(
        lambda request: httpx.Response(
            200, json={"choices": [{"message": {"content": "Sorry, I can't read that."}}]}
        ),
        openai="sk-test",
    )

    result = adapter.extract(IMAGE, "image/png", "travel", "openai")

    assert result.success is False
    assert result.raw_text == "Sorry, I can't read that."


def test_odometer_without_digits_sets_no_reading():
    adapter, _ = _adapter(
        lambda request: httpx.Response(
            200, json={"choices": [{"message": {"content": "The display is blurry."}}]}
        ),
        openai="sk-test",
    )

    result = adapter.extract(IMAGE, "image/png", "odometer", "openai")

    assert result.success is False
    assert "numerical reading" in result.error_message
    assert "reading" not in result.fields


@pytest.mark.parametrize(
    ("provider", "status_code", "success"),
    [("openai", 200, True), ("gemini", 403, False), ("claude", 200, True)],
)
def test_check_key(provider, status_code, success):
    adapter, calls = _adapter(lambda request: httpx.Response(status_code, json={"data": []}))

    result = adapter.check_key(provider, "candidate-key")

    assert result.success is success
    assert len(calls) == 1
    if provider == "claude":
        assert calls[0].method == "POST"
        assert calls[0].headers["x-api-key"] == "candidate-key"
    else:
        assert calls[0].method == "GET"


def test_check_key_requires_a_key():
    adapter, calls = _adapter(lambda request: httpx.Response(200, json={}))

    result = adapter.check_key("openai")

    assert result.success is False
    assert calls == []
