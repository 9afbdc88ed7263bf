"""
Turn a provider's free-form completion into typed fields.

Parsing runs as two stages, each returning ``Ok(value)`` or ``Err(reason)``:
the structured stage reads a JSON object (optionally wrapped in a Markdown code
fence) and the fallback stage scans the raw text for the first numeric token.
Only the odometer template uses the fallback.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")

_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_NUMERIC_TOKEN_RE = re.compile(r"\d+(?:[.,]\d+)*")
_NON_NUMERIC_RE = re.compile(r"[^0-9.]")

NO_READING_ERROR = "Could not extract a numerical reading from the response."
BAD_READING_ERROR = "Could not parse a valid odometer reading from extracted text."
NOT_JSON_ERROR = "Response was not a valid JSON object."


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    reason: str


ParseResult = Ok[T] | Err


def strip_code_fences(raw_text: str) -> str:
    return _CODE_FENCE_RE.sub(r"\1", raw_text).strip()


def parse_structured(raw_text: str) -> dict[str, Any] | None:
    """JSON object from the completion, or None when it is not one."""
    if not isinstance(raw_text, str):
        return None
    try:
        data = json.loads(strip_code_fences(raw_text))
    except (json.JSONDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def clean_numeric(text: str) -> float | None:
    cleaned = _NON_NUMERIC_RE.sub("", text)
    head, sep, tail = cleaned.partition(".")
    if sep:
        # "1.234.5" -> "1.2345": the first point is the decimal separator.
        cleaned = f"{head}.{tail.replace('.', '')}"
    if not cleaned.strip("."):
        return None
    try:
        value = float(cleaned)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _normalize_separators(token: str) -> str:
    if "," not in token:
        return token
    if "." in token or token.count(",") > 1:
        # Commas are grouping separators: "45,231.5", "1,234,567".
        return token.replace(",", "")
    return token.replace(",", ".")


def parse_numeric_fallback(raw_text: str) -> float | None:
    """First integer or decimal number in the text, or None."""
    if not isinstance(raw_text, str):
        return None
    match = _NUMERIC_TOKEN_RE.search(raw_text)
    if not match:
        return None
    return clean_numeric(_normalize_separators(match.group(0)))


def try_structured(raw_text: str) -> ParseResult[dict[str, Any]]:
    data = parse_structured(raw_text)
    if data is None:
        return Err(NOT_JSON_ERROR)
    return Ok(data)


def try_fallback(raw_text: str) -> ParseResult[float]:
    if not isinstance(raw_text, str) or not _NUMERIC_TOKEN_RE.search(raw_text):
        return Err(NO_READING_ERROR)
    value = parse_numeric_fallback(raw_text)
    if value is None:
        return Err(BAD_READING_ERROR)
    return Ok(value)


def _reading_value(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        # Commas here are grouping ("123,456"); the decimal-comma rule is only for free text.
        return clean_numeric(value)
    return None


def parse_odometer_reading(raw_text: str) -> ParseResult[float]:
    structured = try_structured(raw_text)
    if isinstance(structured, Ok):
        reading = _reading_value(structured.value.get("reading"))
        if reading is not None:
            return Ok(reading)
    return try_fallback(raw_text)


def parse_receipt_fields(raw_text: str) -> ParseResult[dict[str, Any]]:
    return try_structured(raw_text)
