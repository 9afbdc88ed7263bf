from __future__ import annotations

from pydantic import BaseModel


class ProvidersOut(BaseModel):
    providers: list[str]
    configured: list[str]
    templates: list[str]
    default_provider: str
    default_template: str


class KeyCheckIn(BaseModel):
    api_key: str | None = None


class KeyCheckOut(BaseModel):
    success: bool
    message: str
