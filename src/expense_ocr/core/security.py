from __future__ import annotations

from datetime import timedelta
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from expense_ocr.core.config import settings
from expense_ocr.core.models import utcnow

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def _encode(claims: dict[str, Any], *, expires_in: timedelta) -> str:
    payload = {**claims, "exp": utcnow() + expires_in}
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def _decode(token: str) -> dict[str, Any] | None:
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None


def create_access_token(*, subject: str, expires_minutes: int | None = None) -> str:
    minutes = expires_minutes or settings.access_token_exp_minutes
    return _encode({"sub": subject}, expires_in=timedelta(minutes=minutes))


def decode_access_token(token: str) -> str | None:
    payload = _decode(token)
    if payload is None or payload.get("scope") == "file":
        return None
    subject = payload.get("sub")
    return subject if isinstance(subject, str) else None


def create_file_token(*, key: str, expires_seconds: int) -> str:
    """Short-lived token granting read access to one stored object."""
    return _encode({"key": key, "scope": "file"}, expires_in=timedelta(seconds=expires_seconds))


def decode_file_token(token: str) -> str | None:
    payload = _decode(token)
    if payload is None or payload.get("scope") != "file":
        return None
    key = payload.get("key")
    return key if isinstance(key, str) else None
