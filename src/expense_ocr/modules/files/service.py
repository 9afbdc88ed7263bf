from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException, status

from expense_ocr.core.logging import get_logger, log_exception
from expense_ocr.core.security import decode_file_token
from expense_ocr.core.storage import StorageError, get_storage

logger = get_logger(__name__)


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    content_type: str | None
    body: bytes


def store_upload(key: str, upload: UploadedFile) -> None:
    try:
        get_storage().put(key=key, body=upload.body, content_type=upload.content_type)
    except StorageError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Could not store uploaded file"
        ) from e


def discard_upload(key: str) -> None:
    try:
        get_storage().delete(key=key)
    except StorageError:
        log_exception(logger, "upload.cleanup.failure", storage_key=key)


def read_signed_object(*, key: str, token: str) -> bytes:
    """Bytes behind a locally signed URL; the token must name this exact key."""
    if decode_file_token(token) != key:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired link")
    try:
        return get_storage().get(key=key)
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found") from e
