from __future__ import annotations

import os
import time
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from expense_ocr.core.config import settings
from expense_ocr.core.logging import get_logger, log_event, log_exception, monotonic_ms
from expense_ocr.core.security import create_file_token

logger = get_logger(__name__)

_MISSING_S3_CODES = {"NoSuchKey", "404", "NotFound"}

_RETRYABLE_S3_CODES = {
    "RequestTimeout",
    "Throttling",
    "ThrottlingException",
    "SlowDown",
    "InternalError",
    "ServiceUnavailable",
}


class StorageError(RuntimeError):
    pass


@dataclass(frozen=True)
class StoredObject:
    key: str
    byte_size: int
    content_type: str | None = None


def build_object_key(*, kind: str, owner_id: uuid.UUID | str, filename: str | None) -> str:
    """`<kind>/<owner>/<uuid>-<name>`; the random part keeps same-named uploads apart."""
    name = PurePosixPath((filename or "upload.bin").replace("\\", "/")).name or "upload.bin"
    return f"{kind}/{owner_id}/{uuid.uuid4()}-{name}"


class ObjectStorage:
    backend = "abstract"

    def put(self, *, key: str, body: bytes, content_type: str | None = None) -> StoredObject:  # pragma: no cover
        raise NotImplementedError

    def get(self, *, key: str) -> bytes:  # pragma: no cover
        raise NotImplementedError

    def delete(self, *, key: str) -> None:  # pragma: no cover
        raise NotImplementedError

    def signed_url(self, *, key: str, expires_seconds: int | None = None) -> str:  # pragma: no cover
        raise NotImplementedError

    def _checked(self, key: str, data: bytes | None, start: float) -> bytes:
        if not data:
            log_event(
                logger,
                "storage.get.failure",
                backend=self.backend,
                storage_key=key,
                reason="empty",
                duration_ms=monotonic_ms(start),
            )
            raise StorageError(f"Object is empty: {key}")
        log_event(
            logger,
            "storage.get.success",
            backend=self.backend,
            storage_key=key,
            byte_size=len(data),
            duration_ms=monotonic_ms(start),
        )
        return data


class LocalObjectStorage(ObjectStorage):
    backend = "local"

    def __init__(self, root: Path):
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if not path.is_relative_to(self._root.resolve()):
            raise StorageError(f"Invalid object key: {key}")
        return path

    def put(self, *, key: str, body: bytes, content_type: str | None = None) -> StoredObject:
        start = time.monotonic()
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)
        except OSError as e:
            log_exception(
                logger, "storage.put.failure", backend="local", storage_key=key, byte_size=len(body)
            )
            raise StorageError(f"Could not store object: {key}") from e
        log_event(
            logger,
            "storage.put.success",
            backend="local",
            storage_key=key,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )
        return StoredObject(key=key, byte_size=len(body), content_type=content_type)

    def get(self, *, key: str) -> bytes:
        start = time.monotonic()
        path = self._path(key)
        if not path.is_file():
            log_event(
                logger,
                "storage.get.failure",
                backend="local",
                storage_key=key,
                reason="missing",
                duration_ms=monotonic_ms(start),
            )
            raise StorageError(f"Object not found: {key}")
        return self._checked(key, path.read_bytes(), start)

    def delete(self, *, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            log_exception(logger, "storage.delete.failure", backend="local", storage_key=key)
            raise StorageError(f"Could not delete object: {key}") from e
        log_event(logger, "storage.delete.success", backend="local", storage_key=key)

    def signed_url(self, *, key: str, expires_seconds: int | None = None) -> str:
        ttl = expires_seconds or settings.signed_url_ttl_seconds
        token = create_file_token(key=key, expires_seconds=ttl)
        log_event(logger, "storage.sign.success", backend="local", storage_key=key, ttl_s=ttl)
        return f"{settings.base_url.rstrip('/')}/api/files/{quote(key)}?token={token}"


class S3ObjectStorage(ObjectStorage):
    backend = "s3"

    def __init__(self) -> None:
        region = settings.s3_region
        if not region or region.lower() == "auto":
            region = "us-east-1"
        session = boto3.session.Session(
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            region_name=region,
        )
        config = Config(
            s3={"addressing_style": "virtual"},
            retries={"max_attempts": 3, "mode": "adaptive"},
            connect_timeout=30,
            read_timeout=60,
        )
        self._client = session.client(
            "s3", endpoint_url=settings.s3_endpoint_url or None, config=config
        )
        self._bucket = settings.s3_bucket

    @staticmethod
    def _error_code(error: Exception) -> str | None:
        if isinstance(error, ClientError):
            return (error.response.get("Error") or {}).get("Code")
        return None

    def _should_retry(self, error: Exception) -> bool:
        if isinstance(error, ClientError):
            return self._error_code(error) in _RETRYABLE_S3_CODES
        return isinstance(error, BotoCoreError)

    def put(self, *, key: str, body: bytes, content_type: str | None = None) -> StoredObject:
        start = time.monotonic()
        extra = {"ContentType": content_type} if content_type else {}
        max_attempts = 4
        for attempt in range(1, max_attempts + 1):
            try:
                # PutObject replaces whatever is stored under the key.
                self._client.put_object(Bucket=self._bucket, Key=key, Body=body, **extra)
                break
            except (BotoCoreError, ClientError) as e:
                if attempt < max_attempts and self._should_retry(e):
                    delay_s = min(2.0, 0.25 * (2 ** (attempt - 1)))
                    log_event(
                        logger,
                        "storage.put.retry",
                        backend="s3",
                        storage_key=key,
                        attempt=attempt,
                        delay_s=delay_s,
                        error_code=self._error_code(e),
                    )
                    time.sleep(delay_s)
                    continue
                log_exception(
                    logger, "storage.put.failure", backend="s3", storage_key=key, attempt=attempt
                )
                raise StorageError(f"Could not store object: {key}") from e
        log_event(
            logger,
            "storage.put.success",
            backend="s3",
            storage_key=key,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )
        return StoredObject(key=key, byte_size=len(body), content_type=content_type)

    def get(self, *, key: str) -> bytes:
        start = time.monotonic()
        try:
            resp = self._client.get_object(Bucket=self._bucket, Key=key)
            data = resp["Body"].read()
        except (BotoCoreError, ClientError) as e:
            log_event(
                logger,
                "storage.get.failure",
                backend="s3",
                storage_key=key,
                error_code=self._error_code(e),
                duration_ms=monotonic_ms(start),
            )
            if self._error_code(e) in _MISSING_S3_CODES:
                raise StorageError(f"Object not found: {key}") from e
            raise StorageError(f"Could not load object: {key}") from e
        return self._checked(key, data, start)

    def delete(self, *, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            log_exception(logger, "storage.delete.failure", backend="s3", storage_key=key)
            raise StorageError(f"Could not delete object: {key}") from e
        log_event(logger, "storage.delete.success", backend="s3", storage_key=key)

    def signed_url(self, *, key: str, expires_seconds: int | None = None) -> str:
        ttl = expires_seconds or settings.signed_url_ttl_seconds
        try:
            url = self._client.generate_presigned_url(
                "get_object", Params={"Bucket": self._bucket, "Key": key}, ExpiresIn=ttl
            )
        except (BotoCoreError, ClientError) as e:
            log_exception(logger, "storage.sign.failure", backend="s3", storage_key=key)
            raise StorageError(f"Could not sign object URL: {key}") from e
        log_event(logger, "storage.sign.success", backend="s3", storage_key=key, ttl_s=ttl)
        return url


_storage: ObjectStorage | None = None


def get_storage() -> ObjectStorage:
    global _storage  # noqa: PLW0603
    if _storage is not None:
        return _storage

    if settings.storage_backend == "s3":
        _storage = S3ObjectStorage()
    else:
        root = settings.local_storage_path
        if not root.is_absolute():
            root = Path(os.getcwd()) / root
        _storage = LocalObjectStorage(root)
    return _storage
