from __future__ import annotations

import enum

from sqlalchemy import Enum, Text
from sqlalchemy.orm import Mapped, mapped_column


class RecordStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    OCR_FAILED = "ocr_failed"


class ExtractionTracked:
    """Columns shared by every record that extraction results are merged into."""

    status: Mapped[RecordStatus] = mapped_column(
        Enum(RecordStatus, native_enum=False), default=RecordStatus.COMPLETE, index=True
    )
    ocr_error: Mapped[str | None] = mapped_column(Text, nullable=True)
