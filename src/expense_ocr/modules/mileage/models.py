from __future__ import annotations

import enum
import uuid

from sqlalchemy import Enum, Float, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_ocr.core.models import Base, Timestamped, UUIDPrimaryKey
from expense_ocr.modules.reconciliation.models import ExtractionTracked


class EntryMethod(str, enum.Enum):
    MANUAL = "manual"
    OCR = "ocr"


class OdometerSide(str, enum.Enum):
    START = "start"
    END = "end"


class MileageLog(UUIDPrimaryKey, Timestamped, ExtractionTracked, Base):
    __tablename__ = "mileage_mileage_log"

    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), index=True
    )
    trip_name: Mapped[str] = mapped_column(String(200), default="")
    trip_date: Mapped[str] = mapped_column(String(50), default="")
    purpose: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_odometer: Mapped[str] = mapped_column(String(50), default="")
    end_odometer: Mapped[str] = mapped_column(String(50), default="")
    calculated_distance: Mapped[float | None] = mapped_column(Float, nullable=True)
    start_image_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    end_image_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    entry_method: Mapped[EntryMethod] = mapped_column(
        Enum(EntryMethod, native_enum=False), default=EntryMethod.MANUAL
    )

    owner = relationship("User")
