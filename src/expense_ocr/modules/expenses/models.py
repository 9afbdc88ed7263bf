from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_ocr.core.models import Base, Timestamped, UUIDPrimaryKey
from expense_ocr.modules.reconciliation.models import ExtractionTracked

UNKNOWN_VENDOR = "Unknown Vendor"
UNKNOWN_LOCATION = "Unknown Location"
GENERAL_EXPENSE = "General Expense"
TRAVEL_VENDOR = "Travel Vendor"
TRAVEL_LOCATION = "Travel Location"
TRAVEL_EXPENSE = "Travel Expense"


class Expense(UUIDPrimaryKey, Timestamped, ExtractionTracked, Base):
    __tablename__ = "expenses_expense"

    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), index=True
    )
    trip_name: Mapped[str] = mapped_column(String(200), default="")
    type: Mapped[str] = mapped_column(String(100), default="")
    date: Mapped[str] = mapped_column(String(50), default="")
    vendor: Mapped[str] = mapped_column(String(200), default="")
    location: Mapped[str] = mapped_column(String(200), default="")
    # Kept as entered ("45.50", "0"); extraction writes the provider's number as text.
    cost: Mapped[str] = mapped_column(String(50), default="0")
    comments: Mapped[str] = mapped_column(Text, default="")
    receipt_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    owner = relationship("User")
