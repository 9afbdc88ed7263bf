from __future__ import annotations

import enum
import uuid

from sqlalchemy import Enum, ForeignKey, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_ocr.core.models import Base, Timestamped, UUIDPrimaryKey


class TaskKind(str, enum.Enum):
    RECEIPT_EXTRACTION = "receipt_extraction"
    EXPORT = "export"


class TaskState(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Forward edges only; terminal states have none.
ALLOWED_TRANSITIONS: dict[TaskState, frozenset[TaskState]] = {
    TaskState.PENDING: frozenset({TaskState.PROCESSING}),
    TaskState.PROCESSING: frozenset({TaskState.COMPLETED, TaskState.FAILED}),
    TaskState.COMPLETED: frozenset(),
    TaskState.FAILED: frozenset(),
}


class Task(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "tasks_task"

    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), index=True
    )
    kind: Mapped[TaskKind] = mapped_column(Enum(TaskKind, native_enum=False), index=True)
    state: Mapped[TaskState] = mapped_column(Enum(TaskState, native_enum=False), index=True)
    payload: Mapped[str] = mapped_column(Text, default="{}")
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    owner = relationship("User")
