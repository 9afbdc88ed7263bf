from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, field_validator

from expense_ocr.modules.tasks.models import TaskKind, TaskState


class TaskOut(BaseModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    kind: TaskKind
    state: TaskState
    payload: dict[str, Any]
    error_message: str | None
    created_at: datetime
    updated_at: datetime

    @field_validator("payload", mode="before")
    @classmethod
    def _decode_payload(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return json.loads(value or "{}")
            except json.JSONDecodeError:
                return {"raw": value}
        return value

