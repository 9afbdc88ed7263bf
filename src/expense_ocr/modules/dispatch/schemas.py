from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel


class DispatchOutcomeOut(BaseModel):
    message: str
    task_id: uuid.UUID | None = None
    target_id: uuid.UUID | None = None
    extracted_fields: dict[str, Any] | None = None
    error: str | None = None
