from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel

from expense_ocr.modules.reconciliation.models import RecordStatus


class ExpenseOut(BaseModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    trip_name: str
    type: str
    date: str
    vendor: str
    location: str
    cost: str
    comments: str
    receipt_path: str | None
    status: RecordStatus
    ocr_error: str | None
    created_at: datetime
    updated_at: datetime


class ExpenseCreatedOut(ExpenseOut):
    task_id: uuid.UUID | None = None


class SignedUrlOut(BaseModel):
    url: str
    expires_in: int
