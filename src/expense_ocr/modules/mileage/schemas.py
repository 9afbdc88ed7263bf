from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel

from expense_ocr.modules.mileage.models import EntryMethod
from expense_ocr.modules.reconciliation.models import RecordStatus


class MileageLogCreate(BaseModel):
    trip_name: str
    trip_date: str
    purpose: str | None = None
    start_odometer: str | None = None
    end_odometer: str | None = None


class MileageLogOut(BaseModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    trip_name: str
    trip_date: str
    purpose: str | None
    start_odometer: str
    end_odometer: str
    calculated_distance: float | None
    start_image_path: str | None
    end_image_path: str | None
    entry_method: EntryMethod
    status: RecordStatus
    ocr_error: str | None
    created_at: datetime
    updated_at: datetime


class OdometerImageOut(BaseModel):
    mileage_log: MileageLogOut
    task_id: uuid.UUID
