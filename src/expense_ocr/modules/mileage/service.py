from __future__ import annotations

import uuid

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from expense_ocr.core.logging import get_logger, log_event
from expense_ocr.core.storage import build_object_key
from expense_ocr.modules.extraction.prompts import ODOMETER
from expense_ocr.modules.files.service import UploadedFile, discard_upload, store_upload
from expense_ocr.modules.identity.models import User
from expense_ocr.modules.mileage.models import EntryMethod, MileageLog, OdometerSide
from expense_ocr.modules.reconciliation.models import RecordStatus
from expense_ocr.modules.reconciliation.service import compute_distance
from expense_ocr.modules.tasks.models import Task, TaskKind
from expense_ocr.modules.tasks.service import create_task

logger = get_logger(__name__)

ODOMETER_PREFIX = "odometer-images"


def create_mileage_log(
    session: Session,
    *,
    user: User,
    trip_name: str,
    trip_date: str,
    purpose: str | None = None,
    start_odometer: str | None = None,
    end_odometer: str | None = None,
) -> MileageLog:
    log = MileageLog(
        owner_id=user.id,
        trip_name=trip_name,
        trip_date=trip_date,
        purpose=purpose,
        start_odometer=(start_odometer or "").strip(),
        end_odometer=(end_odometer or "").strip(),
        entry_method=EntryMethod.MANUAL,
        status=RecordStatus.COMPLETE,
    )
    log.calculated_distance = compute_distance(log.start_odometer, log.end_odometer)
    session.add(log)
    session.commit()
    session.refresh(log)
    return log


def attach_odometer_image(
    session: Session,
    *,
    log: MileageLog,
    side: OdometerSide,
    image: UploadedFile,
    provider: str,
) -> Task:
    """Store an odometer photo for one end of the trip and queue reading extraction."""
    if not image.body:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded image is empty")

    key = build_object_key(kind=ODOMETER_PREFIX, owner_id=log.owner_id, filename=image.filename)
    store_upload(key, image)

    if side == OdometerSide.START:
        log.start_image_path = key
    else:
        log.end_image_path = key
    log.status = RecordStatus.PENDING
    log.ocr_error = None
    try:
        session.add(log)
        task = create_task(
            session,
            owner_id=log.owner_id,
            kind=TaskKind.RECEIPT_EXTRACTION,
            payload={
                "target_type": "mileage_log",
                "target_id": str(log.id),
                "storage_path": key,
                "mime_type": image.content_type,
                "template": ODOMETER,
                "provider": provider,
                "odometer_side": side.value,
            },
            commit=False,
        )
        session.commit()
    except Exception:
        session.rollback()
        discard_upload(key)
        raise

    session.refresh(task)
    log_event(
        logger,
        "mileage.odometer_image.attached",
        mileage_log_id=str(log.id),
        task_id=str(task.id),
        side=side.value,
    )
    return task


def list_mileage_logs(session: Session, *, user: User) -> list[MileageLog]:
    return list(
        session.scalars(
            select(MileageLog)
            .where(MileageLog.owner_id == user.id)
            .order_by(MileageLog.created_at.desc())
        )
    )


def get_mileage_log_for_user(session: Session, *, log_id: uuid.UUID, user: User) -> MileageLog:
    log = session.scalar(select(MileageLog).where(MileageLog.id == log_id))
    if not log:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mileage log not found")
    if log.owner_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
    return log
