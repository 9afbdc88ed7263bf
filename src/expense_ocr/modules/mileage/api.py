from __future__ import annotations

import uuid

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile, status
from sqlalchemy.orm import Session

from expense_ocr.api.deps import get_current_user
from expense_ocr.core.config import settings
from expense_ocr.core.db import db_session
from expense_ocr.core.logging import get_logger, log_event
from expense_ocr.modules.dispatch.service import trigger_dispatch
from expense_ocr.modules.files.service import UploadedFile
from expense_ocr.modules.identity.models import User
from expense_ocr.modules.mileage.models import OdometerSide
from expense_ocr.modules.mileage.schemas import MileageLogCreate, MileageLogOut, OdometerImageOut
from expense_ocr.modules.mileage.service import (
    attach_odometer_image,
    create_mileage_log,
    get_mileage_log_for_user,
    list_mileage_logs,
)

router = APIRouter(tags=["mileage"])
logger = get_logger(__name__)


@router.post("/mileage-logs", response_model=MileageLogOut, status_code=status.HTTP_201_CREATED)
def create_mileage_log_endpoint(
    payload: MileageLogCreate,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> MileageLogOut:
    log = create_mileage_log(
        session,
        user=user,
        trip_name=payload.trip_name,
        trip_date=payload.trip_date,
        purpose=payload.purpose,
        start_odometer=payload.start_odometer,
        end_odometer=payload.end_odometer,
    )
    return MileageLogOut.model_validate(log, from_attributes=True)


@router.get("/mileage-logs", response_model=list[MileageLogOut])
def list_mileage_logs_endpoint(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[MileageLogOut]:
    logs = list_mileage_logs(session, user=user)
    return [MileageLogOut.model_validate(log, from_attributes=True) for log in logs]


@router.get("/mileage-logs/{log_id}", response_model=MileageLogOut)
def get_mileage_log_endpoint(
    log_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> MileageLogOut:
    log = get_mileage_log_for_user(session, log_id=log_id, user=user)
    return MileageLogOut.model_validate(log, from_attributes=True)


@router.post(
    "/mileage-logs/{log_id}/odometer-image",
    response_model=OdometerImageOut,
    status_code=status.HTTP_202_ACCEPTED,
)
async def upload_odometer_image(
    log_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    side: OdometerSide = Form(...),
    image: UploadFile = File(...),
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> OdometerImageOut:
    log = get_mileage_log_for_user(session, log_id=log_id, user=user)
    body = await image.read()
    log_event(
        logger,
        "upload.received",
        mileage_log_id=str(log.id),
        filename=image.filename,
        content_type=image.content_type,
        byte_size=len(body),
    )
    task = attach_odometer_image(
        session,
        log=log,
        side=side,
        image=UploadedFile(
            filename=image.filename or "odometer.bin",
            content_type=image.content_type,
            body=body,
        ),
        provider=settings.extraction_provider,
    )
    background_tasks.add_task(trigger_dispatch, user.id)
    session.refresh(log)
    return OdometerImageOut(
        mileage_log=MileageLogOut.model_validate(log, from_attributes=True), task_id=task.id
    )
