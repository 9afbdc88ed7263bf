from __future__ import annotations

import uuid

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile, status
from sqlalchemy.orm import Session

from expense_ocr.api.deps import get_current_user
from expense_ocr.core.config import settings
from expense_ocr.core.db import db_session
from expense_ocr.core.logging import get_logger, log_event
from expense_ocr.modules.dispatch.service import trigger_dispatch
from expense_ocr.modules.expenses.schemas import ExpenseCreatedOut, ExpenseOut, SignedUrlOut
from expense_ocr.modules.expenses.service import (
    ExpenseInput,
    create_expense,
    get_expense_for_user,
    list_expenses,
    receipt_url,
)
from expense_ocr.modules.files.service import UploadedFile
from expense_ocr.modules.identity.models import User

router = APIRouter(tags=["expenses"])
logger = get_logger(__name__)


@router.post("/expenses", response_model=ExpenseCreatedOut, status_code=status.HTTP_201_CREATED)
async def create_expense_endpoint(
    background_tasks: BackgroundTasks,
    trip_name: str = Form(...),
    date: str = Form(...),
    cost: str = Form(...),
    comments: str | None = Form(None),
    type: str | None = Form(None),
    description: str | None = Form(None),
    vendor: str | None = Form(None),
    location: str | None = Form(None),
    template: str | None = Form(None),
    receipt: UploadFile | None = File(None),
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ExpenseCreatedOut:
    uploaded = None
    if receipt is not None:
        body = await receipt.read()
        uploaded = UploadedFile(
            filename=receipt.filename or "receipt.bin",
            content_type=receipt.content_type,
            body=body,
        )
        log_event(
            logger,
            "upload.received",
            filename=uploaded.filename,
            content_type=uploaded.content_type,
            byte_size=len(body),
        )

    expense, task = create_expense(
        session,
        user=user,
        data=ExpenseInput(
            trip_name=trip_name,
            date=date,
            cost=cost,
            comments=comments,
            type=type,
            description=description,
            vendor=vendor,
            location=location,
        ),
        template=template or settings.extraction_template,
        provider=settings.extraction_provider,
        receipt=uploaded,
    )
    if task is not None:
        # Runs after the response is sent.
        background_tasks.add_task(trigger_dispatch, user.id)

    out = ExpenseOut.model_validate(expense, from_attributes=True)
    return ExpenseCreatedOut(**out.model_dump(), task_id=task.id if task else None)


@router.get("/expenses", response_model=list[ExpenseOut])
def list_expenses_endpoint(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[ExpenseOut]:
    return [ExpenseOut.model_validate(e, from_attributes=True) for e in list_expenses(session, user=user)]


@router.get("/expenses/{expense_id}", response_model=ExpenseOut)
def get_expense_endpoint(
    expense_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ExpenseOut:
    expense = get_expense_for_user(session, expense_id=expense_id, user=user)
    return ExpenseOut.model_validate(expense, from_attributes=True)


@router.get("/expenses/{expense_id}/receipt-url", response_model=SignedUrlOut)
def receipt_url_endpoint(
    expense_id: uuid.UUID,
    expires_in: int | None = None,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> SignedUrlOut:
    expense = get_expense_for_user(session, expense_id=expense_id, user=user)
    ttl = expires_in or settings.signed_url_ttl_seconds
    return SignedUrlOut(url=receipt_url(expense, expires_seconds=ttl), expires_in=ttl)
