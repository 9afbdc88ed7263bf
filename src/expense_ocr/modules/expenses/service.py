from __future__ import annotations

import uuid
from dataclasses import dataclass

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from expense_ocr.core.logging import get_logger, log_event
from expense_ocr.core.storage import build_object_key, get_storage
from expense_ocr.modules.expenses.models import (
    GENERAL_EXPENSE,
    TRAVEL_EXPENSE,
    TRAVEL_LOCATION,
    TRAVEL_VENDOR,
    UNKNOWN_LOCATION,
    UNKNOWN_VENDOR,
    Expense,
)
from expense_ocr.modules.extraction.prompts import ODOMETER, TEMPLATES, TRAVEL
from expense_ocr.modules.files.service import UploadedFile, discard_upload, store_upload
from expense_ocr.modules.identity.models import User
from expense_ocr.modules.reconciliation.models import RecordStatus
from expense_ocr.modules.tasks.models import Task, TaskKind
from expense_ocr.modules.tasks.service import create_task

logger = get_logger(__name__)

RECEIPTS_PREFIX = "receipts"


@dataclass(frozen=True)
class ExpenseInput:
    trip_name: str
    date: str
    cost: str
    comments: str | None = None
    type: str | None = None
    description: str | None = None
    vendor: str | None = None
    location: str | None = None


def _apply_template_defaults(data: ExpenseInput, *, template: str) -> dict[str, str]:
    comments = (data.comments or "").strip()
    if template == TRAVEL:
        description = (data.description or "").strip()
        if description:
            comments = f"{description}\n\n{comments}" if comments else description
        return {
            "type": data.type or description or TRAVEL_EXPENSE,
            "vendor": data.vendor or TRAVEL_VENDOR,
            "location": data.location or TRAVEL_LOCATION,
            "comments": comments,
        }
    return {
        "type": data.type or GENERAL_EXPENSE,
        "vendor": data.vendor or UNKNOWN_VENDOR,
        "location": data.location or UNKNOWN_LOCATION,
        "comments": comments,
    }


def validate_template(template: str) -> str:
    template = (template or "").strip().lower()
    # Odometer readings belong to mileage logs; no expense field takes them.
    if template not in TEMPLATES or template == ODOMETER:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported expense template: {template}",
        )
    return template


def create_expense(
    session: Session,
    *,
    user: User,
    data: ExpenseInput,
    template: str,
    provider: str,
    receipt: UploadedFile | None = None,
) -> tuple[Expense, Task | None]:
    """Create an expense; with a receipt also store it and queue its extraction.

    The expense row and its task are committed together.
    """
    template = validate_template(template)
    if receipt is not None and not receipt.body:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded receipt is empty")

    receipt_key = None
    if receipt is not None:
        receipt_key = build_object_key(
            kind=RECEIPTS_PREFIX, owner_id=user.id, filename=receipt.filename
        )
        store_upload(receipt_key, receipt)

    expense = Expense(
        owner_id=user.id,
        trip_name=data.trip_name,
        date=data.date,
        cost=str(data.cost),
        receipt_path=receipt_key,
        status=RecordStatus.PENDING if receipt_key else RecordStatus.COMPLETE,
        ocr_error=None,
        **_apply_template_defaults(data, template=template),
    )
    task = None
    try:
        session.add(expense)
        session.flush()
        if receipt_key:
            task = create_task(
                session,
                owner_id=user.id,
                kind=TaskKind.RECEIPT_EXTRACTION,
                payload={
                    "target_type": "expense",
                    "target_id": str(expense.id),
                    "storage_path": receipt_key,
                    "mime_type": receipt.content_type if receipt else None,
                    "template": template,
                    "provider": provider,
                },
                commit=False,
            )
        session.commit()
    except Exception:
        session.rollback()
        if receipt_key:
            discard_upload(receipt_key)
        raise

    session.refresh(expense)
    if task is not None:
        session.refresh(task)
    log_event(
        logger,
        "expense.created",
        expense_id=str(expense.id),
        task_id=str(task.id) if task else None,
        status=expense.status.value,
        template=template,
    )
    return expense, task


def list_expenses(session: Session, *, user: User) -> list[Expense]:
    return list(
        session.scalars(
            select(Expense).where(Expense.owner_id == user.id).order_by(Expense.created_at.desc())
        )
    )


def get_expense_for_user(session: Session, *, expense_id: uuid.UUID, user: User) -> Expense:
    expense = session.scalar(select(Expense).where(Expense.id == expense_id))
    if not expense:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense not found")
    if expense.owner_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
    return expense


def receipt_url(expense: Expense, *, expires_seconds: int | None = None) -> str:
    if not expense.receipt_path:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense has no receipt")
    return get_storage().signed_url(key=expense.receipt_path, expires_seconds=expires_seconds)
