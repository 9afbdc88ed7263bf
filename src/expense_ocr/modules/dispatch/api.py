from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from expense_ocr.api.deps import get_current_user, get_extraction_adapter
from expense_ocr.core.config import settings
from expense_ocr.core.db import db_session
from expense_ocr.modules.dispatch.schemas import DispatchOutcomeOut
from expense_ocr.modules.dispatch.service import process_next
from expense_ocr.modules.extraction.service import ExtractionAdapter
from expense_ocr.modules.identity.models import User

router = APIRouter(tags=["dispatch"])


@router.post(
    "/tasks/process-next", response_model=DispatchOutcomeOut, response_model_exclude_none=True
)
def process_next_endpoint(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
    adapter: ExtractionAdapter = Depends(get_extraction_adapter),
) -> DispatchOutcomeOut:
    outcome = process_next(
        session,
        owner_id=user.id,
        adapter=adapter,
        default_provider=settings.extraction_provider,
    )
    return DispatchOutcomeOut(
        message=outcome.message,
        task_id=outcome.task_id,
        target_id=outcome.target_id,
        extracted_fields=outcome.extracted_fields,
        error=outcome.error,
    )
