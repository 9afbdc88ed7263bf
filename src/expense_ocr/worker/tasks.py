from __future__ import annotations

# Every mapped class must be registered before a task opens a session.
# isort: off
import expense_ocr.models  # noqa: F401
# isort: on

import time
import uuid

from expense_ocr.core.config import settings
from expense_ocr.core.db import SessionLocal
from expense_ocr.core.logging import (
    get_logger,
    log_event,
    log_exception,
    monotonic_ms,
    reset_task_context,
    set_task_context,
)
from expense_ocr.modules.extraction.service import build_adapter
from expense_ocr.worker.celery_app import celery_app

logger = get_logger(__name__)


@celery_app.task(name="process_next_task", bind=True)
def process_next_task(self, owner_id: str) -> dict[str, str | None]:
    from expense_ocr.modules.dispatch.service import process_next

    celery_task_id = getattr(self.request, "id", None)
    token = set_task_context(celery_task_id)
    start = time.monotonic()
    log_event(logger, "celery.task.start", task_name="process_next_task", owner_id=owner_id)
    adapter = build_adapter()
    try:
        with SessionLocal() as session:
            outcome = process_next(
                session,
                owner_id=uuid.UUID(owner_id),
                adapter=adapter,
                default_provider=settings.extraction_provider,
            )
        log_event(
            logger,
            "celery.task.finish",
            task_name="process_next_task",
            owner_id=owner_id,
            status=outcome.status,
            duration_ms=monotonic_ms(start),
        )
        return {
            "status": outcome.status,
            "task_id": str(outcome.task_id) if outcome.task_id else None,
            "error": outcome.error,
        }
    except Exception:
        log_exception(
            logger,
            "celery.task.error",
            task_name="process_next_task",
            owner_id=owner_id,
            duration_ms=monotonic_ms(start),
        )
        raise
    finally:
        adapter.close()
        reset_task_context(token)
