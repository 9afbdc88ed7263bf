from __future__ import annotations

import mimetypes
import time
import uuid
from dataclasses import dataclass
from typing import Any, Literal

from sqlalchemy import select
from sqlalchemy.orm import Session

from expense_ocr.core.logging import get_logger, log_event, log_exception, monotonic_ms
from expense_ocr.core.storage import ObjectStorage, StorageError, get_storage
from expense_ocr.modules.expenses.models import Expense
from expense_ocr.modules.extraction.prompts import GENERAL, ODOMETER
from expense_ocr.modules.extraction.service import ExtractionAdapter
from expense_ocr.modules.mileage.models import MileageLog, OdometerSide
from expense_ocr.modules.reconciliation.models import ExtractionTracked, RecordStatus
from expense_ocr.modules.reconciliation.service import (
    mark_failed,
    mark_processing,
    reconcile_expense,
    reconcile_mileage,
)
from expense_ocr.modules.tasks.models import Task, TaskKind, TaskState
from expense_ocr.modules.tasks.service import (
    claim_next_task,
    has_open_tasks_for_target,
    task_payload,
    transition_task,
)

logger = get_logger(__name__)

TARGET_EXPENSE = "expense"
TARGET_MILEAGE_LOG = "mileage_log"

NO_TASKS_MESSAGE = "No pending tasks found"
SUCCESS_MESSAGE = "Task processed successfully"
FAILURE_MESSAGE = "OCR processing failed"
RESULT_MESSAGE = "OCR processing completed successfully"


@dataclass(frozen=True)
class DispatchOutcome:
    status: Literal["idle", "completed", "failed"]
    message: str
    task_id: uuid.UUID | None = None
    target_id: uuid.UUID | None = None
    extracted_fields: dict[str, Any] | None = None
    error: str | None = None


class DispatchFailure(Exception):
    """Ends one dispatch run as a failed task; ``target`` is marked ocr_failed when known."""

    def __init__(
        self,
        message: str,
        *,
        target: ExtractionTracked | None = None,
        result: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.target = target
        self.result = result


def _target_id(payload: dict[str, Any]) -> uuid.UUID:
    raw_id = payload.get("target_id")
    if not raw_id or not payload.get("storage_path"):
        raise DispatchFailure("Invalid task payload: target_id and storage_path are required")
    try:
        return uuid.UUID(str(raw_id))
    except ValueError as e:
        raise DispatchFailure(f"Invalid task payload: bad target_id {raw_id!r}") from e


def load_target(session: Session, *, task: Task, payload: dict[str, Any]) -> ExtractionTracked:
    target_id = _target_id(payload)
    target_type = payload.get("target_type") or TARGET_EXPENSE
    if target_type == TARGET_EXPENSE:
        model: type[Expense] | type[MileageLog] = Expense
    elif target_type == TARGET_MILEAGE_LOG:
        model = MileageLog
    else:
        raise DispatchFailure(f"Invalid task payload: unknown target_type {target_type!r}")

    target = session.scalar(
        select(model).where(model.id == target_id, model.owner_id == task.owner_id)
    )
    if target is None:
        raise DispatchFailure(f"Target record not found: {target_type} {target_id}")
    return target


def _mime_type(payload: dict[str, Any]) -> str:
    mime_type = payload.get("mime_type")
    if isinstance(mime_type, str) and mime_type:
        return mime_type
    guessed, _ = mimetypes.guess_type(str(payload.get("storage_path") or ""))
    return guessed or "image/jpeg"


def _run(
    session: Session,
    task: Task,
    *,
    adapter: ExtractionAdapter,
    storage: ObjectStorage,
    default_provider: str,
) -> DispatchOutcome:
    if task.kind != TaskKind.RECEIPT_EXTRACTION:
        raise DispatchFailure(f"Unsupported task kind: {task.kind.value}")

    payload = task_payload(task)
    target = load_target(session, task=task, payload=payload)
    mark_processing(target)
    session.add(target)
    session.commit()

    try:
        image = storage.get(key=str(payload["storage_path"]))
    except StorageError as e:
        raise DispatchFailure(f"Could not load stored image: {e}", target=target) from e

    is_mileage = isinstance(target, MileageLog)
    template = payload.get("template") or (ODOMETER if is_mileage else GENERAL)
    provider = payload.get("provider") or default_provider
    result = adapter.extract(image, _mime_type(payload), template, provider)
    if not result.success:
        raise DispatchFailure(
            result.error_message or "Extraction failed",
            target=target,
            result={"raw_text": result.raw_text} if result.raw_text else None,
        )

    if is_mileage:
        side = OdometerSide(payload.get("odometer_side") or OdometerSide.START.value)
        updated = reconcile_mileage(target, result.fields, side=side)
        if has_open_tasks_for_target(
            session, owner_id=task.owner_id, target_id=target.id, exclude_task_id=task.id
        ):
            # The other odometer photo is still queued.
            target.status = RecordStatus.PENDING
    else:
        updated = reconcile_expense(target, result.fields)
    session.add(target)
    transition_task(
        session,
        task_id=task.id,
        new_state=TaskState.COMPLETED,
        result={
            "message": RESULT_MESSAGE,
            "extracted_fields": result.fields,
            "updated_fields": updated,
            "raw_text": result.raw_text,
        },
    )
    return DispatchOutcome(
        status="completed",
        message=SUCCESS_MESSAGE,
        task_id=task.id,
        target_id=target.id,
        extracted_fields=result.fields,
    )


def _fail(
    session: Session,
    task_id: uuid.UUID,
    error: str,
    *,
    target: ExtractionTracked | None = None,
    result: dict[str, Any] | None = None,
) -> DispatchOutcome:
    if target is not None:
        mark_failed(target, error)
        session.add(target)
    transition_task(
        session, task_id=task_id, new_state=TaskState.FAILED, result=result, error=error
    )
    return DispatchOutcome(
        status="failed",
        message=FAILURE_MESSAGE,
        task_id=task_id,
        target_id=target.id if target is not None else None,
        error=error,
    )


def process_next(
    session: Session,
    *,
    owner_id: uuid.UUID,
    adapter: ExtractionAdapter,
    storage: ObjectStorage | None = None,
    default_provider: str = "gemini",
) -> DispatchOutcome:
    """Claim the owner's oldest pending task and drive it to a terminal state.

    Extraction, storage and lookup failures end as a failed task (and an
    ocr_failed target when there is one); they are never raised to the caller.
    """
    task = claim_next_task(session, owner_id=owner_id)
    if task is None:
        log_event(logger, "dispatch.idle", owner_id=str(owner_id))
        return DispatchOutcome(status="idle", message=NO_TASKS_MESSAGE)

    task_id = task.id
    start = time.monotonic()
    log_event(logger, "dispatch.start", task_id=str(task_id), owner_id=str(owner_id))
    try:
        outcome = _run(
            session,
            task,
            adapter=adapter,
            storage=storage or get_storage(),
            default_provider=default_provider,
        )
    except DispatchFailure as e:
        outcome = _fail(session, task_id, str(e), target=e.target, result=e.result)
    except Exception as e:  # noqa: BLE001
        log_exception(logger, "dispatch.error", task_id=str(task_id))
        session.rollback()
        outcome = _fail_unexpected(session, task_id, e)

    log_event(
        logger,
        "dispatch.finish",
        task_id=str(task_id),
        status=outcome.status,
        error=outcome.error,
        duration_ms=monotonic_ms(start),
    )
    return outcome


def _fail_unexpected(session: Session, task_id: uuid.UUID, error: Exception) -> DispatchOutcome:
    message = f"Unexpected error during extraction ({type(error).__name__})"
    task = session.get(Task, task_id)
    target = None
    if task is not None:
        try:
            target = load_target(session, task=task, payload=task_payload(task))
        except DispatchFailure:
            target = None
    return _fail(session, task_id, message, target=target)


def trigger_dispatch(owner_id: uuid.UUID) -> None:
    """Fire-and-forget: ask the worker to process the owner's next task.

    Losing this message only delays work; `POST /api/tasks/process-next` picks
    it up later, so enqueue errors are logged and dropped.
    """
    from expense_ocr.worker.tasks import process_next_task

    try:
        async_result = process_next_task.delay(str(owner_id))
    except Exception:  # noqa: BLE001
        log_exception(logger, "dispatch.trigger.failure", owner_id=str(owner_id))
        return
    log_event(
        logger,
        "dispatch.trigger.enqueued",
        owner_id=str(owner_id),
        celery_task_id=getattr(async_result, "id", None),
    )
