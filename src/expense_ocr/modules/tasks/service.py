from __future__ import annotations

import json
import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from expense_ocr.core.logging import get_logger, log_event
from expense_ocr.core.models import utcnow
from expense_ocr.modules.identity.models import User
from expense_ocr.modules.tasks.models import ALLOWED_TRANSITIONS, Task, TaskKind, TaskState

logger = get_logger(__name__)


class InvalidTaskTransition(RuntimeError):
    pass


def task_payload(task: Task) -> dict[str, Any]:
    try:
        data = json.loads(task.payload or "{}")
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def create_task(
    session: Session,
    *,
    owner_id: uuid.UUID,
    kind: TaskKind,
    payload: dict[str, Any],
    commit: bool = True,
) -> Task:
    """Insert a pending task.

    With ``commit=False`` the row is only flushed so the caller can commit it
    together with the record the task points at.
    """
    task = Task(
        owner_id=owner_id,
        kind=kind,
        state=TaskState.PENDING,
        payload=json.dumps(payload, default=str),
        error_message=None,
    )
    session.add(task)
    if commit:
        session.commit()
        session.refresh(task)
    else:
        session.flush()
    log_event(logger, "task.created", task_id=str(task.id), kind=kind.value, owner_id=str(owner_id))
    return task


def get_task(session: Session, *, task_id: uuid.UUID) -> Task | None:
    return session.scalar(select(Task).where(Task.id == task_id))


def list_tasks(session: Session, *, owner_id: uuid.UUID) -> list[Task]:
    return list(
        session.scalars(
            select(Task).where(Task.owner_id == owner_id).order_by(Task.created_at.desc())
        )
    )


def list_pending_tasks(session: Session, *, owner_id: uuid.UUID) -> list[Task]:
    # Oldest first so a steady stream of uploads cannot starve earlier work.
    return list(
        session.scalars(
            select(Task)
            .where(Task.owner_id == owner_id, Task.state == TaskState.PENDING)
            .order_by(Task.created_at.asc(), Task.id.asc())
        )
    )


def has_open_tasks_for_target(
    session: Session, *, owner_id: uuid.UUID, target_id: uuid.UUID, exclude_task_id: uuid.UUID
) -> bool:
    """True while another pending or processing task points at ``target_id``."""
    candidates = session.scalars(
        select(Task).where(
            Task.owner_id == owner_id,
            Task.id != exclude_task_id,
            Task.state.in_([TaskState.PENDING, TaskState.PROCESSING]),
        )
    )
    return any(task_payload(t).get("target_id") == str(target_id) for t in candidates)


def get_task_for_user(session: Session, *, task_id: uuid.UUID, user: User) -> Task:
    task = get_task(session, task_id=task_id)
    if not task:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    if task.owner_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
    return task


def claim_task(session: Session, *, task_id: uuid.UUID) -> bool:
    """Move one task from pending to processing in a single conditional UPDATE.

    Returns True only for the caller whose statement changed the row.
    """
    result = session.execute(
        update(Task)
        .where(Task.id == task_id, Task.state == TaskState.PENDING)
        .values(state=TaskState.PROCESSING, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    session.commit()
    claimed = result.rowcount == 1
    log_event(
        logger,
        "task.claim.success" if claimed else "task.claim.lost",
        task_id=str(task_id),
    )
    return claimed


def claim_next_task(session: Session, *, owner_id: uuid.UUID) -> Task | None:
    for candidate in list_pending_tasks(session, owner_id=owner_id):
        if claim_task(session, task_id=candidate.id):
            return get_task(session, task_id=candidate.id)
    return None


def transition_task(
    session: Session,
    *,
    task_id: uuid.UUID,
    new_state: TaskState,
    result: dict[str, Any] | None = None,
    error: str | None = None,
) -> Task:
    task = get_task(session, task_id=task_id)
    if not task:
        raise LookupError(f"Task not found: {task_id}")

    if new_state not in ALLOWED_TRANSITIONS[task.state]:
        raise InvalidTaskTransition(
            f"Task {task_id} cannot move from {task.state.value} to {new_state.value}"
        )
    if new_state == TaskState.COMPLETED and result is None:
        raise ValueError("A completed task requires a result payload")
    if new_state == TaskState.FAILED and not error:
        raise ValueError("A failed task requires an error message")

    previous = task.state
    if result is not None:
        task.payload = json.dumps({**task_payload(task), "result": result}, default=str)
    task.error_message = error if new_state == TaskState.FAILED else None
    task.state = new_state
    task.updated_at = utcnow()
    session.add(task)
    session.commit()
    session.refresh(task)
    log_event(
        logger,
        "task.transition",
        task_id=str(task.id),
        from_state=previous.value,
        to_state=new_state.value,
        error=error,
    )
    return task
