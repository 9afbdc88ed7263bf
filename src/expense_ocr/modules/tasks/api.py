from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from expense_ocr.api.deps import get_current_user
from expense_ocr.core.db import db_session
from expense_ocr.modules.identity.models import User
from expense_ocr.modules.tasks.schemas import TaskOut
from expense_ocr.modules.tasks.service import get_task_for_user, list_tasks

router = APIRouter(tags=["tasks"])


@router.get("/tasks", response_model=list[TaskOut])
def list_tasks_endpoint(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[TaskOut]:
    return [TaskOut.model_validate(t, from_attributes=True) for t in list_tasks(session, owner_id=user.id)]


@router.get("/tasks/{task_id}", response_model=TaskOut)
def get_task_endpoint(
    task_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> TaskOut:
    task = get_task_for_user(session, task_id=task_id, user=user)
    return TaskOut.model_validate(task, from_attributes=True)
