from __future__ import annotations

from fastapi import APIRouter

from expense_ocr.modules.dispatch.api import router as dispatch_router
from expense_ocr.modules.expenses.api import router as expenses_router
from expense_ocr.modules.extraction.api import router as extraction_router
from expense_ocr.modules.files.api import router as files_router
from expense_ocr.modules.identity.api import router as identity_router
from expense_ocr.modules.mileage.api import router as mileage_router
from expense_ocr.modules.tasks.api import router as tasks_router

router = APIRouter()

router.include_router(identity_router, prefix="/api")
router.include_router(expenses_router, prefix="/api")
router.include_router(mileage_router, prefix="/api")
# Before the tasks router so POST /tasks/process-next is matched first.
router.include_router(dispatch_router, prefix="/api")
router.include_router(tasks_router, prefix="/api")
router.include_router(extraction_router, prefix="/api")
router.include_router(files_router, prefix="/api")


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}
