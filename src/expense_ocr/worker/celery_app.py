from __future__ import annotations

from celery import Celery

from expense_ocr.core.config import settings


def make_celery() -> Celery:
    app = Celery(
        "expense_ocr",
        broker=settings.redis_url,
        backend=settings.redis_url,
        include=["expense_ocr.worker.tasks"],
    )
    app.conf.update(
        # No broker in local development or tests; run tasks inline instead.
        task_always_eager=settings.environment in {"dev", "test"},
        task_eager_propagates=True,
        task_track_started=True,
    )
    return app


celery_app = make_celery()
