from __future__ import annotations

import os
import shutil
from pathlib import Path

import pytest

# Settings and the engine are built at import time, so configure the env first.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./.expense_ocr_test.db")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("LOCAL_STORAGE_PATH", ".tmp_storage_test")


@pytest.fixture(autouse=True)
def _reset_db_and_storage():
    import expense_ocr.core.storage as storage_mod
    import expense_ocr.models  # noqa: F401
    from expense_ocr.core.db import engine
    from expense_ocr.core.models import Base

    storage_mod._storage = None
    storage_path = Path(os.environ["LOCAL_STORAGE_PATH"])
    if storage_path.exists():
        shutil.rmtree(storage_path)

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield


@pytest.fixture
def make_user():
    from expense_ocr.core.db import SessionLocal
    from expense_ocr.modules.identity.service import create_user

    def _make(email: str = "owner@example.com"):
        with SessionLocal() as session:
            user = create_user(session, email=email, password="pw", full_name="Owner")
            session.expunge(user)
            return user

    return _make
