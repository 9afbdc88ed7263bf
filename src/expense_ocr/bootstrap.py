from __future__ import annotations

from sqlalchemy import select

import expense_ocr.models  # noqa: F401
from expense_ocr.core.config import settings
from expense_ocr.core.db import SessionLocal, engine
from expense_ocr.core.models import Base
from expense_ocr.core.security import hash_password
from expense_ocr.modules.identity.models import User


def bootstrap() -> None:
    if settings.environment == "dev" and str(settings.database_url).startswith("sqlite"):
        Base.metadata.create_all(engine)

    email = (settings.init_user_email or "").strip()
    if not email or not settings.init_user_password:
        return

    with SessionLocal() as session:
        if session.scalar(select(User).where(User.email == email)):
            return
        session.add(
            User(
                email=email,
                full_name="Owner",
                password_hash=hash_password(settings.init_user_password),
                is_active=True,
            )
        )
        session.commit()
