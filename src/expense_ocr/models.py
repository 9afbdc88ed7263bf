"""
Alembic model import hook.

Importing this module registers every SQLAlchemy model on Base.metadata.
"""

from __future__ import annotations

# User first: every other table references it.
from expense_ocr.modules.identity.models import User  # noqa: F401

from expense_ocr.modules.expenses.models import Expense  # noqa: F401
from expense_ocr.modules.mileage.models import MileageLog  # noqa: F401
from expense_ocr.modules.tasks.models import Task  # noqa: F401
