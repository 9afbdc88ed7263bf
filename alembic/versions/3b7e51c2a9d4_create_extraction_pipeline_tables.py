"""create extraction pipeline tables

Revision ID: 3b7e51c2a9d4
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "3b7e51c2a9d4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _extraction_status() -> list[sa.Column]:
    return [
        sa.Column("status", sa.String(length=10), nullable=False),
        sa.Column("ocr_error", sa.Text(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "identity_user",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=True),
        sa.Column("password_hash", sa.String(length=200), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_identity_user_email", "identity_user", ["email"], unique=True)

    op.create_table(
        "tasks_task",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("owner_id", sa.Uuid(as_uuid=True), sa.ForeignKey("identity_user.id"), nullable=False),
        sa.Column("kind", sa.String(length=18), nullable=False),
        sa.Column("state", sa.String(length=10), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("ix_tasks_task_owner_id", "tasks_task", ["owner_id"])
    op.create_index("ix_tasks_task_kind", "tasks_task", ["kind"])
    op.create_index("ix_tasks_task_state", "tasks_task", ["state"])

    op.create_table(
        "expenses_expense",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        *_extraction_status(),
        sa.Column("owner_id", sa.Uuid(as_uuid=True), sa.ForeignKey("identity_user.id"), nullable=False),
        sa.Column("trip_name", sa.String(length=200), nullable=False),
        sa.Column("type", sa.String(length=100), nullable=False),
        sa.Column("date", sa.String(length=50), nullable=False),
        sa.Column("vendor", sa.String(length=200), nullable=False),
        sa.Column("location", sa.String(length=200), nullable=False),
        sa.Column("cost", sa.String(length=50), nullable=False),
        sa.Column("comments", sa.Text(), nullable=False),
        sa.Column("receipt_path", sa.String(length=1024), nullable=True),
    )
    op.create_index("ix_expenses_expense_owner_id", "expenses_expense", ["owner_id"])
    op.create_index("ix_expenses_expense_status", "expenses_expense", ["status"])

    op.create_table(
        "mileage_mileage_log",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        *_extraction_status(),
        sa.Column("owner_id", sa.Uuid(as_uuid=True), sa.ForeignKey("identity_user.id"), nullable=False),
        sa.Column("trip_name", sa.String(length=200), nullable=False),
        sa.Column("trip_date", sa.String(length=50), nullable=False),
        sa.Column("purpose", sa.Text(), nullable=True),
        sa.Column("start_odometer", sa.String(length=50), nullable=False),
        sa.Column("end_odometer", sa.String(length=50), nullable=False),
        sa.Column("calculated_distance", sa.Float(), nullable=True),
        sa.Column("start_image_path", sa.String(length=1024), nullable=True),
        sa.Column("end_image_path", sa.String(length=1024), nullable=True),
        sa.Column("entry_method", sa.String(length=6), nullable=False),
    )
    op.create_index("ix_mileage_mileage_log_owner_id", "mileage_mileage_log", ["owner_id"])
    op.create_index("ix_mileage_mileage_log_status", "mileage_mileage_log", ["status"])


def downgrade() -> None:
    op.drop_index("ix_mileage_mileage_log_status", table_name="mileage_mileage_log")
    op.drop_index("ix_mileage_mileage_log_owner_id", table_name="mileage_mileage_log")
    op.drop_table("mileage_mileage_log")
    op.drop_index("ix_expenses_expense_status", table_name="expenses_expense")
    op.drop_index("ix_expenses_expense_owner_id", table_name="expenses_expense")
    op.drop_table("expenses_expense")
    op.drop_index("ix_tasks_task_state", table_name="tasks_task")
    op.drop_index("ix_tasks_task_kind", table_name="tasks_task")
    op.drop_index("ix_tasks_task_owner_id", table_name="tasks_task")
    op.drop_table("tasks_task")
    op.drop_index("ix_identity_user_email", table_name="identity_user")
    op.drop_table("identity_user")
