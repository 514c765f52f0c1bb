"""initial task lifecycle schema

Revision ID: 5e2b7c1a9d04
Revises:
Create Date: 2026-10-19 09:12:41.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5e2b7c1a9d04'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ENUMS = {
    "task_type": ("individual", "group"),
    "response_type": ("acknowledge", "complete"),
    "task_priority": ("low", "medium", "high"),
    "archive_reason": ("completed", "expired", "expired_after_shift"),
    # хранимые статусы ответа: completed_late / overdue сюда не попадают никогда
    "task_response_status": ("pending", "acknowledged", "pending_review", "completed", "rejected"),
}


def _enum(name: str) -> postgresql.ENUM:
    # task_type / response_type / task_priority используются в двух таблицах
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def _ts(name: str, nullable: bool = True, now: bool = False) -> sa.Column:
    return sa.Column(
        name,
        postgresql.TIMESTAMP(timezone=True),
        nullable=nullable,
        server_default=sa.text("now()") if now else None,
    )


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "dealerships",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _ts("created_at", nullable=False, now=True),
    )

    op.create_table(
        "users",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column(
            "dealership_id",
            _uuid(),
            sa.ForeignKey("dealerships.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    )

    op.create_table(
        "task_generators",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column(
            "dealership_id",
            _uuid(),
            sa.ForeignKey("dealerships.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("recurrence", sa.Text(), nullable=False, server_default="daily"),
        sa.Column("recurrence_time", sa.Time(), nullable=True),
        sa.Column("deadline_time", sa.Time(), nullable=True),
        sa.Column("recurrence_days_of_week", sa.JSON(), nullable=True),
        sa.Column("recurrence_days_of_month", sa.JSON(), nullable=True),
        _ts("start_date", nullable=False),
        _ts("end_date"),
        _ts("last_generated_at"),
        sa.Column("task_type", _enum("task_type"), nullable=False, server_default="individual"),
        sa.Column("response_type", _enum("response_type"), nullable=False, server_default="acknowledge"),
        sa.Column("priority", _enum("task_priority"), nullable=False, server_default="medium"),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _ts("created_at", nullable=False, now=True),
        _ts("updated_at", nullable=False, now=True),
    )

    op.create_table(
        "task_generator_assignments",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column(
            "generator_id",
            _uuid(),
            sa.ForeignKey("task_generators.id", ondelete="CASCADE"),
            nullable=False,
        ),
        # без FK: пропавший пользователь = integrity error генератора
        sa.Column("user_id", _uuid(), nullable=False),
        sa.UniqueConstraint("generator_id", "user_id", name="uq_generator_assignments_generator_user"),
    )

    op.create_table(
        "tasks",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column(
            "dealership_id",
            _uuid(),
            sa.ForeignKey("dealerships.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "generator_id",
            _uuid(),
            sa.ForeignKey("task_generators.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("generation_period", sa.Text(), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _ts("appear_at"),
        _ts("deadline_at"),
        sa.Column("task_type", _enum("task_type"), nullable=False, server_default="individual"),
        sa.Column("response_type", _enum("response_type"), nullable=False, server_default="acknowledge"),
        sa.Column("priority", _enum("task_priority"), nullable=False, server_default="medium"),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _ts("archived_at"),
        sa.Column("archive_reason", _enum("archive_reason"), nullable=True),
        _ts("created_at", nullable=False, now=True),
        _ts("updated_at", nullable=False, now=True),
        # не больше одного экземпляра на генератор за период
        sa.UniqueConstraint("generator_id", "generation_period", name="uq_tasks_generator_period"),
        sa.CheckConstraint(
            "archived_at IS NULL OR is_active = false",
            name="ck_tasks_archived_inactive",
        ),
        sa.CheckConstraint(
            "(archived_at IS NULL) = (archive_reason IS NULL)",
            name="ck_tasks_archive_reason",
        ),
    )
    op.create_index("ix_tasks_dealership_active", "tasks", ["dealership_id", "is_active"])
    op.create_index("ix_tasks_deadline_at", "tasks", ["deadline_at"])

    op.create_table(
        "task_assignments",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("task_id", _uuid(), sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        _ts("created_at", nullable=False, now=True),
        sa.UniqueConstraint("task_id", "user_id", name="uq_task_assignments_task_user"),
    )

    op.create_table(
        "task_responses",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("task_id", _uuid(), sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", _enum("task_response_status"), nullable=False, server_default="pending"),
        sa.Column("comment", sa.Text(), nullable=True),
        _ts("responded_at"),
        _ts("created_at", nullable=False, now=True),
        _ts("updated_at", nullable=False, now=True),
        sa.UniqueConstraint("task_id", "user_id", name="uq_task_responses_task_user"),
    )

    op.create_table(
        "shifts",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column(
            "dealership_id",
            _uuid(),
            sa.ForeignKey("dealerships.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        _ts("shift_start", nullable=False),
        _ts("shift_end"),
        sa.Column("status", sa.Text(), nullable=False, server_default="open"),
        sa.Column(
            "archived_tasks_processed",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        _ts("created_at", nullable=False, now=True),
    )
    op.create_index("ix_shifts_archive_pending", "shifts", ["archived_tasks_processed", "shift_end"])

    op.create_table(
        "settings",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column(
            "dealership_id",
            _uuid(),
            sa.ForeignKey("dealerships.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("key", sa.Text(), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("type", sa.Text(), nullable=False, server_default="string"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.UniqueConstraint("dealership_id", "key", name="uq_settings_dealership_key"),
    )
    # глобальные настройки (dealership_id IS NULL): NULL в unique не сравнивается
    op.create_index(
        "uq_settings_global_key",
        "settings",
        ["key"],
        unique=True,
        postgresql_where=sa.text("dealership_id IS NULL"),
    )


def downgrade() -> None:
    op.drop_index("uq_settings_global_key", table_name="settings")
    op.drop_table("settings")
    op.drop_index("ix_shifts_archive_pending", table_name="shifts")
    op.drop_table("shifts")
    op.drop_table("task_responses")
    op.drop_table("task_assignments")
    op.drop_index("ix_tasks_deadline_at", table_name="tasks")
    op.drop_index("ix_tasks_dealership_active", table_name="tasks")
    op.drop_table("tasks")
    op.drop_table("task_generator_assignments")
    op.drop_table("task_generators")
    op.drop_table("users")
    op.drop_table("dealerships")

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
