"""Initial devsync schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = postgresql.ENUM("admin", "hr", "employee", name="user_role", create_type=False)
account_status = postgresql.ENUM("active", "inactive", name="account_status", create_type=False)
attendance_status = postgresql.ENUM(
    "present",
    "late",
    "half-day",
    "absent",
    name="attendance_status",
    create_type=False,
)
attendance_mood = postgresql.ENUM(
    "excellent",
    "good",
    "neutral",
    "tired",
    "stressed",
    name="attendance_mood",
    create_type=False,
)
break_type = postgresql.ENUM(
    "lunch",
    "tea",
    "personal",
    "meeting",
    "other",
    name="break_type",
    create_type=False,
)
correction_status = postgresql.ENUM(
    "pending",
    "approved",
    "rejected",
    name="correction_status",
    create_type=False,
)
task_priority = postgresql.ENUM("low", "medium", "high", "urgent", name="task_priority", create_type=False)
task_status = postgresql.ENUM(
    "pending",
    "in-progress",
    "completed",
    "cancelled",
    "overdue",
    name="task_status",
    create_type=False,
)
task_category = postgresql.ENUM(
    "development",
    "design",
    "testing",
    "documentation",
    "meeting",
    "research",
    "other",
    name="task_category",
    create_type=False,
)
task_recurrence = postgresql.ENUM(
    "daily",
    "weekly",
    "monthly",
    "yearly",
    name="task_recurrence",
    create_type=False,
)

ALL_ENUMS = (
    user_role,
    account_status,
    attendance_status,
    attendance_mood,
    break_type,
    correction_status,
    task_priority,
    task_status,
    task_category,
    task_recurrence,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    ]


def _jsonb(name: str, *, nullable: bool = True, default: str | None = None) -> sa.Column:
    return sa.Column(
        name,
        postgresql.JSONB(astext_type=sa.Text()),
        nullable=nullable,
        server_default=sa.text(default) if default is not None else None,
    )


def upgrade() -> None:
    bind = op.get_bind()
    for item in ALL_ENUMS:
        item.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", user_role, nullable=False, server_default="employee"),
        sa.Column("status", account_status, nullable=False, server_default="active"),
        sa.Column("department", sa.String(length=100), nullable=False, server_default="General"),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column("profile_image", sa.String(length=1024), nullable=True),
        _jsonb("emergency_contact"),
        sa.Column("work_start_time", sa.String(length=5), nullable=False, server_default="09:00"),
        sa.Column("work_end_time", sa.String(length=5), nullable=False, server_default="17:00"),
        _jsonb(
            "work_days",
            nullable=False,
            default="""'["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]'::jsonb""",
        ),
        sa.Column("manager_id", sa.Integer(), nullable=True),
        _jsonb("permissions", nullable=False, default="'[]'::jsonb"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["manager_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_manager_id", "users", ["manager_id"], unique=False)

    op.create_table(
        "attendance_days",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("date_key", sa.String(length=10), nullable=False),
        sa.Column("check_in", sa.DateTime(timezone=True), nullable=False),
        sa.Column("check_out", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", attendance_status, nullable=False),
        sa.Column("working_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("break_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("overtime_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _jsonb("check_in_location"),
        _jsonb("check_out_location"),
        sa.Column("notes", sa.String(length=500), nullable=True),
        _jsonb("device"),
        sa.Column("is_remote", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _jsonb("network_info"),
        sa.Column("battery_level", sa.Float(), nullable=True),
        sa.Column("gps_accuracy", sa.Float(), nullable=True),
        sa.Column("temperature", sa.Float(), nullable=True),
        _jsonb("symptoms", nullable=False, default="'[]'::jsonb"),
        sa.Column("mood", attendance_mood, nullable=True),
        sa.Column("productivity_score", sa.Integer(), nullable=True),
        sa.Column("productivity_tasks_completed", sa.Integer(), nullable=True),
        sa.Column("productivity_self_assessment", sa.Text(), nullable=True),
        _jsonb("weather"),
        sa.Column("approval_required", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("approval_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "date_key", name="uq_attendance_days_user_date"),
    )
    op.create_index("ix_attendance_days_user_id", "attendance_days", ["user_id"], unique=False)
    op.create_index("ix_attendance_days_date_key", "attendance_days", ["date_key"], unique=False)

    op.create_table(
        "attendance_breaks",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("attendance_day_id", sa.Integer(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("break_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("break_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("break_type", break_type, nullable=False),
        sa.Column("notes", sa.String(length=500), nullable=True),
        _jsonb("location"),
        sa.ForeignKeyConstraint(["attendance_day_id"], ["attendance_days.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("attendance_day_id", "sequence", name="uq_attendance_breaks_day_sequence"),
    )
    op.create_index(
        "ix_attendance_breaks_attendance_day_id",
        "attendance_breaks",
        ["attendance_day_id"],
        unique=False,
    )

    op.create_table(
        "attendance_corrections",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("attendance_day_id", sa.Integer(), nullable=False),
        sa.Column("field", sa.String(length=32), nullable=False),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("requested_by_id", sa.Integer(), nullable=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", correction_status, nullable=False),
        sa.Column("reviewed_by_id", sa.Integer(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["attendance_day_id"], ["attendance_days.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["requested_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["reviewed_by_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index(
        "ix_attendance_corrections_attendance_day_id",
        "attendance_corrections",
        ["attendance_day_id"],
        unique=False,
    )

    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=False),
        sa.Column("priority", task_priority, nullable=False),
        sa.Column("status", task_status, nullable=False),
        sa.Column("assignee_id", sa.Integer(), nullable=True),
        sa.Column("assigner_id", sa.Integer(), nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("estimated_hours", sa.Float(), nullable=True),
        sa.Column("actual_hours", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("category", task_category, nullable=False),
        _jsonb("tags", nullable=False, default="'[]'::jsonb"),
        sa.Column("progress", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completion_reason", sa.String(length=500), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("recurring_pattern", task_recurrence, nullable=True),
        sa.Column("next_due_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["assignee_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["assigner_id"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_tasks_progress_range"),
    )
    op.create_index("ix_tasks_priority", "tasks", ["priority"], unique=False)
    op.create_index("ix_tasks_status", "tasks", ["status"], unique=False)
    op.create_index("ix_tasks_assignee_id", "tasks", ["assignee_id"], unique=False)
    op.create_index("ix_tasks_assigner_id", "tasks", ["assigner_id"], unique=False)
    op.create_index("ix_tasks_due_date", "tasks", ["due_date"], unique=False)

    op.create_table(
        "task_dependencies",
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("depends_on_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["depends_on_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("task_id", "depends_on_id"),
    )

    op.create_table(
        "task_comments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("author_id", sa.Integer(), nullable=True),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["author_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_task_comments_task_id", "task_comments", ["task_id"], unique=False)

    op.create_table(
        "task_time_entries",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("date_key", sa.String(length=10), nullable=False),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_task_time_entries_task_id", "task_time_entries", ["task_id"], unique=False)

    op.create_table(
        "task_attachments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_url", sa.String(length=2048), nullable=False),
        sa.Column("file_type", sa.String(length=100), nullable=True),
        sa.Column("uploaded_by_id", sa.Integer(), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["uploaded_by_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_task_attachments_task_id", "task_attachments", ["task_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_task_attachments_task_id", table_name="task_attachments")
    op.drop_table("task_attachments")
    op.drop_index("ix_task_time_entries_task_id", table_name="task_time_entries")
    op.drop_table("task_time_entries")
    op.drop_index("ix_task_comments_task_id", table_name="task_comments")
    op.drop_table("task_comments")
    op.drop_table("task_dependencies")
    for index_name in (
        "ix_tasks_due_date",
        "ix_tasks_assigner_id",
        "ix_tasks_assignee_id",
        "ix_tasks_status",
        "ix_tasks_priority",
    ):
        op.drop_index(index_name, table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("ix_attendance_corrections_attendance_day_id", table_name="attendance_corrections")
    op.drop_table("attendance_corrections")
    op.drop_index("ix_attendance_breaks_attendance_day_id", table_name="attendance_breaks")
    op.drop_table("attendance_breaks")
    op.drop_index("ix_attendance_days_date_key", table_name="attendance_days")
    op.drop_index("ix_attendance_days_user_id", table_name="attendance_days")
    op.drop_table("attendance_days")
    op.drop_index("ix_users_manager_id", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for item in reversed(ALL_ENUMS):
        item.drop(bind, checkfirst=True)
