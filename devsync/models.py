from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from devsync.db import Base, JSONType, UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_column(enum_cls: type[enum.Enum], name: str) -> Enum:
    # Persist the lower-case values ("in-progress"), not the member names.
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    HR = "hr"
    EMPLOYEE = "employee"


class AccountStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    LATE = "late"
    HALF_DAY = "half-day"
    ABSENT = "absent"


class BreakType(str, enum.Enum):
    LUNCH = "lunch"
    TEA = "tea"
    PERSONAL = "personal"
    MEETING = "meeting"
    OTHER = "other"


class Mood(str, enum.Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    NEUTRAL = "neutral"
    TIRED = "tired"
    STRESSED = "stressed"


class CorrectionStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TaskPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    OVERDUE = "overdue"


class TaskCategory(str, enum.Enum):
    DEVELOPMENT = "development"
    DESIGN = "design"
    TESTING = "testing"
    DOCUMENTATION = "documentation"
    MEETING = "meeting"
    RESEARCH = "research"
    OTHER = "other"


class RecurrencePattern(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


PERMISSION_TAGS: tuple[str, ...] = (
    "view_all_attendance",
    "manage_employees",
    "assign_tasks",
    "view_reports",
    "manage_settings",
)

WEEKDAY_NAMES: tuple[str, ...] = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

DEFAULT_WORK_DAYS: list[str] = list(WEEKDAY_NAMES[:5])


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        _enum_column(UserRole, "user_role"),
        nullable=False,
        default=UserRole.EMPLOYEE,
        server_default=UserRole.EMPLOYEE.value,
    )
    status: Mapped[AccountStatus] = mapped_column(
        _enum_column(AccountStatus, "account_status"),
        nullable=False,
        default=AccountStatus.ACTIVE,
        server_default=AccountStatus.ACTIVE.value,
    )
    department: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="General",
        server_default="General",
    )
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_seen_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    profile_image: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    emergency_contact: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    work_start_time: Mapped[str] = mapped_column(String(5), nullable=False, default="09:00", server_default="09:00")
    work_end_time: Mapped[str] = mapped_column(String(5), nullable=False, default="17:00", server_default="17:00")
    work_days: Mapped[list[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=lambda: list(DEFAULT_WORK_DAYS),
    )
    manager_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    permissions: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=_utcnow,
    )

    manager: Mapped[User | None] = relationship(
        back_populates="subordinates",
        remote_side="User.id",
    )
    subordinates: Mapped[list[User]] = relationship(back_populates="manager")
    attendance_days: Mapped[list[AttendanceDay]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="AttendanceDay.user_id",
    )
    assigned_tasks: Mapped[list[Task]] = relationship(
        back_populates="assignee",
        foreign_keys="Task.assignee_id",
    )

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    @property
    def is_admin_or_hr(self) -> bool:
        return self.role in {UserRole.ADMIN, UserRole.HR}


class AttendanceDay(Base):
    __tablename__ = "attendance_days"
    __table_args__ = (
        UniqueConstraint("user_id", "date_key", name="uq_attendance_days_user_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date_key: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    check_in: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    check_out: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    status: Mapped[AttendanceStatus] = mapped_column(
        _enum_column(AttendanceStatus, "attendance_status"),
        nullable=False,
        default=AttendanceStatus.PRESENT,
    )
    working_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    break_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    overtime_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    check_in_location: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    check_out_location: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    device: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    is_remote: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    network_info: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    battery_level: Mapped[float | None] = mapped_column(Float, nullable=True)
    gps_accuracy: Mapped[float | None] = mapped_column(Float, nullable=True)
    temperature: Mapped[float | None] = mapped_column(Float, nullable=True)
    symptoms: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    mood: Mapped[Mood | None] = mapped_column(_enum_column(Mood, "attendance_mood"), nullable=True)
    productivity_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    productivity_tasks_completed: Mapped[int | None] = mapped_column(Integer, nullable=True)
    productivity_self_assessment: Mapped[str | None] = mapped_column(Text, nullable=True)
    weather: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    approval_required: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    approval_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=_utcnow,
    )

    user: Mapped[User] = relationship(back_populates="attendance_days", foreign_keys=[user_id])
    breaks: Mapped[list[AttendanceBreak]] = relationship(
        back_populates="attendance_day",
        cascade="all, delete-orphan",
        order_by="AttendanceBreak.sequence",
    )
    corrections: Mapped[list[AttendanceCorrection]] = relationship(
        back_populates="attendance_day",
        cascade="all, delete-orphan",
        order_by="AttendanceCorrection.id",
    )

    @property
    def open_break(self) -> AttendanceBreak | None:
        for item in self.breaks:
            if item.break_end is None:
                return item
        return None

    @property
    def net_minutes(self) -> int:
        return max(0, self.working_minutes - self.break_minutes)


class AttendanceBreak(Base):
    __tablename__ = "attendance_breaks"
    __table_args__ = (
        UniqueConstraint("attendance_day_id", "sequence", name="uq_attendance_breaks_day_sequence"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    attendance_day_id: Mapped[int] = mapped_column(
        ForeignKey("attendance_days.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    break_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    break_end: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    break_type: Mapped[BreakType] = mapped_column(
        _enum_column(BreakType, "break_type"),
        nullable=False,
        default=BreakType.OTHER,
    )
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    location: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    attendance_day: Mapped[AttendanceDay] = relationship(back_populates="breaks")


class AttendanceCorrection(Base):
    __tablename__ = "attendance_corrections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    attendance_day_id: Mapped[int] = mapped_column(
        ForeignKey("attendance_days.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    field: Mapped[str] = mapped_column(String(32), nullable=False)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str] = mapped_column(Text, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    requested_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    requested_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    status: Mapped[CorrectionStatus] = mapped_column(
        _enum_column(CorrectionStatus, "correction_status"),
        nullable=False,
        default=CorrectionStatus.PENDING,
    )
    reviewed_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    attendance_day: Mapped[AttendanceDay] = relationship(back_populates="corrections")


task_dependencies = Table(
    "task_dependencies",
    Base.metadata,
    Column("task_id", ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("depends_on_id", ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
)


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_tasks_progress_range"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(1000), nullable=False)
    priority: Mapped[TaskPriority] = mapped_column(
        _enum_column(TaskPriority, "task_priority"),
        nullable=False,
        default=TaskPriority.MEDIUM,
        index=True,
    )
    status: Mapped[TaskStatus] = mapped_column(
        _enum_column(TaskStatus, "task_status"),
        nullable=False,
        default=TaskStatus.PENDING,
        index=True,
    )
    assignee_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    assigner_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    due_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    estimated_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    actual_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default=text("0"))
    category: Mapped[TaskCategory] = mapped_column(
        _enum_column(TaskCategory, "task_category"),
        nullable=False,
        default=TaskCategory.OTHER,
    )
    tags: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completion_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    recurring_pattern: Mapped[RecurrencePattern | None] = mapped_column(
        _enum_column(RecurrencePattern, "task_recurrence"),
        nullable=True,
    )
    next_due_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=_utcnow,
    )

    assignee: Mapped[User | None] = relationship(back_populates="assigned_tasks", foreign_keys=[assignee_id])
    assigner: Mapped[User | None] = relationship(foreign_keys=[assigner_id])
    comments: Mapped[list[TaskComment]] = relationship(
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="TaskComment.id",
    )
    time_entries: Mapped[list[TaskTimeEntry]] = relationship(
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="TaskTimeEntry.id",
    )
    attachments: Mapped[list[TaskAttachment]] = relationship(
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="TaskAttachment.id",
    )
    dependencies: Mapped[list[Task]] = relationship(
        secondary=task_dependencies,
        primaryjoin=lambda: Task.id == task_dependencies.c.task_id,
        secondaryjoin=lambda: Task.id == task_dependencies.c.depends_on_id,
    )


class TaskComment(Base):
    __tablename__ = "task_comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    task_id: Mapped[int] = mapped_column(
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    task: Mapped[Task] = relationship(back_populates="comments")
    author: Mapped[User | None] = relationship()


class TaskTimeEntry(Base):
    __tablename__ = "task_time_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    task_id: Mapped[int] = mapped_column(
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    date_key: Mapped[str] = mapped_column(String(10), nullable=False)

    task: Mapped[Task] = relationship(back_populates="time_entries")


class TaskAttachment(Base):
    __tablename__ = "task_attachments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    task_id: Mapped[int] = mapped_column(
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    file_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    uploaded_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    uploaded_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    task: Mapped[Task] = relationship(back_populates="attachments")
