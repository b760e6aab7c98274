from __future__ import annotations

import calendar
import math
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import String, cast, func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from devsync.errors import ApiError
from devsync.models import (
    RecurrencePattern,
    Task,
    TaskAttachment,
    TaskCategory,
    TaskComment,
    TaskPriority,
    TaskStatus,
    TaskTimeEntry,
    User,
)
from devsync.schemas import (
    AttachmentCreate,
    CategoryCount,
    PriorityCount,
    TaskCreate,
    TaskStatsRead,
    TaskUpdate,
    TimeEntryCreate,
)
from devsync.services.attendance_calc import date_key_for, normalize_ts
from devsync.services.policy import Operation, authorize, can

OPEN_STATUSES = frozenset({TaskStatus.PENDING, TaskStatus.IN_PROGRESS})

STAFF_UPDATE_FIELDS = frozenset(
    {
        "title",
        "description",
        "priority",
        "assigned_to",
        "due_date",
        "estimated_hours",
        "category",
        "tags",
        "status",
        "progress",
        "dependencies",
        "completion_reason",
        "is_recurring",
        "recurring_pattern",
    }
)
ASSIGNEE_UPDATE_FIELDS = frozenset({"status", "progress", "actual_hours", "completion_reason"})

SORTABLE_COLUMNS = {
    "created_at": Task.created_at,
    "updated_at": Task.updated_at,
    "due_date": Task.due_date,
    "priority": Task.priority,
    "status": Task.status,
    "title": Task.title,
    "progress": Task.progress,
}


def effective_status(status: TaskStatus, due_date: datetime | None, now: datetime) -> TaskStatus:
    """Pending and in-progress tasks past their due date read as overdue."""
    if status in OPEN_STATUSES and due_date is not None and normalize_ts(due_date) < normalize_ts(now):
        return TaskStatus.OVERDUE
    return status


def apply_overdue(task: Task, now: datetime | None = None) -> bool:
    status = effective_status(task.status, task.due_date, normalize_ts(now))
    if status == task.status:
        return False
    task.status = status
    return True


def mark_overdue_tasks(db: Session, *, now: datetime | None = None) -> int:
    result = db.execute(
        update(Task)
        .where(Task.status.in_(list(OPEN_STATUSES)), Task.due_date < normalize_ts(now))
        .values(status=TaskStatus.OVERDUE)
        .execution_options(synchronize_session="fetch")
    )
    db.commit()
    return int(result.rowcount or 0)


def add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def next_due_date(due_date: datetime, pattern: RecurrencePattern) -> datetime:
    if pattern == RecurrencePattern.DAILY:
        return due_date + timedelta(days=1)
    if pattern == RecurrencePattern.WEEKLY:
        return due_date + timedelta(weeks=1)
    if pattern == RecurrencePattern.MONTHLY:
        return add_months(due_date, 1)
    return add_months(due_date, 12)


def recalculate_actual_hours(task: Task) -> float:
    total_minutes = sum(entry.duration_minutes for entry in task.time_entries)
    task.actual_hours = round(total_minutes / 60, 2)
    return task.actual_hours


def _task_query():
    return select(Task).options(
        selectinload(Task.assignee),
        selectinload(Task.assigner),
        selectinload(Task.dependencies),
        selectinload(Task.comments).selectinload(TaskComment.author),
        selectinload(Task.time_entries),
        selectinload(Task.attachments),
    )


def _load_task(db: Session, task_id: int) -> Task:
    task = db.scalar(_task_query().where(Task.id == task_id))
    if task is None:
        raise ApiError(status_code=404, code="TASK_NOT_FOUND", message="Task not found")
    return task


def _resolve_assignee(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise ApiError(status_code=404, code="ASSIGNEE_NOT_FOUND", message="Assigned user not found")
    return user


def _resolve_dependencies(db: Session, ids: list[int], *, task_id: int | None = None) -> list[Task]:
    unique_ids = list(dict.fromkeys(ids))
    if task_id is not None and task_id in unique_ids:
        raise ApiError(status_code=400, code="INVALID_DEPENDENCY", message="A task cannot depend on itself")
    if not unique_ids:
        return []
    rows = list(db.scalars(select(Task).where(Task.id.in_(unique_ids))).all())
    if len(rows) != len(unique_ids):
        raise ApiError(status_code=400, code="INVALID_DEPENDENCY", message="Dependency task not found")
    return rows


def _clean_tags(tags: list[str]) -> list[str]:
    return [tag.strip() for tag in tags if tag and tag.strip()]


def get_task(db: Session, *, actor: User, task_id: int, now: datetime | None = None) -> Task:
    task = _load_task(db, task_id)
    authorize(actor, Operation.TASK_READ, task)
    if apply_overdue(task, now):
        db.commit()
    return task


def list_tasks(
    db: Session,
    *,
    actor: User,
    page: int = 1,
    limit: int = 10,
    status: str | None = None,
    priority: TaskPriority | None = None,
    category: TaskCategory | None = None,
    search: str | None = None,
    assigned_to: int | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    now: datetime | None = None,
) -> tuple[list[Task], int]:
    mark_overdue_tasks(db, now=now)

    filters: list[Any] = []
    if not can(actor, Operation.TASK_LIST_ALL):
        filters.append(Task.assignee_id == actor.id)
    elif assigned_to is not None:
        filters.append(Task.assignee_id == assigned_to)

    if status and status != "all":
        try:
            statuses = [TaskStatus(item.strip()) for item in status.split(",") if item.strip()]
        except ValueError as exc:
            raise ApiError(status_code=400, code="INVALID_STATUS", message="Invalid task status filter") from exc
        if statuses:
            filters.append(Task.status.in_(statuses))
    if priority is not None:
        filters.append(Task.priority == priority)
    if category is not None:
        filters.append(Task.category == category)
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(
            or_(
                Task.title.ilike(pattern),
                Task.description.ilike(pattern),
                cast(Task.tags, String).ilike(pattern),
            )
        )

    column = SORTABLE_COLUMNS.get(sort_by, Task.created_at)
    ordering = column.asc() if sort_order.lower() in {"asc", "1"} else column.desc()

    total = db.scalar(select(func.count(Task.id)).where(*filters)) or 0
    rows = list(
        db.scalars(
            _task_query()
            .where(*filters)
            .order_by(ordering, Task.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
    )
    return rows, int(total)


def create_task(db: Session, *, actor: User, payload: TaskCreate, now: datetime | None = None) -> Task:
    authorize(actor, Operation.TASK_CREATE)
    assignee = _resolve_assignee(db, payload.assigned_to)
    ts = normalize_ts(now)
    task = Task(
        title=payload.title.strip(),
        description=payload.description.strip(),
        priority=payload.priority,
        status=TaskStatus.PENDING,
        assignee_id=assignee.id,
        assigner_id=actor.id,
        due_date=normalize_ts(payload.due_date),
        estimated_hours=payload.estimated_hours,
        actual_hours=0.0,
        category=payload.category,
        tags=_clean_tags(payload.tags),
        progress=0,
        is_recurring=payload.is_recurring,
        recurring_pattern=payload.recurring_pattern,
        dependencies=_resolve_dependencies(db, payload.dependencies),
        created_at=ts,
        updated_at=ts,
    )
    apply_overdue(task, ts)
    db.add(task)
    db.commit()
    return _load_task(db, task.id)


def update_task(
    db: Session,
    *,
    actor: User,
    task_id: int,
    payload: TaskUpdate,
    now: datetime | None = None,
) -> Task:
    ts = normalize_ts(now)
    task = _load_task(db, task_id)
    authorize(actor, Operation.TASK_UPDATE, task)

    allowed = STAFF_UPDATE_FIELDS if can(actor, Operation.TASK_UPDATE_ALL_FIELDS) else ASSIGNEE_UPDATE_FIELDS
    updates = {key: value for key, value in payload.model_dump(exclude_unset=True).items() if key in allowed}

    if "assigned_to" in updates and updates["assigned_to"] is not None:
        task.assignee_id = _resolve_assignee(db, updates.pop("assigned_to")).id
    if "dependencies" in updates:
        task.dependencies = _resolve_dependencies(db, updates.pop("dependencies") or [], task_id=task.id)
    if "tags" in updates:
        task.tags = _clean_tags(updates.pop("tags") or [])
    if updates.get("due_date") is not None:
        task.due_date = normalize_ts(updates.pop("due_date"))

    for key in ("title", "description", "priority", "category", "status", "progress", "estimated_hours"):
        if key in updates and updates[key] is not None:
            setattr(task, key, updates[key])
    if "actual_hours" in updates and updates["actual_hours"] is not None:
        task.actual_hours = float(updates["actual_hours"])
    if "completion_reason" in updates:
        task.completion_reason = updates["completion_reason"]
    if "is_recurring" in updates and updates["is_recurring"] is not None:
        task.is_recurring = updates["is_recurring"]
    if "recurring_pattern" in updates:
        task.recurring_pattern = updates["recurring_pattern"]

    if task.is_recurring and task.recurring_pattern is None:
        raise ApiError(
            status_code=400,
            code="INVALID_RECURRENCE",
            message="Recurring tasks need a recurring pattern",
        )

    if updates.get("status") == TaskStatus.COMPLETED:
        task.progress = 100
        task.completed_at = ts
        if task.is_recurring and task.recurring_pattern is not None:
            task.next_due_date = next_due_date(normalize_ts(task.due_date), task.recurring_pattern)
    elif "status" in updates and task.status != TaskStatus.COMPLETED:
        task.completed_at = None

    apply_overdue(task, ts)
    db.commit()
    return _load_task(db, task.id)


def delete_task(db: Session, *, actor: User, task_id: int) -> Task:
    task = _load_task(db, task_id)
    authorize(actor, Operation.TASK_DELETE, task)
    db.delete(task)
    db.commit()
    return task


def add_comment(
    db: Session,
    *,
    actor: User,
    task_id: int,
    body: str,
    now: datetime | None = None,
) -> Task:
    task = _load_task(db, task_id)
    authorize(actor, Operation.TASK_COMMENT, task)
    task.comments.append(TaskComment(author_id=actor.id, body=body.strip(), created_at=normalize_ts(now)))
    db.commit()
    return _load_task(db, task.id)


def add_time_entry(db: Session, *, actor: User, task_id: int, payload: TimeEntryCreate) -> Task:
    task = _load_task(db, task_id)
    authorize(actor, Operation.TASK_TRACK_TIME, task)

    start = normalize_ts(payload.start_time)
    end = normalize_ts(payload.end_time)
    # Half-minutes round up.
    duration = math.floor((end - start).total_seconds() / 60 + 0.5)
    if duration <= 0:
        raise ApiError(status_code=400, code="INVALID_DURATION", message="End time must be after start time")

    task.time_entries.append(
        TaskTimeEntry(
            start_time=start,
            end_time=end,
            duration_minutes=duration,
            description=payload.description,
            date_key=date_key_for(start),
        )
    )
    recalculate_actual_hours(task)
    db.commit()
    return _load_task(db, task.id)


def add_attachment(
    db: Session,
    *,
    actor: User,
    task_id: int,
    payload: AttachmentCreate,
    now: datetime | None = None,
) -> Task:
    task = _load_task(db, task_id)
    authorize(actor, Operation.TASK_ATTACH, task)
    task.attachments.append(
        TaskAttachment(
            file_name=payload.file_name.strip(),
            file_url=payload.file_url.strip(),
            file_type=payload.file_type,
            uploaded_by_id=actor.id,
            uploaded_at=normalize_ts(now),
        )
    )
    db.commit()
    return _load_task(db, task.id)


def task_stats(
    db: Session,
    *,
    assignee_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    now: datetime | None = None,
) -> tuple[TaskStatsRead, list[PriorityCount], list[CategoryCount]]:
    mark_overdue_tasks(db, now=now)

    filters: list[Any] = []
    if assignee_id is not None:
        filters.append(Task.assignee_id == assignee_id)
    if start_date is not None and end_date is not None:
        filters.append(Task.created_at >= normalize_ts(start_date))
        filters.append(Task.created_at <= normalize_ts(end_date))

    rows = list(db.scalars(select(Task).where(*filters)).all())
    status_counts = Counter(row.status for row in rows)
    estimates = [row.estimated_hours for row in rows if row.estimated_hours is not None]
    actuals = [row.actual_hours or 0.0 for row in rows]

    stats = TaskStatsRead(
        total_tasks=len(rows),
        completed_tasks=status_counts[TaskStatus.COMPLETED],
        in_progress_tasks=status_counts[TaskStatus.IN_PROGRESS],
        overdue_tasks=status_counts[TaskStatus.OVERDUE],
        avg_estimated_hours=round(sum(estimates) / len(estimates), 2) if estimates else 0.0,
        avg_actual_hours=round(sum(actuals) / len(actuals), 2) if actuals else 0.0,
        total_actual_hours=round(sum(actuals), 2),
    )

    priority_counts = Counter(row.priority for row in rows)
    priority_stats = [
        PriorityCount(priority=priority, count=priority_counts[priority])
        for priority in TaskPriority
        if priority_counts[priority]
    ]

    category_hours: dict[TaskCategory, list[float]] = defaultdict(list)
    for row in rows:
        category_hours[row.category].append(row.actual_hours or 0.0)
    category_stats = [
        CategoryCount(
            category=category,
            count=len(category_hours[category]),
            avg_hours=round(sum(category_hours[category]) / len(category_hours[category]), 2),
        )
        for category in TaskCategory
        if category_hours.get(category)
    ]
    return stats, priority_stats, category_stats
