"""Read-only projections over the attendance ledger and the task board.

Rows are loaded with plain selects and aggregated in Python so the same
code runs on PostgreSQL and on SQLite.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from statistics import mean
from typing import Literal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from devsync.errors import ApiError
from devsync.models import (
    AccountStatus,
    AttendanceDay,
    AttendanceStatus,
    Task,
    TaskStatus,
    User,
    UserRole,
)
from devsync.schemas import (
    ActivityRead,
    AttendanceDetailRow,
    AttendanceRecordRead,
    AttendanceSummaryRow,
    DailyCount,
    DailyProductivity,
    DashboardRead,
    DateRange,
    DepartmentCount,
    DepartmentProductivity,
    EmployeeAttendanceTotals,
    EmployeeReportRead,
    EmployeeTaskTotals,
    PerformerRead,
    ProductivityMetrics,
    ProductivityReportMeta,
    ProductivityReportRead,
    TaskBrief,
    TodayAttendanceStats,
    UserSummary,
    WeeklyTrend,
)
from devsync.services.attendance import to_attendance_read
from devsync.services.attendance_calc import attendance_timezone, date_key_for, local_time, normalize_ts
from devsync.services.tasks import add_months, mark_overdue_tasks

TimeRange = Literal["today", "week", "month", "quarter"]

DEFAULT_REPORT_DAYS = 30
DASHBOARD_WINDOW_DAYS = 7
ACTIVITY_WINDOW_DAYS = 7
RECENT_ROWS_LIMIT = 10
LATE_STATUSES = frozenset({AttendanceStatus.LATE, AttendanceStatus.HALF_DAY})


@dataclass(frozen=True)
class ReportWindow:
    start: date
    end: date

    @property
    def start_key(self) -> str:
        return self.start.isoformat()

    @property
    def end_key(self) -> str:
        return self.end.isoformat()

    def as_range(self) -> DateRange:
        return DateRange(start=self.start, end=self.end)


def resolve_window(
    start: date | None,
    end: date | None,
    *,
    now: datetime | None = None,
    default_days: int = DEFAULT_REPORT_DAYS,
) -> ReportWindow:
    today = local_time(normalize_ts(now)).date()
    resolved_end = end or today
    resolved_start = start or (resolved_end - timedelta(days=default_days))
    if resolved_start > resolved_end:
        raise ApiError(status_code=400, code="INVALID_DATE_RANGE", message="start_date must be before end_date")
    return ReportWindow(start=resolved_start, end=resolved_end)


def time_range_start(time_range: TimeRange, *, now: datetime | None = None) -> datetime:
    ts = normalize_ts(now)
    if time_range == "today":
        local_day = local_time(ts).date()
        return normalize_ts(datetime.combine(local_day, time.min, tzinfo=attendance_timezone()))
    if time_range == "month":
        return add_months(ts, -1)
    if time_range == "quarter":
        return add_months(ts, -3)
    return ts - timedelta(days=7)


def _hours(day: AttendanceDay) -> float:
    return day.working_minutes / 60 if day.check_out is not None else 0.0


def _is_early_departure(day: AttendanceDay, user: User) -> bool:
    if day.check_out is None:
        return False
    try:
        end_hour, end_minute = (int(part) for part in user.work_end_time.split(":"))
    except ValueError:
        return False
    local_out = local_time(day.check_out)
    return (local_out.hour, local_out.minute) < (end_hour, end_minute)


def _avg(values: list[float], digits: int = 1) -> float | None:
    if not values:
        return None
    return round(mean(values), digits)


def _load_days(
    db: Session,
    *,
    start_key: str | None = None,
    end_key: str | None = None,
    user_id: int | None = None,
) -> list[AttendanceDay]:
    stmt = select(AttendanceDay).options(
        selectinload(AttendanceDay.user),
        selectinload(AttendanceDay.breaks),
        selectinload(AttendanceDay.corrections),
    )
    if start_key is not None:
        stmt = stmt.where(AttendanceDay.date_key >= start_key)
    if end_key is not None:
        stmt = stmt.where(AttendanceDay.date_key <= end_key)
    if user_id is not None:
        stmt = stmt.where(AttendanceDay.user_id == user_id)
    return list(db.scalars(stmt.order_by(AttendanceDay.date_key.desc(), AttendanceDay.check_in.desc())).all())


def _non_admin(day: AttendanceDay) -> bool:
    return day.user is not None and day.user.role != UserRole.ADMIN


def build_dashboard(db: Session, *, now: datetime | None = None) -> DashboardRead:
    ts = normalize_ts(now)
    mark_overdue_tasks(db, now=ts)

    staff = list(db.scalars(select(User).where(User.role != UserRole.ADMIN)).all())
    tasks = list(db.scalars(select(Task)).all())
    today_key = date_key_for(ts)
    window_start = date_key_for(ts - timedelta(days=DASHBOARD_WINDOW_DAYS))
    window_days = _load_days(db, start_key=window_start, end_key=today_key)
    today_days = [day for day in window_days if day.date_key == today_key]

    task_counts = Counter(task.status.value for task in tasks)
    task_stats = {status.value: task_counts[status.value] for status in TaskStatus}

    present = len(today_days)
    late = sum(1 for day in today_days if day.status in LATE_STATUSES)

    scored = [day for day in window_days if day.productivity_score is not None]
    hours = [_hours(day) for day in scored]

    departments: dict[str, list[User]] = defaultdict(list)
    for user in staff:
        departments[user.department].append(user)

    daily = Counter(day.date_key for day in window_days)

    return DashboardRead(
        total_employees=len(staff),
        active_employees=sum(1 for user in staff if user.status == AccountStatus.ACTIVE),
        total_tasks=len(tasks),
        overdue_tasks=task_counts[TaskStatus.OVERDUE.value],
        today_attendance=present,
        current_checkins=sum(1 for day in today_days if day.check_out is None),
        task_stats=task_stats,
        attendance_stats=TodayAttendanceStats(
            present=present,
            absent=max(0, len(staff) - present),
            late=late,
            on_time=present - late,
        ),
        productivity_metrics=ProductivityMetrics(
            avg_productivity=_avg([float(day.productivity_score) for day in scored]) or 0.0,
            avg_work_hours=_avg(hours) or 0.0,
            total_work_hours=round(sum(hours), 1),
        ),
        department_stats=[
            DepartmentCount(
                department=name,
                count=len(members),
                active_count=sum(1 for user in members if user.status == AccountStatus.ACTIVE),
            )
            for name, members in sorted(departments.items())
        ],
        weekly_attendance=[DailyCount(date=key, count=daily[key]) for key in sorted(daily)],
    )


def build_employee_report(
    db: Session,
    employee_id: int,
    *,
    start: date | None = None,
    end: date | None = None,
    now: datetime | None = None,
) -> EmployeeReportRead:
    user = db.get(User, employee_id)
    if user is None:
        raise ApiError(status_code=404, code="EMPLOYEE_NOT_FOUND", message="Employee not found")
    window = resolve_window(start, end, now=now)
    mark_overdue_tasks(db, now=now)

    days = _load_days(db, start_key=window.start_key, end_key=window.end_key, user_id=user.id)
    scores = [float(day.productivity_score) for day in days if day.productivity_score is not None]

    created_from = normalize_ts(datetime.combine(window.start, time.min, tzinfo=attendance_timezone()))
    created_to = normalize_ts(datetime.combine(window.end, time.max, tzinfo=attendance_timezone()))
    tasks = list(
        db.scalars(
            select(Task)
            .options(selectinload(Task.assigner))
            .where(
                Task.assignee_id == user.id,
                Task.created_at >= created_from,
                Task.created_at <= created_to,
            )
            .order_by(Task.created_at.desc(), Task.id.desc())
        ).all()
    )

    weeks: dict[tuple[int, int], list[AttendanceDay]] = defaultdict(list)
    for day in days:
        iso = date.fromisoformat(day.date_key).isocalendar()
        weeks[(iso[0], iso[1])].append(day)

    return EmployeeReportRead(
        employee=UserSummary.model_validate(user),
        joined_at=user.joined_at,
        date_range=window.as_range(),
        attendance=EmployeeAttendanceTotals(
            total_days=len(days),
            total_hours=round(sum(_hours(day) for day in days), 2),
            avg_productivity=_avg(scores),
            late_arrivals=sum(1 for day in days if day.status in LATE_STATUSES),
            early_departures=sum(1 for day in days if _is_early_departure(day, user)),
        ),
        tasks=EmployeeTaskTotals(
            total_tasks=len(tasks),
            completed_tasks=sum(1 for task in tasks if task.status == TaskStatus.COMPLETED),
            overdue_tasks=sum(1 for task in tasks if task.status == TaskStatus.OVERDUE),
            total_hours_worked=round(sum(task.actual_hours or 0.0 for task in tasks), 2),
            avg_progress=_avg([float(task.progress) for task in tasks]) or 0.0,
        ),
        recent_attendance=[to_attendance_read(day) for day in days[:RECENT_ROWS_LIMIT]],
        recent_tasks=[
            TaskBrief(
                id=task.id,
                title=task.title,
                status=task.status,
                priority=task.priority,
                due_date=task.due_date,
                progress=task.progress,
                actual_hours=task.actual_hours,
                assigner_name=task.assigner.name if task.assigner is not None else None,
            )
            for task in tasks[:RECENT_ROWS_LIMIT]
        ],
        weekly_trends=[
            WeeklyTrend(
                year=year,
                week=week,
                avg_productivity=_avg(
                    [float(day.productivity_score) for day in items if day.productivity_score is not None]
                ),
                total_hours=round(sum(_hours(day) for day in items), 2),
                days_worked=len(items),
            )
            for (year, week), items in sorted(weeks.items())
        ],
    )


def _report_days(db: Session, window: ReportWindow, department: str | None) -> list[AttendanceDay]:
    days = [day for day in _load_days(db, start_key=window.start_key, end_key=window.end_key) if _non_admin(day)]
    if department and department != "all":
        days = [day for day in days if day.user.department == department]
    return days


def attendance_summary_rows(
    db: Session,
    window: ReportWindow,
    *,
    department: str | None = None,
) -> list[AttendanceSummaryRow]:
    grouped: dict[int, list[AttendanceDay]] = defaultdict(list)
    for day in _report_days(db, window, department):
        grouped[day.user_id].append(day)

    rows: list[AttendanceSummaryRow] = []
    for items in grouped.values():
        user = items[0].user
        rows.append(
            AttendanceSummaryRow(
                user_id=user.id,
                user_name=user.name,
                user_email=user.email,
                department=user.department,
                total_days=len(items),
                total_hours=round(sum(_hours(day) for day in items), 2),
                avg_productivity=_avg(
                    [float(day.productivity_score) for day in items if day.productivity_score is not None]
                ),
                late_arrivals=sum(1 for day in items if day.status in LATE_STATUSES),
            )
        )
    rows.sort(key=lambda row: (row.user_name.lower(), row.user_id))
    return rows


def attendance_detail_rows(
    db: Session,
    window: ReportWindow,
    *,
    department: str | None = None,
) -> list[AttendanceDetailRow]:
    days = _report_days(db, window, department)
    days.sort(key=lambda day: day.user.name.lower())
    days.sort(key=lambda day: day.date_key, reverse=True)
    return [
        AttendanceDetailRow(
            id=day.id,
            date=day.date_key,
            check_in=day.check_in,
            check_out=day.check_out,
            status=day.status,
            total_hours=round(_hours(day), 2),
            net_minutes=day.net_minutes,
            productivity_score=day.productivity_score,
            mood=day.mood,
            is_remote=day.is_remote,
            user=UserSummary.model_validate(day.user),
        )
        for day in days
    ]


def rank_performers(
    db: Session,
    *,
    since: datetime,
    until: datetime | None = None,
    limit: int = 5,
) -> list[PerformerRead]:
    """Score = 10 x completed tasks + average productivity + 0.5 x hours worked."""
    since_ts = normalize_ts(since)
    until_ts = normalize_ts(until)
    users = list(
        db.scalars(
            select(User).where(User.role != UserRole.ADMIN, User.status == AccountStatus.ACTIVE)
        ).all()
    )
    if not users:
        return []

    completed = Counter(
        db.scalars(
            select(Task.assignee_id).where(
                Task.status == TaskStatus.COMPLETED,
                Task.completed_at.is_not(None),
                Task.completed_at >= since_ts,
                Task.completed_at <= until_ts,
            )
        ).all()
    )
    days = _load_days(db, start_key=date_key_for(since_ts), end_key=date_key_for(until_ts))
    by_user: dict[int, list[AttendanceDay]] = defaultdict(list)
    for day in days:
        by_user[day.user_id].append(day)

    performers: list[PerformerRead] = []
    for user in users:
        items = by_user.get(user.id, [])
        avg_productivity = _avg(
            [float(day.productivity_score) for day in items if day.productivity_score is not None],
            digits=2,
        )
        total_hours = sum(_hours(day) for day in items)
        score = 10 * completed[user.id] + (avg_productivity or 0.0) + 0.5 * total_hours
        if score <= 0:
            continue
        performers.append(
            PerformerRead(
                user_id=user.id,
                name=user.name,
                email=user.email,
                department=user.department,
                completed_tasks=completed[user.id],
                avg_productivity=round(avg_productivity or 0.0, 1),
                total_hours=round(total_hours, 1),
                performance_score=round(score, 1),
            )
        )
    performers.sort(key=lambda item: (-item.performance_score, item.name.lower()))
    return performers[: max(0, limit)]


def build_productivity_report(
    db: Session,
    *,
    start: date | None = None,
    end: date | None = None,
    department: str | None = None,
    now: datetime | None = None,
    top_limit: int = 10,
) -> ProductivityReportRead:
    window = resolve_window(start, end, now=now)
    days = [day for day in _report_days(db, window, department) if day.productivity_score is not None]

    departments: dict[str, list[AttendanceDay]] = defaultdict(list)
    daily: dict[str, list[int]] = defaultdict(list)
    for day in days:
        departments[day.user.department].append(day)
        daily[day.date_key].append(day.productivity_score)

    department_rows = [
        DepartmentProductivity(
            department=name,
            avg_productivity=_avg([float(day.productivity_score) for day in items], digits=2) or 0.0,
            total_entries=len(items),
            employee_count=len({day.user_id for day in items}),
        )
        for name, items in departments.items()
    ]
    department_rows.sort(key=lambda row: (-row.avg_productivity, row.department))

    since = datetime.combine(window.start, time.min, tzinfo=attendance_timezone())
    until = datetime.combine(window.end, time.max, tzinfo=attendance_timezone())
    top = rank_performers(db, since=since, until=until, limit=top_limit)

    return ProductivityReportRead(
        department_productivity=department_rows,
        top_performers=top,
        daily_trends=[
            DailyProductivity(
                date=key,
                avg_productivity=_avg([float(score) for score in daily[key]], digits=2) or 0.0,
                entries_count=len(daily[key]),
            )
            for key in sorted(daily)
        ],
        summary=ProductivityReportMeta(
            date_range=window.as_range(),
            total_departments=len(department_rows),
            top_performers_count=len(top),
        ),
    )


def recent_activities(db: Session, *, limit: int = 10, now: datetime | None = None) -> list[ActivityRead]:
    ts = normalize_ts(now)
    since = ts - timedelta(days=ACTIVITY_WINDOW_DAYS)
    activities: list[ActivityRead] = []

    for day in _load_days(db, start_key=date_key_for(since))[: limit * 2]:
        user = UserSummary.model_validate(day.user) if day.user is not None else None
        activities.append(
            ActivityRead(
                id=f"checkin-{day.id}",
                type="check-in",
                user=user,
                description=f"Checked in at {local_time(day.check_in).strftime('%H:%M')}",
                timestamp=day.check_in,
            )
        )
        if day.check_out is not None:
            activities.append(
                ActivityRead(
                    id=f"checkout-{day.id}",
                    type="check-out",
                    user=user,
                    description=f"Checked out at {local_time(day.check_out).strftime('%H:%M')}",
                    timestamp=day.check_out,
                )
            )

    completed_tasks = db.scalars(
        select(Task)
        .options(selectinload(Task.assignee))
        .where(
            Task.status == TaskStatus.COMPLETED,
            Task.completed_at.is_not(None),
            Task.completed_at >= since,
        )
        .order_by(Task.completed_at.desc())
        .limit(limit)
    ).all()
    for task in completed_tasks:
        activities.append(
            ActivityRead(
                id=f"task-{task.id}",
                type="task-completed",
                user=UserSummary.model_validate(task.assignee) if task.assignee is not None else None,
                description=f"Completed task: {task.title}",
                timestamp=task.completed_at,
            )
        )

    activities.sort(key=lambda item: normalize_ts(item.timestamp), reverse=True)
    return activities[: max(0, limit)]


def attendance_records(
    db: Session,
    *,
    time_range: TimeRange = "week",
    limit: int = 50,
    now: datetime | None = None,
) -> list[AttendanceRecordRead]:
    since_key = date_key_for(time_range_start(time_range, now=now))
    days = _load_days(db, start_key=since_key)[: max(0, limit)]
    return [_record_read(day) for day in days]


def employee_attendance(
    db: Session,
    employee_id: int,
    *,
    start: date | None = None,
    end: date | None = None,
    limit: int = 30,
) -> list[AttendanceRecordRead]:
    if db.get(User, employee_id) is None:
        raise ApiError(status_code=404, code="EMPLOYEE_NOT_FOUND", message="Employee not found")
    days = _load_days(
        db,
        start_key=start.isoformat() if start else None,
        end_key=end.isoformat() if end else None,
        user_id=employee_id,
    )
    return [_record_read(day) for day in days[: max(0, limit)]]


def _record_read(day: AttendanceDay) -> AttendanceRecordRead:
    base = to_attendance_read(day)
    return AttendanceRecordRead(
        **base.model_dump(),
        user=UserSummary.model_validate(day.user) if day.user is not None else None,
    )
