from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from devsync.models import AttendanceDay, AttendanceStatus
from devsync.settings import get_settings


@dataclass(frozen=True)
class DayMetrics:
    working_minutes: int
    break_minutes: int
    net_minutes: int
    overtime_minutes: int


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_ts(ts: datetime | None) -> datetime:
    if ts is None:
        return utcnow()
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


@lru_cache
def attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or "UTC"
    try:
        return ZoneInfo(raw_name)
    except ZoneInfoNotFoundError:
        return ZoneInfo("UTC")


def local_time(ts: datetime) -> datetime:
    return normalize_ts(ts).astimezone(attendance_timezone())


def date_key_for(ts: datetime) -> str:
    return local_time(ts).date().isoformat()


def derive_checkin_status(
    hour: int,
    *,
    late_after_hour: int | None = None,
    half_day_after_hour: int | None = None,
) -> AttendanceStatus:
    settings = get_settings()
    late_threshold = settings.late_after_hour if late_after_hour is None else late_after_hour
    half_day_threshold = settings.half_day_after_hour if half_day_after_hour is None else half_day_after_hour

    if hour >= half_day_threshold:
        return AttendanceStatus.HALF_DAY
    if hour >= late_threshold:
        return AttendanceStatus.LATE
    return AttendanceStatus.PRESENT


def status_for_checkin(ts: datetime) -> AttendanceStatus:
    return derive_checkin_status(local_time(ts).hour)


def elapsed_minutes(start: datetime | None, end: datetime | None) -> int:
    """Whole minutes between two instants, floored; 0 when either is missing."""
    if start is None or end is None:
        return 0
    seconds = (normalize_ts(end) - normalize_ts(start)).total_seconds()
    return max(0, int(seconds // 60))


def calculate_day_metrics(
    day: AttendanceDay,
    *,
    standard_day_minutes: int | None = None,
) -> DayMetrics:
    standard = get_settings().standard_day_minutes if standard_day_minutes is None else standard_day_minutes
    working = elapsed_minutes(day.check_in, day.check_out) if day.check_out is not None else 0

    break_total = 0
    for item in day.breaks:
        if item.break_end is None:
            continue
        break_total += elapsed_minutes(item.break_start, item.break_end)

    net = max(0, working - break_total)
    overtime = max(0, net - max(0, standard)) if day.check_out is not None else 0
    return DayMetrics(
        working_minutes=working,
        break_minutes=break_total,
        net_minutes=net,
        overtime_minutes=overtime,
    )


def apply_day_metrics(day: AttendanceDay) -> DayMetrics:
    for item in day.breaks:
        if item.break_end is not None:
            item.duration_minutes = elapsed_minutes(item.break_start, item.break_end)
    metrics = calculate_day_metrics(day)
    day.working_minutes = metrics.working_minutes
    day.break_minutes = metrics.break_minutes
    day.overtime_minutes = metrics.overtime_minutes
    return metrics
