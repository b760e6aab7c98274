from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from devsync.errors import ApiError
from devsync.models import (
    WEEKDAY_NAMES,
    AttendanceBreak,
    AttendanceCorrection,
    AttendanceDay,
    AttendanceStatus,
    BreakType,
    CorrectionStatus,
    User,
)
from devsync.schemas import (
    AttendanceAnalyticsRead,
    AttendanceDayRead,
    AttendanceMarkRequest,
    AttendanceStatsRead,
    BreakRead,
    CorrectionRead,
    CorrectionRequest,
    Location,
    ProductivityInput,
    ProductivityRead,
    PunctualityPoint,
)
from devsync.services.attendance_calc import (
    apply_day_metrics,
    date_key_for,
    local_time,
    normalize_ts,
    status_for_checkin,
)

DEFAULT_ANALYTICS_DAYS = 30
MAX_ANALYTICS_DAYS = 365
PUNCTUALITY_TREND_DAYS = 7


def _dump(model: Any) -> dict[str, Any] | None:
    if model is None:
        return None
    return model.model_dump(mode="json", exclude_none=True)


def productivity_read(day: AttendanceDay) -> ProductivityRead | None:
    if (
        day.productivity_score is None
        and day.productivity_tasks_completed is None
        and day.productivity_self_assessment is None
    ):
        return None
    return ProductivityRead(
        score=day.productivity_score,
        tasks_completed=day.productivity_tasks_completed,
        self_assessment=day.productivity_self_assessment,
    )


def to_attendance_read(day: AttendanceDay) -> AttendanceDayRead:
    return AttendanceDayRead(
        id=day.id,
        user_id=day.user_id,
        date=day.date_key,
        check_in=day.check_in,
        check_out=day.check_out,
        status=day.status,
        working_minutes=day.working_minutes,
        break_minutes=day.break_minutes,
        net_minutes=day.net_minutes,
        overtime_minutes=day.overtime_minutes,
        check_in_location=day.check_in_location,
        check_out_location=day.check_out_location,
        notes=day.notes,
        device=day.device,
        is_remote=day.is_remote,
        network_info=day.network_info,
        battery_level=day.battery_level,
        gps_accuracy=day.gps_accuracy,
        temperature=day.temperature,
        symptoms=list(day.symptoms or []),
        mood=day.mood,
        productivity=productivity_read(day),
        weather=day.weather,
        approval_required=day.approval_required,
        approval_reason=day.approval_reason,
        breaks=[BreakRead.model_validate(item) for item in day.breaks],
        corrections=[CorrectionRead.model_validate(item) for item in day.corrections],
        created_at=day.created_at,
        updated_at=day.updated_at,
    )


def _merge_productivity(day: AttendanceDay, delta: ProductivityInput | None) -> None:
    if delta is None:
        return
    if delta.score is not None:
        day.productivity_score = delta.score
    if delta.tasks_completed is not None:
        day.productivity_tasks_completed = delta.tasks_completed
    if delta.self_assessment is not None:
        day.productivity_self_assessment = delta.self_assessment


def get_day(db: Session, *, user_id: int, date_key: str) -> AttendanceDay | None:
    return db.scalar(
        select(AttendanceDay)
        .options(selectinload(AttendanceDay.breaks), selectinload(AttendanceDay.corrections))
        .where(AttendanceDay.user_id == user_id, AttendanceDay.date_key == date_key)
    )


def get_today(db: Session, *, user: User, now: datetime | None = None) -> AttendanceDay | None:
    return get_day(db, user_id=user.id, date_key=date_key_for(normalize_ts(now)))


def _require_today(db: Session, *, user: User, now: datetime) -> AttendanceDay:
    day = get_today(db, user=user, now=now)
    if day is None:
        raise ApiError(status_code=400, code="NOT_CHECKED_IN", message="You have not checked in today")
    return day


def check_in(
    db: Session,
    *,
    user: User,
    payload: AttendanceMarkRequest,
    now: datetime | None = None,
) -> AttendanceDay:
    ts = normalize_ts(now)
    date_key = date_key_for(ts)
    if get_day(db, user_id=user.id, date_key=date_key) is not None:
        raise ApiError(status_code=400, code="ALREADY_CHECKED_IN", message="Already checked in today")

    day = AttendanceDay(
        user_id=user.id,
        date_key=date_key,
        check_in=ts,
        status=status_for_checkin(ts),
        check_in_location=_dump(payload.location),
        notes=payload.notes,
        device=_dump(payload.device),
        is_remote=bool(payload.is_remote),
        network_info=_dump(payload.network_info),
        battery_level=payload.battery_level,
        gps_accuracy=payload.gps_accuracy,
        temperature=payload.temperature,
        symptoms=list(payload.symptoms or []),
        mood=payload.mood,
        weather=_dump(payload.weather),
        working_minutes=0,
        break_minutes=0,
        overtime_minutes=0,
    )
    _merge_productivity(day, payload.productivity)
    db.add(day)
    try:
        db.commit()
    except IntegrityError as exc:
        # A concurrent first check-in for the same day won the insert.
        db.rollback()
        raise ApiError(status_code=400, code="ALREADY_CHECKED_IN", message="Already checked in today") from exc
    db.refresh(day)
    return day


def check_out(
    db: Session,
    *,
    user: User,
    payload: AttendanceMarkRequest,
    now: datetime | None = None,
) -> AttendanceDay:
    ts = normalize_ts(now)
    day = _require_today(db, user=user, now=ts)
    if day.check_out is not None:
        raise ApiError(status_code=400, code="ALREADY_CHECKED_OUT", message="Already checked out today")
    if ts <= day.check_in:
        raise ApiError(status_code=400, code="INVALID_CHECKOUT", message="Check-out must be after check-in")

    open_break = day.open_break
    if open_break is not None:
        open_break.break_end = ts

    day.check_out = ts
    if payload.location is not None:
        day.check_out_location = _dump(payload.location)
    if payload.notes is not None:
        day.notes = payload.notes
    if payload.mood is not None:
        day.mood = payload.mood
    _merge_productivity(day, payload.productivity)
    apply_day_metrics(day)
    db.commit()
    db.refresh(day)
    return day


def mark_attendance(
    db: Session,
    *,
    user: User,
    payload: AttendanceMarkRequest,
    now: datetime | None = None,
) -> AttendanceDay:
    if payload.type == "checkin":
        return check_in(db, user=user, payload=payload, now=now)
    return check_out(db, user=user, payload=payload, now=now)


def start_break(
    db: Session,
    *,
    user: User,
    break_type: BreakType = BreakType.OTHER,
    notes: str | None = None,
    location: Location | None = None,
    now: datetime | None = None,
) -> tuple[AttendanceDay, AttendanceBreak]:
    ts = normalize_ts(now)
    day = get_today(db, user=user, now=ts)
    if day is None:
        raise ApiError(status_code=400, code="MUST_CHECK_IN_FIRST", message="You must check in first")
    if day.check_out is not None:
        raise ApiError(status_code=400, code="ALREADY_CHECKED_OUT", message="Already checked out today")
    if day.open_break is not None:
        raise ApiError(status_code=400, code="BREAK_ALREADY_OPEN", message="A break is already in progress")

    next_sequence = max((item.sequence for item in day.breaks), default=0) + 1
    item = AttendanceBreak(
        sequence=next_sequence,
        break_start=ts,
        break_type=break_type,
        notes=notes,
        location=_dump(location),
    )
    day.breaks.append(item)
    db.commit()
    db.refresh(day)
    return day, item


def end_break(
    db: Session,
    *,
    user: User,
    now: datetime | None = None,
) -> tuple[AttendanceDay, AttendanceBreak]:
    ts = normalize_ts(now)
    day = get_today(db, user=user, now=ts)
    open_break = day.open_break if day is not None else None
    if day is None or open_break is None:
        raise ApiError(status_code=400, code="NO_OPEN_BREAK", message="No active break found")

    open_break.break_end = max(ts, normalize_ts(open_break.break_start))
    apply_day_metrics(day)
    db.commit()
    db.refresh(day)
    return day, open_break


def current_break(
    db: Session,
    *,
    user: User,
    now: datetime | None = None,
) -> tuple[AttendanceBreak | None, int]:
    day = get_today(db, user=user, now=now)
    if day is None:
        return None, 0
    return day.open_break, day.break_minutes


def update_productivity(
    db: Session,
    *,
    user: User,
    payload: ProductivityInput,
    now: datetime | None = None,
) -> AttendanceDay:
    ts = normalize_ts(now)
    day = _require_today(db, user=user, now=ts)
    _merge_productivity(day, payload)
    db.commit()
    db.refresh(day)
    return day


def list_history(
    db: Session,
    *,
    user: User,
    page: int = 1,
    limit: int = 30,
    start_date: str | None = None,
    end_date: str | None = None,
    status: AttendanceStatus | None = None,
) -> tuple[list[AttendanceDay], int]:
    filters = [AttendanceDay.user_id == user.id]
    if start_date:
        filters.append(AttendanceDay.date_key >= start_date)
    if end_date:
        filters.append(AttendanceDay.date_key <= end_date)
    if status is not None:
        filters.append(AttendanceDay.status == status)

    total = db.scalar(select(func.count(AttendanceDay.id)).where(*filters)) or 0
    rows = list(
        db.scalars(
            select(AttendanceDay)
            .options(selectinload(AttendanceDay.breaks), selectinload(AttendanceDay.corrections))
            .where(*filters)
            .order_by(AttendanceDay.date_key.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
    )
    return rows, int(total)


def monthly_stats(
    db: Session,
    *,
    user: User,
    month: int | None = None,
    year: int | None = None,
    now: datetime | None = None,
) -> AttendanceStatsRead:
    reference = local_time(normalize_ts(now))
    target_month = month or reference.month
    target_year = year or reference.year
    prefix = f"{target_year:04d}-{target_month:02d}-"

    rows = list(
        db.scalars(
            select(AttendanceDay)
            .options(selectinload(AttendanceDay.breaks))
            .where(AttendanceDay.user_id == user.id, AttendanceDay.date_key.startswith(prefix))
            .order_by(AttendanceDay.date_key.asc())
        ).all()
    )

    status_counts = Counter(row.status for row in rows)
    weekday_counts: Counter[str] = Counter()
    break_types: Counter[BreakType] = Counter()
    total_working = 0
    total_break = 0
    total_overtime = 0
    for row in rows:
        weekday_counts[WEEKDAY_NAMES[date.fromisoformat(row.date_key).weekday()]] += 1
        total_working += row.working_minutes
        total_break += row.break_minutes
        total_overtime += row.overtime_minutes
        for item in row.breaks:
            break_types[item.break_type] += 1

    most_common = break_types.most_common(1)
    return AttendanceStatsRead(
        month=target_month,
        year=target_year,
        total_days=len(rows),
        present_days=status_counts[AttendanceStatus.PRESENT],
        late_days=status_counts[AttendanceStatus.LATE],
        half_days=status_counts[AttendanceStatus.HALF_DAY],
        absent_days=status_counts[AttendanceStatus.ABSENT],
        total_working_minutes=total_working,
        total_break_minutes=total_break,
        total_overtime_minutes=total_overtime,
        average_working_minutes=round(total_working / len(rows)) if rows else 0,
        weekly_pattern={name: weekday_counts[name] for name in WEEKDAY_NAMES},
        most_common_break_type=most_common[0][0] if most_common else None,
    )


def attendance_analytics(
    db: Session,
    *,
    user: User,
    days: int = DEFAULT_ANALYTICS_DAYS,
    now: datetime | None = None,
) -> AttendanceAnalyticsRead:
    ts = normalize_ts(now)
    window = max(1, min(days, MAX_ANALYTICS_DAYS))
    end_key = date_key_for(ts)
    start_key = date_key_for(ts - timedelta(days=window - 1))

    rows = list(
        db.scalars(
            select(AttendanceDay)
            .options(selectinload(AttendanceDay.breaks))
            .where(
                AttendanceDay.user_id == user.id,
                AttendanceDay.date_key >= start_key,
                AttendanceDay.date_key <= end_key,
            )
            .order_by(AttendanceDay.date_key.asc())
        ).all()
    )

    moods: Counter[str] = Counter()
    hours: Counter[str] = Counter()
    break_types: Counter[str] = Counter()
    symptoms: Counter[str] = Counter()
    scores: list[int] = []
    remote_days = 0
    for row in rows:
        if row.mood is not None:
            moods[row.mood.value] += 1
        hours[str(local_time(row.check_in).hour)] += 1
        for item in row.breaks:
            break_types[item.break_type.value] += 1
        for symptom in row.symptoms or []:
            symptoms[symptom] += 1
        if row.is_remote:
            remote_days += 1
        if row.productivity_score is not None:
            scores.append(row.productivity_score)

    by_key = {row.date_key: row for row in rows}
    trend: list[PunctualityPoint] = []
    for offset in range(PUNCTUALITY_TREND_DAYS - 1, -1, -1):
        key = date_key_for(ts - timedelta(days=offset))
        row = by_key.get(key)
        trend.append(
            PunctualityPoint(
                date=key,
                status=row.status if row is not None else None,
                on_time=(row.status == AttendanceStatus.PRESENT) if row is not None else None,
            )
        )

    return AttendanceAnalyticsRead(
        days=window,
        start_date=start_key,
        end_date=end_key,
        total_records=len(rows),
        mood_distribution=dict(moods),
        checkin_hour_histogram=dict(sorted(hours.items(), key=lambda item: int(item[0]))),
        break_type_histogram=dict(break_types),
        remote_days=remote_days,
        office_days=len(rows) - remote_days,
        remote_ratio=round(remote_days / len(rows), 4) if rows else 0.0,
        symptom_frequency=dict(symptoms),
        punctuality_trend=trend,
        average_productivity=round(sum(scores) / len(scores), 2) if scores else None,
    )


def _stringify_field(day: AttendanceDay, field: str) -> str | None:
    value = getattr(day, field)
    if value is None:
        return None
    if isinstance(value, datetime):
        return normalize_ts(value).isoformat()
    if isinstance(value, AttendanceStatus):
        return value.value
    return str(value)


def _parse_correction_value(field: str, raw: str) -> Any:
    if field in {"check_in", "check_out"}:
        try:
            return normalize_ts(datetime.fromisoformat(raw.strip().replace("Z", "+00:00")))
        except ValueError as exc:
            raise ApiError(
                status_code=400,
                code="INVALID_CORRECTION",
                message=f"{field} must be an ISO-8601 timestamp",
            ) from exc
    if field == "status":
        try:
            return AttendanceStatus(raw.strip())
        except ValueError as exc:
            raise ApiError(
                status_code=400,
                code="INVALID_CORRECTION",
                message="status must be one of present, late, half-day, absent",
            ) from exc
    return raw


def request_correction(
    db: Session,
    *,
    user: User,
    payload: CorrectionRequest,
    now: datetime | None = None,
) -> tuple[AttendanceDay, AttendanceCorrection]:
    ts = normalize_ts(now)
    date_key = payload.date or date_key_for(ts)
    day = get_day(db, user_id=user.id, date_key=date_key)
    if day is None:
        raise ApiError(
            status_code=404,
            code="ATTENDANCE_NOT_FOUND",
            message="Attendance record not found for the specified date",
        )
    _parse_correction_value(payload.field, payload.new_value)

    correction = AttendanceCorrection(
        field=payload.field,
        old_value=_stringify_field(day, payload.field),
        new_value=payload.new_value,
        reason=payload.reason,
        requested_by_id=user.id,
        requested_at=ts,
        status=CorrectionStatus.PENDING,
    )
    day.corrections.append(correction)
    day.approval_required = True
    day.approval_reason = payload.reason
    db.commit()
    db.refresh(day)
    return day, correction


def review_correction(
    db: Session,
    *,
    correction_id: int,
    reviewer: User,
    approve: bool,
    now: datetime | None = None,
) -> tuple[AttendanceDay, AttendanceCorrection]:
    ts = normalize_ts(now)
    correction = db.get(AttendanceCorrection, correction_id)
    if correction is None:
        raise ApiError(status_code=404, code="CORRECTION_NOT_FOUND", message="Correction request not found")
    if correction.status != CorrectionStatus.PENDING:
        raise ApiError(
            status_code=400,
            code="CORRECTION_NOT_PENDING",
            message="Correction request has already been reviewed",
        )

    day = correction.attendance_day
    if approve:
        value = _parse_correction_value(correction.field, correction.new_value)
        check_in_value = value if correction.field == "check_in" else day.check_in
        check_out_value = value if correction.field == "check_out" else day.check_out
        if check_out_value is not None and normalize_ts(check_out_value) <= normalize_ts(check_in_value):
            raise ApiError(
                status_code=400,
                code="INVALID_CORRECTION",
                message="Check-out must be after check-in",
            )
        setattr(day, correction.field, value)
        apply_day_metrics(day)
        correction.status = CorrectionStatus.APPROVED
    else:
        correction.status = CorrectionStatus.REJECTED

    correction.reviewed_by_id = reviewer.id
    correction.reviewed_at = ts
    if not any(item.status == CorrectionStatus.PENDING for item in day.corrections):
        day.approval_required = False
        day.approval_reason = None
    db.commit()
    db.refresh(day)
    return day, correction
