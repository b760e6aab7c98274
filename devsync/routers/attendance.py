from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from devsync.audit import log_audit
from devsync.db import get_db
from devsync.models import AttendanceStatus, User
from devsync.schemas import (
    DATE_KEY_PATTERN,
    AttendanceAnalyticsResponse,
    AttendanceHistoryResponse,
    AttendanceMarkRequest,
    AttendanceMarkResponse,
    AttendanceStatsResponse,
    AttendanceTodayResponse,
    BreakRead,
    BreakRequest,
    BreakResponse,
    CorrectionRead,
    CorrectionRequest,
    CorrectionResponse,
    CurrentBreakResponse,
    Pagination,
    ProductivityInput,
    ProductivityRead,
    ProductivityUpdateResponse,
)
from devsync.security import get_current_user
from devsync.services.attendance import (
    attendance_analytics,
    current_break,
    end_break,
    get_today,
    list_history,
    mark_attendance,
    monthly_stats,
    productivity_read,
    request_correction,
    start_break,
    to_attendance_read,
    update_productivity,
)

router = APIRouter(prefix="/api/attendance", tags=["attendance"])


@router.post("/mark", response_model=AttendanceMarkResponse)
def mark(
    payload: AttendanceMarkRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AttendanceMarkResponse:
    day = mark_attendance(db, user=current_user, payload=payload)
    request.state.attendance_id = day.id
    log_audit(
        request,
        actor=current_user,
        action="ATTENDANCE_CHECKIN" if payload.type == "checkin" else "ATTENDANCE_CHECKOUT",
        entity_type="attendance_day",
        entity_id=day.id,
        details={"date": day.date_key, "status": day.status.value, "is_remote": day.is_remote},
    )
    message = "Checked in successfully" if payload.type == "checkin" else "Checked out successfully"
    return AttendanceMarkResponse(message=message, attendance=to_attendance_read(day))


@router.get("/today", response_model=AttendanceTodayResponse)
def today(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AttendanceTodayResponse:
    day = get_today(db, user=current_user)
    return AttendanceTodayResponse(attendance=to_attendance_read(day) if day is not None else None)


@router.get("/history", response_model=AttendanceHistoryResponse)
def history(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=30, ge=1, le=200),
    start_date: str | None = Query(default=None, pattern=DATE_KEY_PATTERN),
    end_date: str | None = Query(default=None, pattern=DATE_KEY_PATTERN),
    status: AttendanceStatus | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AttendanceHistoryResponse:
    rows, total = list_history(
        db,
        user=current_user,
        page=page,
        limit=limit,
        start_date=start_date,
        end_date=end_date,
        status=status,
    )
    return AttendanceHistoryResponse(
        attendance=[to_attendance_read(row) for row in rows],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


@router.get("/stats", response_model=AttendanceStatsResponse)
def stats(
    month: int | None = Query(default=None, ge=1, le=12),
    year: int | None = Query(default=None, ge=1970, le=9999),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AttendanceStatsResponse:
    return AttendanceStatsResponse(stats=monthly_stats(db, user=current_user, month=month, year=year))


@router.post("/break", response_model=BreakResponse)
def break_action(
    payload: BreakRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> BreakResponse:
    if payload.action == "start":
        day, item = start_break(
            db,
            user=current_user,
            break_type=payload.type,
            notes=payload.notes,
            location=payload.location,
        )
        message = "Break started successfully"
    else:
        day, item = end_break(db, user=current_user)
        message = "Break ended successfully"

    log_audit(
        request,
        actor=current_user,
        action="ATTENDANCE_BREAK_START" if payload.action == "start" else "ATTENDANCE_BREAK_END",
        entity_type="attendance_day",
        entity_id=day.id,
        details={"sequence": item.sequence, "break_type": item.break_type.value},
    )
    return BreakResponse(
        message=message,
        break_entry=BreakRead.model_validate(item),
        attendance=to_attendance_read(day),
    )


@router.get("/current-break", response_model=CurrentBreakResponse)
def break_status(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CurrentBreakResponse:
    open_break, total_minutes = current_break(db, user=current_user)
    return CurrentBreakResponse(
        on_break=open_break is not None,
        current_break=BreakRead.model_validate(open_break) if open_break is not None else None,
        total_break_minutes=total_minutes,
    )


@router.post("/correction", response_model=CorrectionResponse)
def correction(
    payload: CorrectionRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CorrectionResponse:
    day, item = request_correction(db, user=current_user, payload=payload)
    log_audit(
        request,
        actor=current_user,
        action="ATTENDANCE_CORRECTION_REQUESTED",
        entity_type="attendance_day",
        entity_id=day.id,
        details={"field": item.field, "correction_id": item.id},
    )
    return CorrectionResponse(
        message="Correction request submitted successfully",
        correction=CorrectionRead.model_validate(item),
        attendance=to_attendance_read(day),
    )


@router.post("/productivity", response_model=ProductivityUpdateResponse)
def productivity(
    payload: ProductivityInput,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ProductivityUpdateResponse:
    day = update_productivity(db, user=current_user, payload=payload)
    log_audit(
        request,
        actor=current_user,
        action="ATTENDANCE_PRODUCTIVITY_UPDATED",
        entity_type="attendance_day",
        entity_id=day.id,
        details={"fields": sorted(payload.model_fields_set)},
    )
    return ProductivityUpdateResponse(
        message="Productivity updated successfully",
        productivity=productivity_read(day) or ProductivityRead(),
        attendance=to_attendance_read(day),
    )


@router.get("/analytics", response_model=AttendanceAnalyticsResponse)
def analytics(
    days: int = Query(default=30, ge=1, le=365),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AttendanceAnalyticsResponse:
    return AttendanceAnalyticsResponse(analytics=attendance_analytics(db, user=current_user, days=days))
