from datetime import date

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from devsync.audit import log_audit
from devsync.db import get_db
from devsync.models import User
from devsync.schemas import (
    AttendanceRecordsResponse,
    AttendanceReportResponse,
    CorrectionRead,
    CorrectionReviewRequest,
    CorrectionReviewResponse,
    DashboardResponse,
    EmployeeReportResponse,
    ProductivityReportResponse,
    RecentActivitiesResponse,
    ReportMeta,
    TopPerformersResponse,
)
from devsync.services.attendance import review_correction, to_attendance_read
from devsync.services.exports import ReportType, build_attendance_report_xlsx_bytes
from devsync.services.policy import Operation, require
from devsync.services.reports import (
    TimeRange,
    attendance_detail_rows,
    attendance_records,
    attendance_summary_rows,
    build_dashboard,
    build_employee_report,
    build_productivity_report,
    employee_attendance,
    rank_performers,
    recent_activities,
    resolve_window,
    time_range_start,
)

router = APIRouter(prefix="/api/admin", tags=["admin"])
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    dependencies=[Depends(require(Operation.REPORT_READ))],
)
def dashboard(db: Session = Depends(get_db)) -> DashboardResponse:
    return DashboardResponse(data=build_dashboard(db))


@router.get(
    "/employees/{employee_id}/stats",
    response_model=EmployeeReportResponse,
    dependencies=[Depends(require(Operation.REPORT_READ))],
)
def employee_stats(
    employee_id: int,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
) -> EmployeeReportResponse:
    return EmployeeReportResponse(data=build_employee_report(db, employee_id, start=start_date, end=end_date))


@router.get(
    "/reports/attendance",
    response_model=AttendanceReportResponse,
    dependencies=[Depends(require(Operation.REPORT_READ))],
)
def attendance_report(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    department: str | None = Query(default=None, max_length=100),
    report_type: ReportType = Query(default="summary"),
    db: Session = Depends(get_db),
) -> AttendanceReportResponse:
    window = resolve_window(start_date, end_date)
    if report_type == "detailed":
        rows = attendance_detail_rows(db, window, department=department)
    else:
        rows = attendance_summary_rows(db, window, department=department)
    return AttendanceReportResponse(
        report_type=report_type,
        data=rows,
        summary=ReportMeta(total_rows=len(rows), date_range=window.as_range()),
    )


@router.get("/reports/attendance/export")
def attendance_report_export(
    request: Request,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    department: str | None = Query(default=None, max_length=100),
    report_type: ReportType = Query(default="summary"),
    actor: User = Depends(require(Operation.REPORT_READ)),
    db: Session = Depends(get_db),
) -> Response:
    window = resolve_window(start_date, end_date)
    payload = build_attendance_report_xlsx_bytes(
        db,
        window=window,
        report_type=report_type,
        department=department,
    )
    log_audit(
        request,
        actor=actor,
        action="ATTENDANCE_REPORT_EXPORT_XLSX",
        entity_type="export",
        entity_id=report_type,
        details={
            "start_date": window.start_key,
            "end_date": window.end_key,
            "department": department,
        },
    )
    return Response(
        content=payload,
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": (
                f'attachment; filename="attendance-{report_type}-{window.start_key}-{window.end_key}.xlsx"'
            ),
        },
    )


@router.get(
    "/reports/productivity",
    response_model=ProductivityReportResponse,
    dependencies=[Depends(require(Operation.REPORT_READ))],
)
def productivity_report(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    department: str | None = Query(default=None, max_length=100),
    db: Session = Depends(get_db),
) -> ProductivityReportResponse:
    return ProductivityReportResponse(
        data=build_productivity_report(db, start=start_date, end=end_date, department=department)
    )


@router.get(
    "/top-performers",
    response_model=TopPerformersResponse,
    dependencies=[Depends(require(Operation.REPORT_READ))],
)
def top_performers(
    time_range: TimeRange = Query(default="week"),
    limit: int = Query(default=5, ge=1, le=50),
    db: Session = Depends(get_db),
) -> TopPerformersResponse:
    return TopPerformersResponse(data=rank_performers(db, since=time_range_start(time_range), limit=limit))


@router.get(
    "/recent-activities",
    response_model=RecentActivitiesResponse,
    dependencies=[Depends(require(Operation.REPORT_READ))],
)
def activities(
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
) -> RecentActivitiesResponse:
    return RecentActivitiesResponse(data=recent_activities(db, limit=limit))


@router.get(
    "/attendance-records",
    response_model=AttendanceRecordsResponse,
    dependencies=[Depends(require(Operation.REPORT_READ))],
)
def records(
    time_range: TimeRange = Query(default="week"),
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> AttendanceRecordsResponse:
    return AttendanceRecordsResponse(data=attendance_records(db, time_range=time_range, limit=limit))


@router.get(
    "/employee-attendance/{employee_id}",
    response_model=AttendanceRecordsResponse,
    dependencies=[Depends(require(Operation.REPORT_READ))],
)
def employee_records(
    employee_id: int,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    limit: int = Query(default=30, ge=1, le=500),
    db: Session = Depends(get_db),
) -> AttendanceRecordsResponse:
    return AttendanceRecordsResponse(
        data=employee_attendance(db, employee_id, start=start_date, end=end_date, limit=limit)
    )


@router.patch("/attendance-corrections/{correction_id}", response_model=CorrectionReviewResponse)
def review_attendance_correction(
    correction_id: int,
    payload: CorrectionReviewRequest,
    request: Request,
    actor: User = Depends(require(Operation.CORRECTION_REVIEW)),
    db: Session = Depends(get_db),
) -> CorrectionReviewResponse:
    approve = payload.decision == "approve"
    day, correction = review_correction(db, correction_id=correction_id, reviewer=actor, approve=approve)
    log_audit(
        request,
        actor=actor,
        action="ATTENDANCE_CORRECTION_APPROVED" if approve else "ATTENDANCE_CORRECTION_REJECTED",
        entity_type="attendance_correction",
        entity_id=correction.id,
        details={"attendance_day_id": day.id, "field": correction.field},
    )
    return CorrectionReviewResponse(
        message="Correction approved" if approve else "Correction rejected",
        correction=CorrectionRead.model_validate(correction),
        attendance=to_attendance_read(day),
    )
