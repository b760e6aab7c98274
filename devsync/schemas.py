from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from devsync.models import (
    PERMISSION_TAGS,
    WEEKDAY_NAMES,
    AccountStatus,
    AttendanceStatus,
    BreakType,
    CorrectionStatus,
    Mood,
    RecurrencePattern,
    TaskCategory,
    TaskPriority,
    TaskStatus,
    UserRole,
)

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
DATE_KEY_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
CorrectionField = Literal["check_in", "check_out", "status", "notes"]


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_records: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> "Pagination":
        total_pages = (total + limit - 1) // limit if limit > 0 else 0
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_records=total,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class DateRange(BaseModel):
    start: date
    end: date


# ---------------------------------------------------------------- snapshots


class Location(BaseModel):
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    address: str | None = Field(default=None, max_length=500)
    accuracy: float | None = Field(default=None, ge=0)


class DeviceInfo(BaseModel):
    user_agent: str | None = Field(default=None, max_length=1024)
    ip: str | None = Field(default=None, max_length=128)
    platform: str | None = Field(default=None, max_length=128)


class NetworkInfo(BaseModel):
    connection_type: str | None = Field(default=None, max_length=32)
    signal_strength: float | None = None
    network_name: str | None = Field(default=None, max_length=255)


class Weather(BaseModel):
    condition: str | None = Field(default=None, max_length=64)
    temperature: float | None = None
    humidity: float | None = Field(default=None, ge=0, le=100)


class ProductivityInput(BaseModel):
    score: int | None = Field(default=None, ge=1, le=10)
    tasks_completed: int | None = Field(default=None, ge=0)
    self_assessment: str | None = Field(default=None, max_length=1000)


class ProductivityRead(BaseModel):
    score: int | None = None
    tasks_completed: int | None = None
    self_assessment: str | None = None


# ----------------------------------------------------------------- accounts


class EmergencyContact(BaseModel):
    name: str | None = Field(default=None, max_length=100)
    phone: str | None = Field(default=None, max_length=32)
    relationship: str | None = Field(default=None, max_length=50)


class WorkSchedule(BaseModel):
    start_time: str = Field(default="09:00", pattern=HHMM_PATTERN)
    end_time: str = Field(default="17:00", pattern=HHMM_PATTERN)
    work_days: list[str] = Field(default_factory=lambda: list(WEEKDAY_NAMES[:5]))

    @field_validator("work_days")
    @classmethod
    def _known_weekdays(cls, value: list[str]) -> list[str]:
        unknown = [item for item in value if item not in WEEKDAY_NAMES]
        if unknown:
            raise ValueError(f"Unknown work day: {unknown[0]}")
        # keep calendar order, drop duplicates
        return [name for name in WEEKDAY_NAMES if name in set(value)]


def _validate_permissions(value: list[str] | None) -> list[str] | None:
    if value is None:
        return None
    unknown = [item for item in value if item not in PERMISSION_TAGS]
    if unknown:
        raise ValueError(f"Unknown permission: {unknown[0]}")
    return sorted(set(value))


class UserSummary(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole
    department: str

    model_config = ConfigDict(from_attributes=True)


class UserRead(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole
    status: AccountStatus
    department: str
    joined_at: datetime
    last_login_at: datetime | None = None
    last_seen_at: datetime | None = None
    phone_number: str | None = None
    profile_image: str | None = None
    emergency_contact: EmergencyContact | None = None
    work_schedule: WorkSchedule
    manager_id: int | None = None
    permissions: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class SignupRequest(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    department: str | None = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class AuthResponse(BaseModel):
    success: bool = True
    message: str
    user: UserRead
    access_token: str
    expires_in: int


class MeResponse(BaseModel):
    success: bool = True
    user: UserRead


class ProfileUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=50)
    email: EmailStr | None = None
    phone_number: str | None = Field(default=None, max_length=32)
    profile_image: str | None = Field(default=None, max_length=1024)
    emergency_contact: EmergencyContact | None = None


class PasswordChangeRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=6, max_length=128)


class EmployeeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    role: UserRole = UserRole.EMPLOYEE
    department: str | None = Field(default=None, max_length=100)
    phone_number: str | None = Field(default=None, max_length=32)
    manager_id: int | None = Field(default=None, ge=1)
    work_schedule: WorkSchedule | None = None
    permissions: list[str] | None = None

    _permissions = field_validator("permissions")(_validate_permissions)


class EmployeeUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=50)
    email: EmailStr | None = None
    role: UserRole | None = None
    status: AccountStatus | None = None
    department: str | None = Field(default=None, min_length=1, max_length=100)
    phone_number: str | None = Field(default=None, max_length=32)
    manager_id: int | None = Field(default=None, ge=1)
    work_schedule: WorkSchedule | None = None
    permissions: list[str] | None = None

    _permissions = field_validator("permissions")(_validate_permissions)


class EmployeeDetailRead(UserRead):
    total_attendance_days: int
    manager: UserSummary | None = None
    subordinates: list[UserSummary] = Field(default_factory=list)


class EmployeeListResponse(BaseModel):
    success: bool = True
    employees: list[UserRead]
    pagination: Pagination


class EmployeeResponse(BaseModel):
    success: bool = True
    message: str
    employee: UserRead


# --------------------------------------------------------------- attendance


class BreakRead(BaseModel):
    id: int
    sequence: int
    break_start: datetime
    break_end: datetime | None = None
    duration_minutes: int | None = None
    break_type: BreakType
    notes: str | None = None
    location: dict[str, Any] | None = None

    model_config = ConfigDict(from_attributes=True)


class CorrectionRead(BaseModel):
    id: int
    field: str
    old_value: str | None = None
    new_value: str
    reason: str
    requested_by_id: int | None = None
    requested_at: datetime
    status: CorrectionStatus
    reviewed_by_id: int | None = None
    reviewed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class AttendanceDayRead(BaseModel):
    id: int
    user_id: int
    date: str
    check_in: datetime
    check_out: datetime | None = None
    status: AttendanceStatus
    working_minutes: int
    break_minutes: int
    net_minutes: int
    overtime_minutes: int
    check_in_location: dict[str, Any] | None = None
    check_out_location: dict[str, Any] | None = None
    notes: str | None = None
    device: dict[str, Any] | None = None
    is_remote: bool
    network_info: dict[str, Any] | None = None
    battery_level: float | None = None
    gps_accuracy: float | None = None
    temperature: float | None = None
    symptoms: list[str] = Field(default_factory=list)
    mood: Mood | None = None
    productivity: ProductivityRead | None = None
    weather: dict[str, Any] | None = None
    approval_required: bool
    approval_reason: str | None = None
    breaks: list[BreakRead] = Field(default_factory=list)
    corrections: list[CorrectionRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class AttendanceRecordRead(AttendanceDayRead):
    user: UserSummary | None = None


class EmployeeDetailResponse(BaseModel):
    success: bool = True
    employee: EmployeeDetailRead
    recent_attendance: list[AttendanceDayRead]


class AttendanceMarkRequest(BaseModel):
    type: Literal["checkin", "checkout"]
    location: Location | None = None
    notes: str | None = Field(default=None, max_length=500)
    device: DeviceInfo | None = None
    is_remote: bool | None = None
    network_info: NetworkInfo | None = None
    battery_level: float | None = Field(default=None, ge=0, le=100)
    gps_accuracy: float | None = Field(default=None, ge=0)
    temperature: float | None = Field(default=None, ge=30, le=45)
    symptoms: list[str] | None = None
    mood: Mood | None = None
    productivity: ProductivityInput | None = None
    weather: Weather | None = None


class AttendanceMarkResponse(BaseModel):
    success: bool = True
    message: str
    attendance: AttendanceDayRead


class AttendanceTodayResponse(BaseModel):
    success: bool = True
    attendance: AttendanceDayRead | None = None


class AttendanceHistoryResponse(BaseModel):
    success: bool = True
    attendance: list[AttendanceDayRead]
    pagination: Pagination


class AttendanceStatsRead(BaseModel):
    month: int
    year: int
    total_days: int
    present_days: int
    late_days: int
    half_days: int
    absent_days: int
    total_working_minutes: int
    total_break_minutes: int
    total_overtime_minutes: int
    average_working_minutes: int
    weekly_pattern: dict[str, int]
    most_common_break_type: BreakType | None = None


class AttendanceStatsResponse(BaseModel):
    success: bool = True
    stats: AttendanceStatsRead


class BreakRequest(BaseModel):
    action: Literal["start", "end"]
    type: BreakType = BreakType.OTHER
    notes: str | None = Field(default=None, max_length=500)
    location: Location | None = None


class BreakResponse(BaseModel):
    success: bool = True
    message: str
    break_entry: BreakRead
    attendance: AttendanceDayRead


class CurrentBreakResponse(BaseModel):
    success: bool = True
    on_break: bool
    current_break: BreakRead | None = None
    total_break_minutes: int = 0


class CorrectionRequest(BaseModel):
    date: str | None = Field(default=None, pattern=DATE_KEY_PATTERN)
    field: CorrectionField
    new_value: str = Field(min_length=1, max_length=500)
    reason: str = Field(min_length=1, max_length=500)


class CorrectionResponse(BaseModel):
    success: bool = True
    message: str
    correction: CorrectionRead
    attendance: AttendanceDayRead


class CorrectionReviewRequest(BaseModel):
    decision: Literal["approve", "reject"]


class ProductivityUpdateResponse(BaseModel):
    success: bool = True
    message: str
    productivity: ProductivityRead
    attendance: AttendanceDayRead


class PunctualityPoint(BaseModel):
    date: str
    status: AttendanceStatus | None = None
    on_time: bool | None = None


class AttendanceAnalyticsRead(BaseModel):
    days: int
    start_date: str
    end_date: str
    total_records: int
    mood_distribution: dict[str, int]
    checkin_hour_histogram: dict[str, int]
    break_type_histogram: dict[str, int]
    remote_days: int
    office_days: int
    remote_ratio: float
    symptom_frequency: dict[str, int]
    punctuality_trend: list[PunctualityPoint]
    average_productivity: float | None = None


class AttendanceAnalyticsResponse(BaseModel):
    success: bool = True
    analytics: AttendanceAnalyticsRead


# -------------------------------------------------------------------- tasks


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=1000)
    priority: TaskPriority = TaskPriority.MEDIUM
    assigned_to: int = Field(ge=1)
    due_date: datetime
    estimated_hours: float | None = Field(default=None, ge=0.5, le=100)
    category: TaskCategory = TaskCategory.OTHER
    tags: list[str] = Field(default_factory=list)
    dependencies: list[int] = Field(default_factory=list)
    is_recurring: bool = False
    recurring_pattern: RecurrencePattern | None = None

    @model_validator(mode="after")
    def _pattern_for_recurring(self) -> "TaskCreate":
        if self.is_recurring and self.recurring_pattern is None:
            raise ValueError("Recurring tasks need a recurring_pattern")
        return self


class TaskUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, min_length=1, max_length=1000)
    priority: TaskPriority | None = None
    assigned_to: int | None = Field(default=None, ge=1)
    due_date: datetime | None = None
    estimated_hours: float | None = Field(default=None, ge=0.5, le=100)
    category: TaskCategory | None = None
    tags: list[str] | None = None
    status: TaskStatus | None = None
    progress: int | None = Field(default=None, ge=0, le=100)
    actual_hours: float | None = Field(default=None, ge=0)
    dependencies: list[int] | None = None
    completion_reason: str | None = Field(default=None, max_length=500)
    is_recurring: bool | None = None
    recurring_pattern: RecurrencePattern | None = None


class TaskDependencyRead(BaseModel):
    id: int
    title: str
    status: TaskStatus
    priority: TaskPriority

    model_config = ConfigDict(from_attributes=True)


class CommentRead(BaseModel):
    id: int
    author: UserSummary | None = None
    body: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TimeEntryRead(BaseModel):
    id: int
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    description: str | None = None
    date_key: str

    model_config = ConfigDict(from_attributes=True)


class AttachmentRead(BaseModel):
    id: int
    file_name: str
    file_url: str
    file_type: str | None = None
    uploaded_by_id: int | None = None
    uploaded_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TaskRead(BaseModel):
    id: int
    title: str
    description: str
    priority: TaskPriority
    status: TaskStatus
    assignee: UserSummary | None = None
    assigner: UserSummary | None = None
    due_date: datetime
    estimated_hours: float | None = None
    actual_hours: float
    category: TaskCategory
    tags: list[str] = Field(default_factory=list)
    progress: int
    dependencies: list[TaskDependencyRead] = Field(default_factory=list)
    comments: list[CommentRead] = Field(default_factory=list)
    time_entries: list[TimeEntryRead] = Field(default_factory=list)
    attachments: list[AttachmentRead] = Field(default_factory=list)
    completed_at: datetime | None = None
    completion_reason: str | None = None
    is_recurring: bool
    recurring_pattern: RecurrencePattern | None = None
    next_due_date: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TaskListResponse(BaseModel):
    success: bool = True
    tasks: list[TaskRead]
    pagination: Pagination


class TaskResponse(BaseModel):
    success: bool = True
    message: str | None = None
    task: TaskRead


class CommentCreate(BaseModel):
    comment: str = Field(min_length=1, max_length=2000)


class CommentsResponse(BaseModel):
    success: bool = True
    message: str
    comments: list[CommentRead]


class TimeEntryCreate(BaseModel):
    start_time: datetime
    end_time: datetime
    description: str | None = Field(default=None, max_length=500)


class TimeTrackingResponse(BaseModel):
    success: bool = True
    message: str
    time_entries: list[TimeEntryRead]
    actual_hours: float


class AttachmentCreate(BaseModel):
    file_name: str = Field(min_length=1, max_length=255)
    file_url: str = Field(min_length=1, max_length=2048)
    file_type: str | None = Field(default=None, max_length=100)


class AttachmentsResponse(BaseModel):
    success: bool = True
    message: str
    attachments: list[AttachmentRead]


class TaskStatsRead(BaseModel):
    total_tasks: int
    completed_tasks: int
    in_progress_tasks: int
    overdue_tasks: int
    avg_estimated_hours: float
    avg_actual_hours: float
    total_actual_hours: float


class PriorityCount(BaseModel):
    priority: TaskPriority
    count: int


class CategoryCount(BaseModel):
    category: TaskCategory
    count: int
    avg_hours: float


class TaskStatsResponse(BaseModel):
    success: bool = True
    stats: TaskStatsRead
    priority_stats: list[PriorityCount]
    category_stats: list[CategoryCount]


# ------------------------------------------------------------------ reports


class TodayAttendanceStats(BaseModel):
    present: int
    absent: int
    late: int
    on_time: int


class ProductivityMetrics(BaseModel):
    avg_productivity: float
    avg_work_hours: float
    total_work_hours: float


class DepartmentCount(BaseModel):
    department: str
    count: int
    active_count: int


class DailyCount(BaseModel):
    date: str
    count: int


class DashboardRead(BaseModel):
    total_employees: int
    active_employees: int
    total_tasks: int
    overdue_tasks: int
    today_attendance: int
    current_checkins: int
    task_stats: dict[str, int]
    attendance_stats: TodayAttendanceStats
    productivity_metrics: ProductivityMetrics
    department_stats: list[DepartmentCount]
    weekly_attendance: list[DailyCount]


class DashboardResponse(BaseModel):
    success: bool = True
    data: DashboardRead


class EmployeeAttendanceTotals(BaseModel):
    total_days: int
    total_hours: float
    avg_productivity: float | None = None
    late_arrivals: int
    early_departures: int


class EmployeeTaskTotals(BaseModel):
    total_tasks: int
    completed_tasks: int
    overdue_tasks: int
    total_hours_worked: float
    avg_progress: float


class TaskBrief(BaseModel):
    id: int
    title: str
    status: TaskStatus
    priority: TaskPriority
    due_date: datetime
    progress: int
    actual_hours: float
    assigner_name: str | None = None


class WeeklyTrend(BaseModel):
    year: int
    week: int
    avg_productivity: float | None = None
    total_hours: float
    days_worked: int


class EmployeeReportRead(BaseModel):
    employee: UserSummary
    joined_at: datetime
    date_range: DateRange
    attendance: EmployeeAttendanceTotals
    tasks: EmployeeTaskTotals
    recent_attendance: list[AttendanceDayRead]
    recent_tasks: list[TaskBrief]
    weekly_trends: list[WeeklyTrend]


class EmployeeReportResponse(BaseModel):
    success: bool = True
    data: EmployeeReportRead


class AttendanceSummaryRow(BaseModel):
    user_id: int
    user_name: str
    user_email: str
    department: str
    total_days: int
    total_hours: float
    avg_productivity: float | None = None
    late_arrivals: int


class AttendanceDetailRow(BaseModel):
    id: int
    date: str
    check_in: datetime
    check_out: datetime | None = None
    status: AttendanceStatus
    total_hours: float
    net_minutes: int
    productivity_score: int | None = None
    mood: Mood | None = None
    is_remote: bool
    user: UserSummary


class ReportMeta(BaseModel):
    total_rows: int
    date_range: DateRange


class AttendanceReportResponse(BaseModel):
    success: bool = True
    report_type: Literal["summary", "detailed"]
    data: list[AttendanceSummaryRow] | list[AttendanceDetailRow]
    summary: ReportMeta


class DepartmentProductivity(BaseModel):
    department: str
    avg_productivity: float
    total_entries: int
    employee_count: int


class PerformerRead(BaseModel):
    user_id: int
    name: str
    email: str
    department: str
    completed_tasks: int
    avg_productivity: float
    total_hours: float
    performance_score: float


class DailyProductivity(BaseModel):
    date: str
    avg_productivity: float
    entries_count: int


class ProductivityReportMeta(BaseModel):
    date_range: DateRange
    total_departments: int
    top_performers_count: int


class ProductivityReportRead(BaseModel):
    department_productivity: list[DepartmentProductivity]
    top_performers: list[PerformerRead]
    daily_trends: list[DailyProductivity]
    summary: ProductivityReportMeta


class ProductivityReportResponse(BaseModel):
    success: bool = True
    data: ProductivityReportRead


class TopPerformersResponse(BaseModel):
    success: bool = True
    data: list[PerformerRead]


class ActivityRead(BaseModel):
    id: str
    type: Literal["check-in", "check-out", "task-completed"]
    user: UserSummary | None = None
    description: str
    timestamp: datetime


class RecentActivitiesResponse(BaseModel):
    success: bool = True
    data: list[ActivityRead]


class AttendanceRecordsResponse(BaseModel):
    success: bool = True
    data: list[AttendanceRecordRead]


class CorrectionReviewResponse(BaseModel):
    success: bool = True
    message: str
    correction: CorrectionRead
    attendance: AttendanceDayRead
