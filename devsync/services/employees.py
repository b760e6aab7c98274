from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from devsync.errors import ApiError
from devsync.models import (
    DEFAULT_WORK_DAYS,
    AccountStatus,
    AttendanceCorrection,
    AttendanceDay,
    Task,
    TaskAttachment,
    TaskComment,
    User,
    UserRole,
)
from devsync.schemas import (
    EmergencyContact,
    EmployeeCreate,
    EmployeeDetailRead,
    EmployeeUpdate,
    PasswordChangeRequest,
    ProfileUpdateRequest,
    SignupRequest,
    UserRead,
    UserSummary,
    WorkSchedule,
)
from devsync.security import hash_password, verify_password
from devsync.services.attendance_calc import date_key_for, normalize_ts

RECENT_ATTENDANCE_LIMIT = 5
ATTENDANCE_LOOKBACK_DAYS = 30


def normalize_email(email: str) -> str:
    return email.strip().lower()


def to_user_read(user: User) -> UserRead:
    return UserRead(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        status=user.status,
        department=user.department,
        joined_at=user.joined_at,
        last_login_at=user.last_login_at,
        last_seen_at=user.last_seen_at or user.last_login_at,
        phone_number=user.phone_number,
        profile_image=user.profile_image,
        emergency_contact=EmergencyContact(**user.emergency_contact) if user.emergency_contact else None,
        work_schedule=WorkSchedule(
            start_time=user.work_start_time,
            end_time=user.work_end_time,
            work_days=list(user.work_days or DEFAULT_WORK_DAYS),
        ),
        manager_id=user.manager_id,
        permissions=list(user.permissions or []),
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(func.lower(User.email) == normalize_email(email)))


def get_employee(db: Session, employee_id: int) -> User:
    user = db.get(User, employee_id)
    if user is None:
        raise ApiError(status_code=404, code="EMPLOYEE_NOT_FOUND", message="Employee not found")
    return user


def _ensure_email_free(db: Session, email: str, *, exclude_id: int | None = None) -> None:
    existing = get_user_by_email(db, email)
    if existing is not None and existing.id != exclude_id:
        raise ApiError(status_code=400, code="EMAIL_TAKEN", message="User already exists with this email")


def _resolve_manager(db: Session, manager_id: int | None, *, employee_id: int | None = None) -> int | None:
    if manager_id is None:
        return None
    if employee_id is not None and manager_id == employee_id:
        raise ApiError(status_code=400, code="INVALID_MANAGER", message="An employee cannot manage themselves")
    if db.get(User, manager_id) is None:
        raise ApiError(status_code=404, code="MANAGER_NOT_FOUND", message="Manager not found")
    return manager_id


def _apply_schedule(user: User, schedule: WorkSchedule | None) -> None:
    if schedule is None:
        return
    user.work_start_time = schedule.start_time
    user.work_end_time = schedule.end_time
    user.work_days = list(schedule.work_days)


def _admin_count(db: Session) -> int:
    return int(db.scalar(select(func.count(User.id)).where(User.role == UserRole.ADMIN)) or 0)


def _commit_account(db: Session, user: User) -> User:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ApiError(status_code=400, code="EMAIL_TAKEN", message="User already exists with this email") from exc
    db.refresh(user)
    return user


def signup(db: Session, payload: SignupRequest) -> User:
    email = normalize_email(payload.email)
    _ensure_email_free(db, email)
    user = User(
        name=payload.name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        role=UserRole.EMPLOYEE,
        status=AccountStatus.ACTIVE,
        department=(payload.department or "").strip() or "General",
        last_login_at=normalize_ts(None),
    )
    db.add(user)
    return _commit_account(db, user)


def authenticate(db: Session, *, email: str, password: str) -> User:
    user = get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        raise ApiError(status_code=401, code="INVALID_CREDENTIALS", message="Invalid email or password")
    if not user.is_active:
        raise ApiError(status_code=403, code="ACCOUNT_INACTIVE", message="Account is inactive")

    now = normalize_ts(None)
    user.last_login_at = now
    user.last_seen_at = now
    db.commit()
    db.refresh(user)
    return user


def update_profile(db: Session, *, user: User, payload: ProfileUpdateRequest) -> User:
    if payload.name is not None:
        user.name = payload.name.strip()
    if payload.email is not None:
        email = normalize_email(payload.email)
        if email != user.email:
            _ensure_email_free(db, email, exclude_id=user.id)
            user.email = email
    if payload.phone_number is not None:
        user.phone_number = payload.phone_number
    if payload.profile_image is not None:
        user.profile_image = payload.profile_image
    if payload.emergency_contact is not None:
        user.emergency_contact = payload.emergency_contact.model_dump(exclude_none=True)
    return _commit_account(db, user)


def change_password(db: Session, *, user: User, payload: PasswordChangeRequest) -> None:
    if not verify_password(payload.current_password, user.password_hash):
        raise ApiError(status_code=400, code="INVALID_CREDENTIALS", message="Current password is incorrect")
    user.password_hash = hash_password(payload.new_password)
    db.commit()


def list_employees(
    db: Session,
    *,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    role: UserRole | None = None,
    status: AccountStatus | None = None,
    department: str | None = None,
) -> tuple[list[User], int]:
    filters = []
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    if role is not None:
        filters.append(User.role == role)
    if status is not None:
        filters.append(User.status == status)
    if department:
        filters.append(User.department == department)

    total = db.scalar(select(func.count(User.id)).where(*filters)) or 0
    rows = list(
        db.scalars(
            select(User)
            .where(*filters)
            .order_by(User.created_at.desc(), User.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
    )
    return rows, int(total)


def get_employee_detail(
    db: Session,
    employee_id: int,
    *,
    now: datetime | None = None,
) -> tuple[EmployeeDetailRead, list[AttendanceDay]]:
    user = get_employee(db, employee_id)
    since_key = date_key_for(normalize_ts(now) - timedelta(days=ATTENDANCE_LOOKBACK_DAYS))
    total_days = db.scalar(
        select(func.count(AttendanceDay.id)).where(
            AttendanceDay.user_id == user.id,
            AttendanceDay.date_key >= since_key,
        )
    )
    recent = list(
        db.scalars(
            select(AttendanceDay)
            .where(AttendanceDay.user_id == user.id)
            .order_by(AttendanceDay.date_key.desc())
            .limit(RECENT_ATTENDANCE_LIMIT)
        ).all()
    )
    detail = EmployeeDetailRead(
        **to_user_read(user).model_dump(),
        total_attendance_days=int(total_days or 0),
        manager=UserSummary.model_validate(user.manager) if user.manager is not None else None,
        subordinates=[UserSummary.model_validate(item) for item in user.subordinates],
    )
    return detail, recent


def create_employee(db: Session, payload: EmployeeCreate) -> User:
    email = normalize_email(payload.email)
    _ensure_email_free(db, email)
    user = User(
        name=payload.name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        role=payload.role,
        status=AccountStatus.ACTIVE,
        department=(payload.department or "").strip() or "General",
        phone_number=payload.phone_number,
        manager_id=_resolve_manager(db, payload.manager_id),
        permissions=list(payload.permissions or []),
    )
    _apply_schedule(user, payload.work_schedule)
    db.add(user)
    return _commit_account(db, user)


def update_employee(db: Session, employee_id: int, payload: EmployeeUpdate) -> User:
    user = get_employee(db, employee_id)
    fields = payload.model_fields_set

    if payload.role is not None and user.role == UserRole.ADMIN and payload.role != UserRole.ADMIN:
        if _admin_count(db) <= 1:
            raise ApiError(status_code=400, code="LAST_ADMIN", message="Cannot change the role of the last admin user")

    if payload.name is not None:
        user.name = payload.name.strip()
    if payload.email is not None:
        email = normalize_email(payload.email)
        if email != user.email:
            _ensure_email_free(db, email, exclude_id=user.id)
            user.email = email
    if payload.role is not None:
        user.role = payload.role
    if payload.status is not None:
        user.status = payload.status
    if payload.department is not None:
        user.department = payload.department.strip()
    if payload.phone_number is not None:
        user.phone_number = payload.phone_number
    if "manager_id" in fields:
        user.manager_id = _resolve_manager(db, payload.manager_id, employee_id=user.id)
    if payload.permissions is not None:
        user.permissions = list(payload.permissions)
    _apply_schedule(user, payload.work_schedule)
    return _commit_account(db, user)


def delete_employee(db: Session, employee_id: int) -> None:
    user = get_employee(db, employee_id)
    if user.role == UserRole.ADMIN and _admin_count(db) <= 1:
        raise ApiError(status_code=400, code="LAST_ADMIN", message="Cannot delete the last admin user")

    # Loose references keep their rows; owned attendance goes with the account.
    db.execute(update(User).where(User.manager_id == user.id).values(manager_id=None))
    db.execute(update(Task).where(Task.assignee_id == user.id).values(assignee_id=None))
    db.execute(update(Task).where(Task.assigner_id == user.id).values(assigner_id=None))
    db.execute(update(TaskComment).where(TaskComment.author_id == user.id).values(author_id=None))
    db.execute(update(TaskAttachment).where(TaskAttachment.uploaded_by_id == user.id).values(uploaded_by_id=None))
    db.execute(
        update(AttendanceCorrection)
        .where(AttendanceCorrection.requested_by_id == user.id)
        .values(requested_by_id=None)
    )
    db.execute(
        update(AttendanceCorrection)
        .where(AttendanceCorrection.reviewed_by_id == user.id)
        .values(reviewed_by_id=None)
    )
    db.delete(user)
    db.commit()
