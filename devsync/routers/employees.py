from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from devsync.audit import log_audit
from devsync.db import get_db
from devsync.models import AccountStatus, User, UserRole
from devsync.schemas import (
    EmployeeCreate,
    EmployeeDetailResponse,
    EmployeeListResponse,
    EmployeeResponse,
    EmployeeUpdate,
    MessageResponse,
    Pagination,
)
from devsync.services.attendance import to_attendance_read
from devsync.services.employees import (
    create_employee,
    delete_employee,
    get_employee_detail,
    list_employees,
    to_user_read,
    update_employee,
)
from devsync.services.policy import Operation, require

router = APIRouter(prefix="/api/employees", tags=["employees"])


@router.get("", response_model=EmployeeListResponse)
def employees_list(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=200),
    search: str | None = Query(default=None, max_length=100),
    role: UserRole | None = Query(default=None),
    status_filter: AccountStatus | None = Query(default=None, alias="status"),
    department: str | None = Query(default=None, max_length=100),
    _actor: User = Depends(require(Operation.EMPLOYEE_LIST)),
    db: Session = Depends(get_db),
) -> EmployeeListResponse:
    rows, total = list_employees(
        db,
        page=page,
        limit=limit,
        search=search,
        role=role,
        status=status_filter,
        department=department,
    )
    return EmployeeListResponse(
        employees=[to_user_read(row) for row in rows],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


@router.get("/{employee_id}", response_model=EmployeeDetailResponse)
def employee_detail(
    employee_id: int,
    _actor: User = Depends(require(Operation.EMPLOYEE_READ)),
    db: Session = Depends(get_db),
) -> EmployeeDetailResponse:
    detail, recent = get_employee_detail(db, employee_id)
    return EmployeeDetailResponse(
        employee=detail,
        recent_attendance=[to_attendance_read(day) for day in recent],
    )


@router.post("", response_model=EmployeeResponse, status_code=status.HTTP_201_CREATED)
def employee_create(
    payload: EmployeeCreate,
    request: Request,
    actor: User = Depends(require(Operation.EMPLOYEE_CREATE)),
    db: Session = Depends(get_db),
) -> EmployeeResponse:
    user = create_employee(db, payload)
    log_audit(
        request,
        actor=actor,
        action="EMPLOYEE_CREATED",
        entity_type="user",
        entity_id=user.id,
        details={"email": user.email, "role": user.role.value, "department": user.department},
    )
    return EmployeeResponse(message="Employee created successfully", employee=to_user_read(user))


@router.put("/{employee_id}", response_model=EmployeeResponse)
def employee_update(
    employee_id: int,
    payload: EmployeeUpdate,
    request: Request,
    actor: User = Depends(require(Operation.EMPLOYEE_UPDATE)),
    db: Session = Depends(get_db),
) -> EmployeeResponse:
    user = update_employee(db, employee_id, payload)
    log_audit(
        request,
        actor=actor,
        action="EMPLOYEE_UPDATED",
        entity_type="user",
        entity_id=user.id,
        details={"fields": sorted(payload.model_fields_set)},
    )
    return EmployeeResponse(message="Employee updated successfully", employee=to_user_read(user))


@router.delete("/{employee_id}", response_model=MessageResponse)
def employee_delete(
    employee_id: int,
    request: Request,
    actor: User = Depends(require(Operation.EMPLOYEE_DELETE)),
    db: Session = Depends(get_db),
) -> MessageResponse:
    delete_employee(db, employee_id)
    log_audit(request, actor=actor, action="EMPLOYEE_DELETED", entity_type="user", entity_id=employee_id)
    return MessageResponse(message="Employee deleted successfully")
