from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from devsync.audit import log_audit
from devsync.db import get_db
from devsync.models import TaskCategory, TaskPriority, User
from devsync.schemas import (
    AttachmentCreate,
    AttachmentRead,
    AttachmentsResponse,
    CommentCreate,
    CommentRead,
    CommentsResponse,
    MessageResponse,
    Pagination,
    TaskCreate,
    TaskListResponse,
    TaskRead,
    TaskResponse,
    TaskStatsResponse,
    TaskUpdate,
    TimeEntryCreate,
    TimeEntryRead,
    TimeTrackingResponse,
)
from devsync.security import get_current_user
from devsync.services.policy import Operation, require
from devsync.services.tasks import (
    add_attachment,
    add_comment,
    add_time_entry,
    create_task,
    delete_task,
    get_task,
    list_tasks,
    task_stats,
    update_task,
)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.get("/stats/overview", response_model=TaskStatsResponse)
def stats_overview(
    user_id: int | None = Query(default=None, ge=1),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    _actor: User = Depends(require(Operation.TASK_STATS)),
    db: Session = Depends(get_db),
) -> TaskStatsResponse:
    stats, priority_stats, category_stats = task_stats(
        db,
        assignee_id=user_id,
        start_date=start_date,
        end_date=end_date,
    )
    return TaskStatsResponse(stats=stats, priority_stats=priority_stats, category_stats=category_stats)


@router.get("", response_model=TaskListResponse)
def tasks_list(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=200),
    status_filter: str | None = Query(default=None, alias="status", max_length=200),
    priority: TaskPriority | None = Query(default=None),
    category: TaskCategory | None = Query(default=None),
    search: str | None = Query(default=None, max_length=100),
    assigned_to: int | None = Query(default=None, ge=1),
    sort_by: str = Query(default="created_at", max_length=32),
    sort_order: str = Query(default="desc", max_length=4),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TaskListResponse:
    rows, total = list_tasks(
        db,
        actor=current_user,
        page=page,
        limit=limit,
        status=status_filter,
        priority=priority,
        category=category,
        search=search,
        assigned_to=assigned_to,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return TaskListResponse(
        tasks=[TaskRead.model_validate(row) for row in rows],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


@router.get("/{task_id}", response_model=TaskResponse)
def task_detail(
    task_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TaskResponse:
    task = get_task(db, actor=current_user, task_id=task_id)
    return TaskResponse(task=TaskRead.model_validate(task))


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def task_create(
    payload: TaskCreate,
    request: Request,
    actor: User = Depends(require(Operation.TASK_CREATE)),
    db: Session = Depends(get_db),
) -> TaskResponse:
    task = create_task(db, actor=actor, payload=payload)
    log_audit(
        request,
        actor=actor,
        action="TASK_CREATED",
        entity_type="task",
        entity_id=task.id,
        details={"assignee_id": task.assignee_id, "priority": task.priority.value},
    )
    return TaskResponse(message="Task created successfully", task=TaskRead.model_validate(task))


@router.put("/{task_id}", response_model=TaskResponse)
def task_update(
    task_id: int,
    payload: TaskUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TaskResponse:
    task = update_task(db, actor=current_user, task_id=task_id, payload=payload)
    log_audit(
        request,
        actor=current_user,
        action="TASK_UPDATED",
        entity_type="task",
        entity_id=task.id,
        details={"fields": sorted(payload.model_fields_set), "status": task.status.value},
    )
    return TaskResponse(message="Task updated successfully", task=TaskRead.model_validate(task))


@router.delete("/{task_id}", response_model=MessageResponse)
def task_delete(
    task_id: int,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    delete_task(db, actor=current_user, task_id=task_id)
    log_audit(request, actor=current_user, action="TASK_DELETED", entity_type="task", entity_id=task_id)
    return MessageResponse(message="Task deleted successfully")


@router.post("/{task_id}/comments", response_model=CommentsResponse)
def task_comment(
    task_id: int,
    payload: CommentCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CommentsResponse:
    task = add_comment(db, actor=current_user, task_id=task_id, body=payload.comment)
    log_audit(request, actor=current_user, action="TASK_COMMENTED", entity_type="task", entity_id=task.id)
    return CommentsResponse(
        message="Comment added successfully",
        comments=[CommentRead.model_validate(item) for item in task.comments],
    )


@router.post("/{task_id}/time-tracking", response_model=TimeTrackingResponse)
def task_time_tracking(
    task_id: int,
    payload: TimeEntryCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TimeTrackingResponse:
    task = add_time_entry(db, actor=current_user, task_id=task_id, payload=payload)
    log_audit(
        request,
        actor=current_user,
        action="TASK_TIME_TRACKED",
        entity_type="task",
        entity_id=task.id,
        details={"minutes": task.time_entries[-1].duration_minutes, "actual_hours": task.actual_hours},
    )
    return TimeTrackingResponse(
        message="Time tracking entry added successfully",
        time_entries=[TimeEntryRead.model_validate(item) for item in task.time_entries],
        actual_hours=task.actual_hours,
    )


@router.post("/{task_id}/attachments", response_model=AttachmentsResponse)
def task_attachment(
    task_id: int,
    payload: AttachmentCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AttachmentsResponse:
    task = add_attachment(db, actor=current_user, task_id=task_id, payload=payload)
    log_audit(
        request,
        actor=current_user,
        action="TASK_ATTACHMENT_ADDED",
        entity_type="task",
        entity_id=task.id,
        details={"file_name": payload.file_name},
    )
    return AttachmentsResponse(
        message="Attachment added successfully",
        attachments=[AttachmentRead.model_validate(item) for item in task.attachments],
    )
