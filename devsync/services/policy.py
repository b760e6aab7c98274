"""Role and ownership rules for every guarded operation.

Each operation maps to the roles that may always perform it and to the
relations that let any other actor perform it on a particular resource
(for example the assignee of a task). Routers and services call
``authorize`` instead of comparing roles inline.
"""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Depends

from devsync.errors import ApiError
from devsync.models import Task, User, UserRole
from devsync.security import get_current_user


class Operation(str, enum.Enum):
    EMPLOYEE_LIST = "employee:list"
    EMPLOYEE_READ = "employee:read"
    EMPLOYEE_CREATE = "employee:create"
    EMPLOYEE_UPDATE = "employee:update"
    EMPLOYEE_DELETE = "employee:delete"
    TASK_CREATE = "task:create"
    TASK_READ = "task:read"
    TASK_LIST_ALL = "task:list-all"
    TASK_UPDATE = "task:update"
    TASK_UPDATE_ALL_FIELDS = "task:update-all-fields"
    TASK_COMMENT = "task:comment"
    TASK_TRACK_TIME = "task:track-time"
    TASK_ATTACH = "task:attach"
    TASK_DELETE = "task:delete"
    TASK_STATS = "task:stats"
    REPORT_READ = "report:read"
    CORRECTION_REVIEW = "correction:review"


class Relation(str, enum.Enum):
    ASSIGNEE = "assignee"
    ASSIGNER = "assigner"


@dataclass(frozen=True)
class Rule:
    roles: frozenset[UserRole]
    relations: frozenset[Relation] = frozenset()


_STAFF = frozenset({UserRole.ADMIN, UserRole.HR})
_ADMIN_ONLY = frozenset({UserRole.ADMIN})

RULES: dict[Operation, Rule] = {
    Operation.EMPLOYEE_LIST: Rule(_STAFF),
    Operation.EMPLOYEE_READ: Rule(_STAFF),
    Operation.EMPLOYEE_CREATE: Rule(_STAFF),
    Operation.EMPLOYEE_UPDATE: Rule(_STAFF),
    Operation.EMPLOYEE_DELETE: Rule(_ADMIN_ONLY),
    Operation.TASK_CREATE: Rule(_STAFF),
    Operation.TASK_READ: Rule(_STAFF, frozenset({Relation.ASSIGNEE, Relation.ASSIGNER})),
    Operation.TASK_LIST_ALL: Rule(_STAFF),
    Operation.TASK_UPDATE: Rule(_STAFF, frozenset({Relation.ASSIGNEE})),
    Operation.TASK_UPDATE_ALL_FIELDS: Rule(_STAFF),
    Operation.TASK_COMMENT: Rule(_STAFF, frozenset({Relation.ASSIGNEE, Relation.ASSIGNER})),
    Operation.TASK_TRACK_TIME: Rule(frozenset(), frozenset({Relation.ASSIGNEE})),
    Operation.TASK_ATTACH: Rule(_STAFF, frozenset({Relation.ASSIGNEE})),
    Operation.TASK_DELETE: Rule(_ADMIN_ONLY),
    Operation.TASK_STATS: Rule(_STAFF),
    Operation.REPORT_READ: Rule(_STAFF),
    Operation.CORRECTION_REVIEW: Rule(_STAFF),
}

DENIED_MESSAGES: dict[Operation, str] = {
    Operation.TASK_TRACK_TIME: "You can only track time for your own tasks",
}


def _relations(actor: User, resource: object | None) -> set[Relation]:
    held: set[Relation] = set()
    if isinstance(resource, Task):
        if resource.assignee_id == actor.id:
            held.add(Relation.ASSIGNEE)
        if resource.assigner_id is not None and resource.assigner_id == actor.id:
            held.add(Relation.ASSIGNER)
    return held


def can(actor: User, operation: Operation, resource: object | None = None) -> bool:
    rule = RULES[operation]
    if actor.role in rule.roles:
        return True
    if not rule.relations:
        return False
    return bool(rule.relations & _relations(actor, resource))


def authorize(actor: User, operation: Operation, resource: object | None = None) -> None:
    if not can(actor, operation, resource):
        raise ApiError(
            status_code=403,
            code="ACCESS_DENIED",
            message=DENIED_MESSAGES.get(operation, "Access denied"),
        )


def require(operation: Operation) -> Callable[..., User]:
    """Route dependency for operations that do not depend on a resource."""
    if RULES[operation].relations:
        raise ValueError(f"{operation.value} needs a resource, call authorize() instead")

    def _dependency(actor: User = Depends(get_current_user)) -> User:
        authorize(actor, operation)
        return actor

    return _dependency
