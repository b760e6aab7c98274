from __future__ import annotations

import logging
from typing import Any

from fastapi import Request

from devsync.models import User

logger = logging.getLogger("devsync.audit")


def client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def log_audit(
    request: Request,
    *,
    actor: User | None,
    action: str,
    success: bool = True,
    entity_type: str | None = None,
    entity_id: int | str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    logger.info(
        "audit_event",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "action": action,
            "actor_id": actor.id if actor is not None else None,
            "actor_role": actor.role.value if actor is not None else None,
            "entity_type": entity_type,
            "entity_id": str(entity_id) if entity_id is not None else None,
            "ip": client_ip(request),
            "user_agent": request.headers.get("user-agent"),
            "success": success,
            "details": details or {},
        },
    )
