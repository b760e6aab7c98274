from __future__ import annotations

import threading
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from passlib.exc import UnknownHashError
from sqlalchemy.orm import Session

from devsync.db import get_db
from devsync.errors import ApiError
from devsync.models import User
from devsync.settings import get_settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)


class LoginThrottle:
    """Sliding-window counter of failed logins per client IP, kept in process memory."""

    def __init__(self, *, max_attempts: int, window: timedelta):
        self.max_attempts = max_attempts
        self.window = window
        self._failures: dict[str, deque[datetime]] = {}
        self._lock = threading.Lock()

    def _recent(self, ip: str, now: datetime) -> deque[datetime]:
        failures = self._failures.get(ip)
        if failures is None:
            return deque()
        cutoff = now - self.window
        while failures and failures[0] < cutoff:
            failures.popleft()
        if not failures:
            del self._failures[ip]
        return failures

    def is_blocked(self, ip: str, now: datetime) -> bool:
        with self._lock:
            return len(self._recent(ip, now)) >= self.max_attempts

    def record_failure(self, ip: str, now: datetime) -> None:
        with self._lock:
            self._recent(ip, now)
            self._failures.setdefault(ip, deque()).append(now)

    def reset(self, ip: str | None = None) -> None:
        with self._lock:
            if ip is None:
                self._failures.clear()
            else:
                self._failures.pop(ip, None)


login_throttle = LoginThrottle(
    max_attempts=get_settings().login_max_attempts,
    window=timedelta(minutes=get_settings().login_window_minutes),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_login_attempt_allowed(ip: str) -> None:
    if login_throttle.is_blocked(ip, _utcnow()):
        raise ApiError(
            status_code=429,
            code="TOO_MANY_ATTEMPTS",
            message="Too many failed login attempts. Please try again later.",
        )


def register_login_failure(ip: str) -> None:
    login_throttle.record_failure(ip, _utcnow())


def register_login_success(ip: str) -> None:
    login_throttle.reset(ip)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError, UnknownHashError):
        return False


def create_access_token(user: User) -> tuple[str, int]:
    settings = get_settings()
    now = _utcnow()
    expires_in = settings.access_token_minutes * 60
    claims: dict[str, Any] = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role.value,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
        "jti": str(uuid4()),
    }
    token = jwt.encode(claims, settings.jwt_secret, algorithm="HS256")
    return token, expires_in


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_iat": True, "require_exp": True},
        )
    except JWTError as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Session is invalid or expired.") from exc

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject.isdigit():
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Session is invalid or expired.")
    return payload


def set_session_cookie(response: Response, token: str, *, max_age: int) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=max_age,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )


def clear_session_cookie(response: Response) -> None:
    settings = get_settings()
    response.delete_cookie(key=settings.session_cookie_name, path="/")


def _extract_token(request: Request, credentials: HTTPAuthorizationCredentials | None) -> str | None:
    if credentials is not None and credentials.scheme.lower() == "bearer" and credentials.credentials:
        return credentials.credentials
    cookie_value = request.cookies.get(get_settings().session_cookie_name)
    if cookie_value:
        return cookie_value
    return None


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    token = _extract_token(request, credentials)
    if token is None:
        raise ApiError(status_code=401, code="NOT_AUTHENTICATED", message="Not authenticated, please log in.")

    payload = decode_token(token)
    user = db.get(User, int(payload["sub"]))
    if user is None:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Session is invalid or expired.")
    if not user.is_active:
        raise ApiError(status_code=403, code="ACCOUNT_INACTIVE", message="Account is inactive.")

    request.state.actor = user.role.value
    request.state.actor_id = str(user.id)
    return user
