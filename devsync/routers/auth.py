from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from devsync.audit import client_ip, log_audit
from devsync.db import get_db
from devsync.errors import ApiError
from devsync.models import User
from devsync.schemas import (
    AuthResponse,
    LoginRequest,
    MeResponse,
    MessageResponse,
    PasswordChangeRequest,
    ProfileUpdateRequest,
    SignupRequest,
)
from devsync.security import (
    clear_session_cookie,
    create_access_token,
    ensure_login_attempt_allowed,
    get_current_user,
    register_login_failure,
    register_login_success,
    set_session_cookie,
)
from devsync.services.employees import (
    authenticate,
    change_password,
    signup,
    to_user_read,
    update_profile,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _issue_session(response: Response, user: User, *, message: str) -> AuthResponse:
    token, expires_in = create_access_token(user)
    set_session_cookie(response, token, max_age=expires_in)
    return AuthResponse(
        message=message,
        user=to_user_read(user),
        access_token=token,
        expires_in=expires_in,
    )


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def signup_account(
    payload: SignupRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> AuthResponse:
    user = signup(db, payload)
    log_audit(request, actor=user, action="ACCOUNT_SIGNUP", entity_type="user", entity_id=user.id)
    return _issue_session(response, user, message="Account created successfully")


@router.post("/login", response_model=AuthResponse)
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> AuthResponse:
    ip = client_ip(request)
    if ip:
        ensure_login_attempt_allowed(ip)

    try:
        user = authenticate(db, email=payload.email, password=payload.password)
    except ApiError as exc:
        if ip and exc.code == "INVALID_CREDENTIALS":
            register_login_failure(ip)
        log_audit(
            request,
            actor=None,
            action="LOGIN_FAIL",
            success=False,
            details={"email": payload.email.lower(), "reason": exc.code},
        )
        raise

    if ip:
        register_login_success(ip)
    log_audit(request, actor=user, action="LOGIN_SUCCESS", entity_type="user", entity_id=user.id)
    return _issue_session(response, user, message="Login successful")


@router.post("/logout", response_model=MessageResponse)
def logout(response: Response) -> MessageResponse:
    clear_session_cookie(response)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=MeResponse)
def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    return MeResponse(user=to_user_read(current_user))


@router.put("/profile", response_model=MeResponse)
def update_own_profile(
    payload: ProfileUpdateRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MeResponse:
    user = update_profile(db, user=current_user, payload=payload)
    log_audit(
        request,
        actor=user,
        action="PROFILE_UPDATED",
        entity_type="user",
        entity_id=user.id,
        details={"fields": sorted(payload.model_fields_set)},
    )
    return MeResponse(user=to_user_read(user))


@router.put("/password", response_model=MessageResponse)
def update_own_password(
    payload: PasswordChangeRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    change_password(db, user=current_user, payload=payload)
    log_audit(request, actor=current_user, action="PASSWORD_CHANGED", entity_type="user", entity_id=current_user.id)
    return MessageResponse(message="Password updated successfully")
