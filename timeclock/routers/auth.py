from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from timeclock.audit import client_ip, log_audit, user_agent
from timeclock.db import get_db
from timeclock.errors import ApiError
from timeclock.models import AuditActorType, User
from timeclock.schemas import LoginRequest, MessageResponse, RegisterRequest, TokenResponse, UserRead
from timeclock.security import (
    create_access_token,
    ensure_login_attempt_allowed,
    register_login_failure,
    register_login_success,
    require_user,
)
from timeclock.services.users import authenticate, register_user

router = APIRouter(tags=["auth"])


@router.post("/api/auth/login", response_model=TokenResponse)
def login(
    payload: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> TokenResponse:
    ip = client_ip(request)
    agent = user_agent(request)
    request_id = getattr(request.state, "request_id", None)
    email = payload.email.strip().lower()

    if ip:
        try:
            ensure_login_attempt_allowed(ip)
        except ApiError:
            log_audit(
                db,
                actor_type=AuditActorType.SYSTEM,
                actor_id=email,
                action="LOGIN_FAIL",
                success=False,
                ip=ip,
                user_agent=agent,
                details={"reason": "TOO_MANY_ATTEMPTS"},
                request_id=request_id,
            )
            raise

    user = authenticate(db, email, payload.password)
    if user is None:
        if ip:
            register_login_failure(ip)
        log_audit(
            db,
            actor_type=AuditActorType.SYSTEM,
            actor_id=email,
            action="LOGIN_FAIL",
            success=False,
            ip=ip,
            user_agent=agent,
            details={"reason": "INVALID_CREDENTIALS"},
            request_id=request_id,
        )
        raise ApiError(status_code=401, code="INVALID_CREDENTIALS", message="Invalid credentials.")

    if not user.active:
        log_audit(
            db,
            actor_type=AuditActorType.SYSTEM,
            actor_id=str(user.id),
            action="LOGIN_FAIL",
            success=False,
            ip=ip,
            user_agent=agent,
            details={"reason": "USER_INACTIVE"},
            request_id=request_id,
        )
        raise ApiError(status_code=403, code="USER_INACTIVE", message="User account is inactive.")

    if ip:
        register_login_success(ip)

    access_token, expires_in, claims = create_access_token(user)
    request.state.actor = user.role.value
    request.state.actor_id = str(user.id)
    log_audit(
        db,
        actor_type=AuditActorType.USER,
        actor_id=str(user.id),
        action="LOGIN_SUCCESS",
        success=True,
        ip=ip,
        user_agent=agent,
        details={"jti": claims["jti"]},
        request_id=request_id,
    )
    return TokenResponse(access_token=access_token, expires_in=expires_in)


@router.post("/api/auth/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    user = register_user(db, payload)
    log_audit(
        db,
        actor_type=AuditActorType.USER,
        actor_id=str(user.id),
        action="USER_REGISTERED",
        success=True,
        entity_type="user",
        entity_id=str(user.id),
        ip=client_ip(request),
        user_agent=user_agent(request),
        details={"company_id": user.company_id},
        request_id=getattr(request.state, "request_id", None),
    )
    return user


@router.get("/api/auth/me", response_model=UserRead)
def me(user: User = Depends(require_user)) -> User:
    return user


@router.post("/api/auth/logout", response_model=MessageResponse)
def logout(
    request: Request,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    log_audit(
        db,
        actor_type=AuditActorType.USER,
        actor_id=str(user.id),
        action="LOGOUT",
        success=True,
        ip=client_ip(request),
        user_agent=user_agent(request),
        request_id=getattr(request.state, "request_id", None),
    )
    return MessageResponse(message="Logged out successfully")
