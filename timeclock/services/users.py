from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from timeclock.errors import ApiError, NotFoundError, ValidationFailure
from timeclock.models import Company, User, UserRole
from timeclock.schemas import RegisterRequest, UserCreate, UserUpdate
from timeclock.security import hash_password, verify_password
from timeclock.services.common import (
    Page,
    commit_or_fail,
    company_scope_user_ids,
    ensure_can_manage_user,
    get_or_404,
    paginate,
)
from timeclock.services.companies import ensure_company_capacity
from timeclock.services.hour_bank import HourBankSummary, calculate_hour_bank
from timeclock.settings import get_settings

logger = logging.getLogger("timeclock.users")


def normalize_email(value: str) -> str:
    return value.strip().lower()


def find_user_by_email(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(func.lower(User.email) == normalize_email(email)))


def _ensure_email_available(db: Session, email: str, *, exclude_id: int | None = None) -> None:
    stmt = select(User.id).where(func.lower(User.email) == normalize_email(email))
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    if db.scalar(stmt) is not None:
        raise ValidationFailure(
            "Email is already in use",
            errors={"email": ["Email is already in use"]},
        )


def _resolve_company(db: Session, company_id: int | None, *, require_active: bool) -> Company:
    if company_id is None:
        raise ValidationFailure(
            "company_id is required for non-master users",
            errors={"company_id": ["Required"]},
        )
    company = db.get(Company, company_id)
    if company is None:
        raise NotFoundError(f"Company with id {company_id} not found")
    if require_active and not company.active:
        raise ValidationFailure("Company is inactive", code="COMPANY_INACTIVE")
    return company


def authenticate(db: Session, email: str, password: str) -> User | None:
    user = find_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


def list_users(
    db: Session,
    actor: User,
    *,
    company_id: int | None = None,
    role: UserRole | None = None,
    active: bool | None = None,
    page: int = 1,
    per_page: int = 15,
) -> Page[User]:
    stmt = select(User)
    scope = company_scope_user_ids(actor)
    if scope is not None:
        stmt = stmt.where(User.company_id == actor.company_id)
    elif company_id is not None:
        stmt = stmt.where(User.company_id == company_id)
    if role is not None:
        stmt = stmt.where(User.role == role)
    if active is not None:
        stmt = stmt.where(User.active.is_(active))
    stmt = stmt.order_by(User.name.asc(), User.id.asc())
    return paginate(db, stmt, page=page, per_page=per_page)


def get_user(db: Session, actor: User, user_id: int) -> User:
    user = get_or_404(db, User, user_id, label="User")
    if user.id != actor.id:
        ensure_can_manage_user(actor, user)
    return user


def _build_user(
    *,
    company_id: int | None,
    name: str,
    email: str,
    password: str,
    role: UserRole,
    hire_date: date | None,
    daily_work_hours: int | None,
    lunch_duration: int | None,
    active: bool,
) -> User:
    settings = get_settings()
    return User(
        company_id=company_id,
        name=name.strip(),
        email=normalize_email(email),
        password_hash=hash_password(password),
        role=role,
        hire_date=hire_date,
        daily_work_hours=daily_work_hours if daily_work_hours is not None else settings.default_daily_work_hours,
        lunch_duration=lunch_duration if lunch_duration is not None else settings.default_lunch_duration,
        active=active,
    )


def _save_new_user(db: Session, user: User) -> User:
    db.add(user)
    try:
        commit_or_fail(db, message="Could not create the user")
    except ApiError:
        logger.error(
            "user_create_failed",
            extra={"user": {"name": user.name, "email": user.email, "company_id": user.company_id}},
        )
        raise
    db.refresh(user)
    logger.info(
        "user_created",
        extra={"user_id": user.id, "company_id": user.company_id, "role": user.role.value},
    )
    return user


def create_user(db: Session, actor: User, payload: UserCreate) -> User:
    if actor.is_master:
        company_id = payload.company_id
    else:
        if payload.role == UserRole.MASTER:
            raise ApiError(status_code=403, code="FORBIDDEN", message="Only masters can create master users.")
        company_id = actor.company_id

    if payload.role == UserRole.MASTER:
        company_id = None
    else:
        company = _resolve_company(db, company_id, require_active=False)
        ensure_company_capacity(db, company)

    _ensure_email_available(db, payload.email)
    user = _build_user(
        company_id=company_id,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        role=payload.role,
        hire_date=payload.hire_date,
        daily_work_hours=payload.daily_work_hours,
        lunch_duration=payload.lunch_duration,
        active=payload.active,
    )
    return _save_new_user(db, user)


def register_user(db: Session, payload: RegisterRequest) -> User:
    company = _resolve_company(db, payload.company_id, require_active=True)
    ensure_company_capacity(db, company)
    _ensure_email_available(db, payload.email)
    user = _build_user(
        company_id=company.id,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        role=UserRole.USER,
        hire_date=payload.hire_date,
        daily_work_hours=None,
        lunch_duration=None,
        active=True,
    )
    return _save_new_user(db, user)


def update_user(db: Session, actor: User, user_id: int, payload: UserUpdate) -> User:
    user = get_or_404(db, User, user_id, label="User")
    ensure_can_manage_user(actor, user)
    data = {key: value for key, value in payload.model_dump(exclude_unset=True).items() if value is not None}

    if "role" in data and not actor.is_master:
        if data["role"] == UserRole.MASTER or user.role == UserRole.MASTER:
            raise ApiError(status_code=403, code="FORBIDDEN", message="Only masters can manage master users.")
    if "company_id" in data and not actor.is_master and data["company_id"] != actor.company_id:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Only masters can move users between companies.")

    # Masters carry no company; every other role must belong to one.
    if data.get("role", user.role) == UserRole.MASTER:
        data["company_id"] = None
    elif user.role == UserRole.MASTER or "company_id" in data:
        company = _resolve_company(db, data.get("company_id", user.company_id), require_active=False)
        if company.id != user.company_id:
            ensure_company_capacity(db, company)
        data["company_id"] = company.id

    if "email" in data:
        _ensure_email_available(db, data["email"], exclude_id=user.id)
        data["email"] = normalize_email(data["email"])
    if "password" in data:
        user.password_hash = hash_password(data.pop("password"))

    for key, value in data.items():
        setattr(user, key, value)

    try:
        commit_or_fail(db, message="Could not update the user")
    except ApiError:
        logger.error("user_update_failed", extra={"user_id": user_id, "fields": sorted(data)})
        raise
    db.refresh(user)
    return user


def delete_user(db: Session, actor: User, user_id: int) -> None:
    user = get_or_404(db, User, user_id, label="User")
    if user.id == actor.id:
        raise ValidationFailure("You cannot delete your own account", code="SELF_DELETE_FORBIDDEN")
    ensure_can_manage_user(actor, user)
    db.delete(user)
    db.commit()
    logger.info("user_deleted", extra={"user_id": user_id, "actor_id": actor.id})


def get_user_hour_bank(
    db: Session,
    actor: User,
    user_id: int,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
) -> HourBankSummary:
    user = get_user(db, actor, user_id)
    return calculate_hour_bank(db, user_id=user.id, start_date=start_date, end_date=end_date)
