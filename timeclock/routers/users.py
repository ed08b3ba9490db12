from datetime import date

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from timeclock.audit import audit_user_action
from timeclock.db import get_db
from timeclock.models import User, UserRole
from timeclock.routers.common import page_response
from timeclock.schemas import HourBankRead, PageRead, UserCreate, UserRead, UserUpdate
from timeclock.security import require_admin
from timeclock.services.users import (
    create_user,
    delete_user,
    get_user,
    get_user_hour_bank,
    list_users,
    update_user,
)

router = APIRouter(tags=["users"])


@router.get("/api/users", response_model=PageRead[UserRead])
def list_users_endpoint(
    company_id: int | None = Query(default=None, ge=1),
    role: UserRole | None = Query(default=None),
    active: bool | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=15, ge=1, le=100),
    actor: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> PageRead[UserRead]:
    result = list_users(
        db,
        actor,
        company_id=company_id,
        role=role,
        active=active,
        page=page,
        per_page=per_page,
    )
    return page_response(result, UserRead)


@router.post("/api/users", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user_endpoint(
    payload: UserCreate,
    request: Request,
    actor: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> User:
    user = create_user(db, actor, payload)
    audit_user_action(
        db,
        request,
        actor,
        action="USER_CREATED",
        entity_type="user",
        entity_id=user.id,
        details={"company_id": user.company_id, "role": user.role.value},
    )
    return user


@router.get("/api/users/{user_id}", response_model=UserRead)
def get_user_endpoint(
    user_id: int,
    actor: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> User:
    return get_user(db, actor, user_id)


@router.api_route("/api/users/{user_id}", methods=["PUT", "PATCH"], response_model=UserRead)
def update_user_endpoint(
    user_id: int,
    payload: UserUpdate,
    request: Request,
    actor: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> User:
    user = update_user(db, actor, user_id, payload)
    audit_user_action(
        db,
        request,
        actor,
        action="USER_UPDATED",
        entity_type="user",
        entity_id=user.id,
        details={"fields": sorted(payload.model_dump(exclude_unset=True))},
    )
    return user


@router.delete("/api/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user_endpoint(
    user_id: int,
    request: Request,
    actor: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> None:
    delete_user(db, actor, user_id)
    audit_user_action(db, request, actor, action="USER_DELETED", entity_type="user", entity_id=user_id)


@router.get("/api/users/{user_id}/hour-bank", response_model=HourBankRead)
def user_hour_bank_endpoint(
    user_id: int,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    actor: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> HourBankRead:
    summary = get_user_hour_bank(db, actor, user_id, start_date=start_date, end_date=end_date)
    return HourBankRead(**summary.to_dict())
