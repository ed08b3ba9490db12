from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from timeclock.errors import ApiError, NotFoundError, PersistenceFailure
from timeclock.models import User
from timeclock.settings import get_settings

logger = logging.getLogger("timeclock.services")

ModelT = TypeVar("ModelT")

DEFAULT_PER_PAGE = 15
MAX_PER_PAGE = 100


@dataclass(frozen=True)
class Page(Generic[ModelT]):
    items: list[ModelT]
    total: int
    page: int
    per_page: int


def get_or_404(db: Session, model: type[ModelT], pk: int, *, label: str) -> ModelT:
    instance = db.get(model, pk)
    if instance is None:
        raise NotFoundError(f"{label} with id {pk} not found")
    return instance


def paginate(db: Session, stmt: Select[Any], *, page: int = 1, per_page: int = DEFAULT_PER_PAGE) -> Page[Any]:
    safe_page = max(1, page)
    safe_per_page = min(MAX_PER_PAGE, max(1, per_page))
    total = db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    items = list(db.scalars(stmt.limit(safe_per_page).offset((safe_page - 1) * safe_per_page)).all())
    return Page(items=items, total=int(total), page=safe_page, per_page=safe_per_page)


def commit_or_fail(db: Session, *, message: str = "The record conflicts with existing data") -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        detail = str(exc.orig) if exc.orig is not None else str(exc)
        logger.warning("integrity_error", extra={"detail": detail})
        if get_settings().debug:
            raise PersistenceFailure(f"{message}: {detail}", detail=detail) from exc
        raise PersistenceFailure(message, detail=detail) from exc


def ensure_can_manage_user(actor: User, target: User) -> None:
    """Admins act inside their own company; masters act anywhere."""
    if actor.is_master:
        return
    if actor.is_admin and actor.company_id is not None and actor.company_id == target.company_id:
        return
    raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")


def ensure_owner_or_manager(actor: User, owner: User) -> None:
    if actor.id == owner.id:
        return
    ensure_can_manage_user(actor, owner)


def company_scope_user_ids(actor: User) -> Select[Any] | None:
    """Subquery of user ids visible to an admin, or None when unrestricted."""
    if actor.is_master:
        return None
    return select(User.id).where(User.company_id == actor.company_id)
