from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from timeclock.errors import ValidationFailure
from timeclock.models import Company, User
from timeclock.schemas import CompanyCreate, CompanyUpdate
from timeclock.services.common import Page, commit_or_fail, get_or_404, paginate
from timeclock.settings import get_settings

logger = logging.getLogger("timeclock.companies")


def _ensure_unique(db: Session, *, cnpj: str | None, email: str | None, exclude_id: int | None = None) -> None:
    errors: dict[str, list[str]] = {}
    if cnpj is not None:
        stmt = select(Company.id).where(Company.cnpj == cnpj)
        if exclude_id is not None:
            stmt = stmt.where(Company.id != exclude_id)
        if db.scalar(stmt) is not None:
            errors["cnpj"] = ["CNPJ is already registered"]
    if email is not None:
        stmt = select(Company.id).where(func.lower(Company.email) == email.lower())
        if exclude_id is not None:
            stmt = stmt.where(Company.id != exclude_id)
        if db.scalar(stmt) is not None:
            errors["email"] = ["Email is already used by another company"]
    if errors:
        raise ValidationFailure("Company data conflicts with an existing company", errors=errors)


def count_company_users(db: Session, company_id: int) -> int:
    return int(db.scalar(select(func.count(User.id)).where(User.company_id == company_id)) or 0)


def ensure_company_capacity(db: Session, company: Company) -> None:
    current = count_company_users(db, company.id)
    if current >= company.max_users:
        logger.warning(
            "user_limit_exceeded",
            extra={"company_id": company.id, "max_users": company.max_users, "current_users": current},
        )
        raise ValidationFailure(
            f"User limit reached for this company ({company.max_users})",
            code="USER_LIMIT_EXCEEDED",
        )


def list_companies(
    db: Session,
    *,
    active: bool | None = None,
    page: int = 1,
    per_page: int = 15,
) -> Page[Company]:
    stmt = select(Company)
    if active is not None:
        stmt = stmt.where(Company.active.is_(active))
    stmt = stmt.order_by(Company.name.asc(), Company.id.asc())
    return paginate(db, stmt, page=page, per_page=per_page)


def get_company(db: Session, company_id: int) -> Company:
    return get_or_404(db, Company, company_id, label="Company")


def create_company(db: Session, payload: CompanyCreate) -> Company:
    _ensure_unique(db, cnpj=payload.cnpj, email=payload.email)
    data = payload.model_dump()
    if data.get("max_users") is None:
        data["max_users"] = get_settings().default_company_max_users

    company = Company(**data)
    db.add(company)
    commit_or_fail(db, message="Could not create the company")
    db.refresh(company)
    logger.info("company_created", extra={"company_id": company.id, "cnpj": company.cnpj})
    return company


def update_company(db: Session, company_id: int, payload: CompanyUpdate) -> Company:
    company = get_company(db, company_id)
    data = {key: value for key, value in payload.model_dump(exclude_unset=True).items() if value is not None}
    _ensure_unique(db, cnpj=data.get("cnpj"), email=data.get("email"), exclude_id=company.id)

    for key, value in data.items():
        setattr(company, key, value)

    commit_or_fail(db, message="Could not update the company")
    db.refresh(company)
    return company


def delete_company(db: Session, company_id: int) -> None:
    company = get_company(db, company_id)
    if count_company_users(db, company.id) > 0:
        raise ValidationFailure(
            "Cannot delete a company that still has users",
            code="COMPANY_HAS_USERS",
        )
    db.delete(company)
    db.commit()
    logger.info("company_deleted", extra={"company_id": company_id})
