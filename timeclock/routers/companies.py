from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from timeclock.audit import audit_user_action
from timeclock.db import get_db
from timeclock.models import Company, User
from timeclock.routers.common import page_response
from timeclock.schemas import CompanyCreate, CompanyRead, CompanyUpdate, PageRead
from timeclock.security import require_master
from timeclock.services.companies import (
    create_company,
    delete_company,
    get_company,
    list_companies,
    update_company,
)

router = APIRouter(tags=["companies"])


@router.get("/api/companies", response_model=PageRead[CompanyRead])
def list_companies_endpoint(
    active: bool | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=15, ge=1, le=100),
    _: User = Depends(require_master),
    db: Session = Depends(get_db),
) -> PageRead[CompanyRead]:
    return page_response(list_companies(db, active=active, page=page, per_page=per_page), CompanyRead)


@router.post("/api/companies", response_model=CompanyRead, status_code=status.HTTP_201_CREATED)
def create_company_endpoint(
    payload: CompanyCreate,
    request: Request,
    actor: User = Depends(require_master),
    db: Session = Depends(get_db),
) -> Company:
    company = create_company(db, payload)
    audit_user_action(
        db,
        request,
        actor,
        action="COMPANY_CREATED",
        entity_type="company",
        entity_id=company.id,
        details={"cnpj": company.cnpj},
    )
    return company


@router.get("/api/companies/{company_id}", response_model=CompanyRead)
def get_company_endpoint(
    company_id: int,
    _: User = Depends(require_master),
    db: Session = Depends(get_db),
) -> Company:
    return get_company(db, company_id)


@router.api_route("/api/companies/{company_id}", methods=["PUT", "PATCH"], response_model=CompanyRead)
def update_company_endpoint(
    company_id: int,
    payload: CompanyUpdate,
    request: Request,
    actor: User = Depends(require_master),
    db: Session = Depends(get_db),
) -> Company:
    company = update_company(db, company_id, payload)
    audit_user_action(
        db,
        request,
        actor,
        action="COMPANY_UPDATED",
        entity_type="company",
        entity_id=company.id,
        details={"fields": sorted(payload.model_dump(exclude_unset=True))},
    )
    return company


@router.delete("/api/companies/{company_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_company_endpoint(
    company_id: int,
    request: Request,
    actor: User = Depends(require_master),
    db: Session = Depends(get_db),
) -> None:
    delete_company(db, company_id)
    audit_user_action(db, request, actor, action="COMPANY_DELETED", entity_type="company", entity_id=company_id)
