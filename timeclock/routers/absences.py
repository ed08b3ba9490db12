from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from timeclock.audit import audit_user_action
from timeclock.db import get_db
from timeclock.models import Absence, ReviewStatus, User
from timeclock.routers.common import page_response
from timeclock.schemas import AbsenceCreate, AbsenceRead, AbsenceStatusUpdate, AbsenceUpdate, PageRead
from timeclock.security import require_admin, require_user
from timeclock.services.absences import (
    approve_absence,
    create_absence,
    delete_absence,
    get_absence,
    list_absences,
    list_pending_absences,
    list_user_absences,
    reject_absence,
    set_absence_status,
    update_absence,
)

router = APIRouter(tags=["absences"])


def _audit_review(db: Session, request: Request, actor: User, absence: Absence) -> None:
    audit_user_action(
        db,
        request,
        actor,
        action=f"ABSENCE_{absence.status.value.upper()}",
        entity_type="absence",
        entity_id=absence.id,
        details={"user_id": absence.user_id},
    )


@router.get("/api/absences", response_model=PageRead[AbsenceRead])
def list_my_absences_endpoint(
    status_filter: ReviewStatus | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=15, ge=1, le=100),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> PageRead[AbsenceRead]:
    result = list_user_absences(db, user_id=user.id, status=status_filter, page=page, per_page=per_page)
    return page_response(result, AbsenceRead)


@router.post("/api/absences", response_model=AbsenceRead, status_code=status.HTTP_201_CREATED)
def create_absence_endpoint(
    payload: AbsenceCreate,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> Absence:
    return create_absence(db, user, payload)


@router.get("/api/absences/{absence_id}", response_model=AbsenceRead)
def get_absence_endpoint(
    absence_id: int,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> Absence:
    return get_absence(db, user, absence_id)


@router.patch("/api/absences/{absence_id}", response_model=AbsenceRead)
def update_absence_endpoint(
    absence_id: int,
    payload: AbsenceUpdate,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> Absence:
    return update_absence(db, user, absence_id, payload)


@router.get("/api/admin/absences", response_model=PageRead[AbsenceRead])
def list_absences_endpoint(
    status_filter: ReviewStatus | None = Query(default=None, alias="status"),
    user_id: int | None = Query(default=None, ge=1),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=15, ge=1, le=100),
    actor: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> PageRead[AbsenceRead]:
    result = list_absences(db, actor, status=status_filter, user_id=user_id, page=page, per_page=per_page)
    return page_response(result, AbsenceRead)


@router.get("/api/admin/absences/pending", response_model=PageRead[AbsenceRead])
def list_pending_absences_endpoint(
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=15, ge=1, le=100),
    actor: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> PageRead[AbsenceRead]:
    return page_response(list_pending_absences(db, actor, page=page, per_page=per_page), AbsenceRead)


@router.patch("/api/admin/absences/{absence_id}/status", response_model=AbsenceRead)
def update_absence_status_endpoint(
    absence_id: int,
    payload: AbsenceStatusUpdate,
    request: Request,
    actor: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Absence:
    absence = set_absence_status(db, absence_id, actor, payload.status)
    _audit_review(db, request, actor, absence)
    return absence


@router.patch("/api/admin/absences/{absence_id}/approve", response_model=AbsenceRead)
def approve_absence_endpoint(
    absence_id: int,
    request: Request,
    actor: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Absence:
    absence = approve_absence(db, absence_id, actor)
    _audit_review(db, request, actor, absence)
    return absence


@router.patch("/api/admin/absences/{absence_id}/reject", response_model=AbsenceRead)
def reject_absence_endpoint(
    absence_id: int,
    request: Request,
    actor: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Absence:
    absence = reject_absence(db, absence_id, actor)
    _audit_review(db, request, actor, absence)
    return absence


@router.delete("/api/admin/absences/{absence_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_absence_endpoint(
    absence_id: int,
    request: Request,
    actor: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> None:
    delete_absence(db, actor, absence_id)
    audit_user_action(db, request, actor, action="ABSENCE_DELETED", entity_type="absence", entity_id=absence_id)
