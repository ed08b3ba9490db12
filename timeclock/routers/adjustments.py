from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from timeclock.audit import audit_user_action
from timeclock.db import get_db
from timeclock.models import ReviewStatus, TimeRecordAdjustment, User
from timeclock.routers.common import page_response
from timeclock.schemas import (
    AdjustmentCreate,
    AdjustmentRead,
    AdjustmentReviewRequest,
    AdjustmentUpdate,
    PageRead,
)
from timeclock.security import require_admin, require_user
from timeclock.services.adjustments import (
    approve_adjustment,
    create_adjustment,
    delete_adjustment,
    get_adjustment,
    list_adjustments,
    reject_adjustment,
    update_adjustment,
)

router = APIRouter(tags=["time-record-adjustments"])


@router.get("/api/time-record-adjustments", response_model=PageRead[AdjustmentRead])
def list_adjustments_endpoint(
    status_filter: ReviewStatus | None = Query(default=None, alias="status"),
    time_record_id: int | None = Query(default=None, ge=1),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=15, ge=1, le=100),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> PageRead[AdjustmentRead]:
    result = list_adjustments(
        db,
        user,
        status=status_filter,
        time_record_id=time_record_id,
        page=page,
        per_page=per_page,
    )
    return page_response(result, AdjustmentRead)


@router.post(
    "/api/time-record-adjustments",
    response_model=AdjustmentRead,
    status_code=status.HTTP_201_CREATED,
)
def create_adjustment_endpoint(
    payload: AdjustmentCreate,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> TimeRecordAdjustment:
    return create_adjustment(db, user, payload)


@router.get("/api/time-record-adjustments/{adjustment_id}", response_model=AdjustmentRead)
def get_adjustment_endpoint(
    adjustment_id: int,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> TimeRecordAdjustment:
    return get_adjustment(db, user, adjustment_id)


@router.api_route(
    "/api/time-record-adjustments/{adjustment_id}",
    methods=["PUT", "PATCH"],
    response_model=AdjustmentRead,
)
def update_adjustment_endpoint(
    adjustment_id: int,
    payload: AdjustmentUpdate,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> TimeRecordAdjustment:
    return update_adjustment(db, user, adjustment_id, payload)


@router.delete("/api/time-record-adjustments/{adjustment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_adjustment_endpoint(
    adjustment_id: int,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> None:
    delete_adjustment(db, user, adjustment_id)


@router.patch("/api/time-record-adjustments/{adjustment_id}/approve", response_model=AdjustmentRead)
def approve_adjustment_endpoint(
    adjustment_id: int,
    request: Request,
    payload: AdjustmentReviewRequest | None = None,
    actor: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> TimeRecordAdjustment:
    adjustment = approve_adjustment(db, adjustment_id, actor, payload.admin_notes if payload else None)
    audit_user_action(
        db,
        request,
        actor,
        action="ADJUSTMENT_APPROVED",
        entity_type="time_record_adjustment",
        entity_id=adjustment.id,
        details={
            "time_record_id": adjustment.time_record_id,
            "field": adjustment.field_to_change.value,
            "requested_value": adjustment.requested_value,
        },
    )
    return adjustment


@router.patch("/api/time-record-adjustments/{adjustment_id}/reject", response_model=AdjustmentRead)
def reject_adjustment_endpoint(
    adjustment_id: int,
    request: Request,
    payload: AdjustmentReviewRequest | None = None,
    actor: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> TimeRecordAdjustment:
    adjustment = reject_adjustment(db, adjustment_id, actor, payload.admin_notes if payload else None)
    audit_user_action(
        db,
        request,
        actor,
        action="ADJUSTMENT_REJECTED",
        entity_type="time_record_adjustment",
        entity_id=adjustment.id,
        details={"time_record_id": adjustment.time_record_id},
    )
    return adjustment
