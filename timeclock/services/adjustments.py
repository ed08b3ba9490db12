from __future__ import annotations

import logging
from datetime import date, datetime, time

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from timeclock.errors import ApiError, NotFoundError, ValidationFailure
from timeclock.models import AdjustableField, ReviewStatus, TimeRecord, TimeRecordAdjustment, User
from timeclock.schemas import AdjustmentCreate, AdjustmentUpdate
from timeclock.services.common import (
    Page,
    commit_or_fail,
    company_scope_user_ids,
    ensure_can_manage_user,
    ensure_owner_or_manager,
    get_or_404,
    paginate,
)
from timeclock.services.time_records import recompute_worked_minutes
from timeclock.timeutils import format_hhmm, parse_hhmm, parse_iso_date, utcnow

logger = logging.getLogger("timeclock.adjustments")

TIMING_FIELDS = frozenset(
    {
        AdjustableField.ENTRY_TIME,
        AdjustableField.EXIT_TIME,
        AdjustableField.LUNCH_START,
        AdjustableField.LUNCH_END,
    }
)


def coerce_requested_value(field: AdjustableField, raw: str) -> time | date | str:
    if field in TIMING_FIELDS:
        return parse_hhmm(raw, field="requested_value")
    if field == AdjustableField.DATE:
        return parse_iso_date(raw, field="requested_value")
    return raw


def describe_current_value(record: TimeRecord, field: AdjustableField) -> str | None:
    value = getattr(record, field.value)
    if value is None:
        return None
    if isinstance(value, time):
        return format_hhmm(value)
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def apply_requested_value(record: TimeRecord, adjustment: TimeRecordAdjustment) -> None:
    """Overwrite the targeted field; timing fields trigger a worked-minutes recompute.

    The employee's `<field>_recorded_at` stamps are left as they were: an approved
    correction is not a new submission.
    """
    field = adjustment.field_to_change
    value = coerce_requested_value(field, adjustment.requested_value)
    if field in TIMING_FIELDS:
        setattr(record, field.value, value)
        recompute_worked_minutes(record)
    elif field == AdjustableField.DATE:
        record.date = value  # type: ignore[assignment]
    else:
        record.notes = value  # type: ignore[assignment]


def create_adjustment(db: Session, actor: User, payload: AdjustmentCreate) -> TimeRecordAdjustment:
    record = get_or_404(db, TimeRecord, payload.time_record_id, label="Time record")
    ensure_owner_or_manager(actor, record.user)
    coerce_requested_value(payload.field_to_change, payload.requested_value)

    adjustment = TimeRecordAdjustment(
        time_record_id=record.id,
        user_id=actor.id,
        field_to_change=payload.field_to_change,
        current_value=describe_current_value(record, payload.field_to_change),
        requested_value=payload.requested_value,
        reason=payload.reason,
        status=ReviewStatus.PENDING,
    )
    db.add(adjustment)
    commit_or_fail(db, message="Could not register the adjustment request")
    db.refresh(adjustment)
    logger.info(
        "adjustment_requested",
        extra={
            "adjustment_id": adjustment.id,
            "time_record_id": record.id,
            "field": adjustment.field_to_change.value,
            "user_id": actor.id,
        },
    )
    return adjustment


def list_adjustments(
    db: Session,
    actor: User,
    *,
    status: ReviewStatus | None = None,
    time_record_id: int | None = None,
    page: int = 1,
    per_page: int = 15,
) -> Page[TimeRecordAdjustment]:
    stmt = select(TimeRecordAdjustment)
    if actor.is_admin:
        scope = company_scope_user_ids(actor)
        if scope is not None:
            stmt = stmt.where(TimeRecordAdjustment.user_id.in_(scope))
    else:
        stmt = stmt.where(TimeRecordAdjustment.user_id == actor.id)
    if status is not None:
        stmt = stmt.where(TimeRecordAdjustment.status == status)
    if time_record_id is not None:
        stmt = stmt.where(TimeRecordAdjustment.time_record_id == time_record_id)
    stmt = stmt.order_by(TimeRecordAdjustment.created_at.desc(), TimeRecordAdjustment.id.desc())
    return paginate(db, stmt, page=page, per_page=per_page)


def get_adjustment(db: Session, actor: User, adjustment_id: int) -> TimeRecordAdjustment:
    adjustment = get_or_404(db, TimeRecordAdjustment, adjustment_id, label="Adjustment request")
    ensure_owner_or_manager(actor, adjustment.user)
    return adjustment


def update_adjustment(
    db: Session,
    actor: User,
    adjustment_id: int,
    payload: AdjustmentUpdate,
) -> TimeRecordAdjustment:
    adjustment = get_or_404(db, TimeRecordAdjustment, adjustment_id, label="Adjustment request")
    if adjustment.user_id != actor.id:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Only the requester can edit this request.")
    if adjustment.status != ReviewStatus.PENDING:
        raise ValidationFailure(
            f"This request has already been reviewed with status: {adjustment.status.value}",
            code="ALREADY_REVIEWED",
        )

    if payload.requested_value is not None:
        coerce_requested_value(adjustment.field_to_change, payload.requested_value)
        adjustment.requested_value = payload.requested_value
    if payload.reason is not None:
        adjustment.reason = payload.reason

    commit_or_fail(db, message="Could not update the adjustment request")
    db.refresh(adjustment)
    return adjustment


def delete_adjustment(db: Session, actor: User, adjustment_id: int) -> None:
    adjustment = get_or_404(db, TimeRecordAdjustment, adjustment_id, label="Adjustment request")
    if adjustment.user_id == actor.id and not actor.is_admin:
        if adjustment.status != ReviewStatus.PENDING:
            raise ValidationFailure("Only pending requests can be withdrawn", code="ALREADY_REVIEWED")
    else:
        ensure_can_manage_user(actor, adjustment.user)
    db.delete(adjustment)
    db.commit()
    logger.info("adjustment_deleted", extra={"adjustment_id": adjustment_id, "actor_id": actor.id})


def _claim_for_review(
    db: Session,
    adjustment_id: int,
    reviewer: User,
    target: ReviewStatus,
    admin_notes: str | None,
    now: datetime,
) -> None:
    result = db.execute(
        update(TimeRecordAdjustment)
        .where(
            TimeRecordAdjustment.id == adjustment_id,
            TimeRecordAdjustment.status == ReviewStatus.PENDING,
        )
        .values(
            status=target,
            reviewed_by=reviewer.id,
            reviewed_at=now,
            admin_notes=admin_notes,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return

    db.rollback()
    current = db.scalar(select(TimeRecordAdjustment.status).where(TimeRecordAdjustment.id == adjustment_id))
    if current is None:
        raise NotFoundError(f"Adjustment request with id {adjustment_id} not found")
    raise ValidationFailure(
        f"This request has already been reviewed with status: {ReviewStatus(current).value}",
        code="ALREADY_REVIEWED",
    )


def approve_adjustment(
    db: Session,
    adjustment_id: int,
    reviewer: User,
    admin_notes: str | None = None,
) -> TimeRecordAdjustment:
    adjustment = get_or_404(db, TimeRecordAdjustment, adjustment_id, label="Adjustment request")
    ensure_can_manage_user(reviewer, adjustment.user)

    now = utcnow()
    _claim_for_review(db, adjustment_id, reviewer, ReviewStatus.APPROVED, admin_notes, now)
    # Apply the value as it stood when the claim succeeded.
    db.refresh(adjustment)
    try:
        record = db.get(TimeRecord, adjustment.time_record_id, populate_existing=True)
        if record is None:
            raise NotFoundError(f"Time record with id {adjustment.time_record_id} not found")
        apply_requested_value(record, adjustment)
    except ApiError:
        db.rollback()
        raise

    commit_or_fail(db, message="Could not apply the adjustment")
    db.refresh(adjustment)
    logger.info(
        "adjustment_approved",
        extra={
            "adjustment_id": adjustment.id,
            "time_record_id": adjustment.time_record_id,
            "field": adjustment.field_to_change.value,
            "reviewer_id": reviewer.id,
        },
    )
    return adjustment


def reject_adjustment(
    db: Session,
    adjustment_id: int,
    reviewer: User,
    admin_notes: str | None = None,
) -> TimeRecordAdjustment:
    adjustment = get_or_404(db, TimeRecordAdjustment, adjustment_id, label="Adjustment request")
    ensure_can_manage_user(reviewer, adjustment.user)

    _claim_for_review(db, adjustment_id, reviewer, ReviewStatus.REJECTED, admin_notes, utcnow())
    db.commit()
    db.refresh(adjustment)
    logger.info(
        "adjustment_rejected",
        extra={"adjustment_id": adjustment.id, "reviewer_id": reviewer.id},
    )
    return adjustment
