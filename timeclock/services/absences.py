from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from timeclock.errors import ApiError, ValidationFailure
from timeclock.models import Absence, ReviewStatus, User
from timeclock.schemas import AbsenceCreate, AbsenceUpdate
from timeclock.services.common import (
    Page,
    commit_or_fail,
    company_scope_user_ids,
    ensure_can_manage_user,
    get_or_404,
    paginate,
)
from timeclock.timeutils import parse_hhmm, utcnow

logger = logging.getLogger("timeclock.absences")


def _validate_window(absence: Absence) -> None:
    if absence.end_time <= absence.start_time:
        raise ValidationFailure(
            "end_time must be after start_time",
            errors={"end_time": ["Must be after start_time"]},
        )


def create_absence(db: Session, user: User, payload: AbsenceCreate) -> Absence:
    absence = Absence(
        user_id=user.id,
        date=payload.date,
        start_time=parse_hhmm(payload.start_time, field="start_time"),
        end_time=parse_hhmm(payload.end_time, field="end_time"),
        reason=payload.reason,
        description=payload.description,
        impact_type=payload.impact_type,
        status=ReviewStatus.PENDING,
    )
    _validate_window(absence)
    db.add(absence)
    commit_or_fail(db, message="Could not register the absence")
    db.refresh(absence)
    logger.info("absence_created", extra={"absence_id": absence.id, "user_id": user.id})
    return absence


def list_user_absences(
    db: Session,
    *,
    user_id: int,
    status: ReviewStatus | None = None,
    page: int = 1,
    per_page: int = 15,
) -> Page[Absence]:
    stmt = select(Absence).where(Absence.user_id == user_id)
    if status is not None:
        stmt = stmt.where(Absence.status == status)
    stmt = stmt.order_by(Absence.date.desc(), Absence.id.desc())
    return paginate(db, stmt, page=page, per_page=per_page)


def list_absences(
    db: Session,
    actor: User,
    *,
    status: ReviewStatus | None = None,
    user_id: int | None = None,
    page: int = 1,
    per_page: int = 15,
) -> Page[Absence]:
    stmt = select(Absence)
    scope = company_scope_user_ids(actor)
    if scope is not None:
        stmt = stmt.where(Absence.user_id.in_(scope))
    if status is not None:
        stmt = stmt.where(Absence.status == status)
    if user_id is not None:
        stmt = stmt.where(Absence.user_id == user_id)
    stmt = stmt.order_by(Absence.date.desc(), Absence.id.desc())
    return paginate(db, stmt, page=page, per_page=per_page)


def list_pending_absences(db: Session, actor: User, *, page: int = 1, per_page: int = 15) -> Page[Absence]:
    return list_absences(db, actor, status=ReviewStatus.PENDING, page=page, per_page=per_page)


def get_absence(db: Session, actor: User, absence_id: int) -> Absence:
    absence = get_or_404(db, Absence, absence_id, label="Absence")
    if absence.user_id != actor.id:
        ensure_can_manage_user(actor, absence.user)
    return absence


def update_absence(db: Session, actor: User, absence_id: int, payload: AbsenceUpdate) -> Absence:
    absence = get_or_404(db, Absence, absence_id, label="Absence")
    if absence.user_id != actor.id:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Only the requester can edit an absence.")
    if absence.status != ReviewStatus.PENDING:
        raise ValidationFailure("Only pending absences can be edited")

    submitted = payload.model_dump(exclude_unset=True)
    if submitted.get("date") is not None:
        absence.date = submitted["date"]
    if submitted.get("start_time") is not None:
        absence.start_time = parse_hhmm(submitted["start_time"], field="start_time")
    if submitted.get("end_time") is not None:
        absence.end_time = parse_hhmm(submitted["end_time"], field="end_time")
    if submitted.get("reason") is not None:
        absence.reason = submitted["reason"]
    if "description" in submitted:
        absence.description = submitted["description"]
    if submitted.get("impact_type") is not None:
        absence.impact_type = submitted["impact_type"]

    try:
        _validate_window(absence)
    except ValidationFailure:
        db.rollback()
        raise

    commit_or_fail(db, message="Could not update the absence")
    db.refresh(absence)
    return absence


def delete_absence(db: Session, actor: User, absence_id: int) -> None:
    absence = get_or_404(db, Absence, absence_id, label="Absence")
    ensure_can_manage_user(actor, absence.user)
    db.delete(absence)
    db.commit()
    logger.info("absence_deleted", extra={"absence_id": absence_id, "actor_id": actor.id})


def _review_absence(db: Session, absence_id: int, approver: User, target: ReviewStatus) -> Absence:
    absence = get_or_404(db, Absence, absence_id, label="Absence")
    ensure_can_manage_user(approver, absence.user)

    now = utcnow()
    result = db.execute(
        update(Absence)
        .where(Absence.id == absence_id, Absence.status == ReviewStatus.PENDING)
        .values(status=target, approved_by=approver.id, approved_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise ValidationFailure(f"Only pending absences can be {target.value}", code="ALREADY_REVIEWED")

    db.commit()
    db.refresh(absence)
    logger.info(
        "absence_reviewed",
        extra={"absence_id": absence.id, "status": target.value, "approver_id": approver.id},
    )
    return absence


def approve_absence(db: Session, absence_id: int, approver: User) -> Absence:
    return _review_absence(db, absence_id, approver, ReviewStatus.APPROVED)


def reject_absence(db: Session, absence_id: int, approver: User) -> Absence:
    return _review_absence(db, absence_id, approver, ReviewStatus.REJECTED)


def set_absence_status(db: Session, absence_id: int, approver: User, status: ReviewStatus | str) -> Absence:
    target = ReviewStatus(status)
    if target == ReviewStatus.APPROVED:
        return approve_absence(db, absence_id, approver)
    if target == ReviewStatus.REJECTED:
        return reject_absence(db, absence_id, approver)
    raise ValidationFailure(
        "status must be approved or rejected",
        errors={"status": ["Must be approved or rejected"]},
    )
