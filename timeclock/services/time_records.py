from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from timeclock.errors import ApiError
from timeclock.models import TimeRecord, User
from timeclock.schemas import TimeRecordAdminUpdate, TimeRecordUpsertRequest
from timeclock.services.common import (
    Page,
    commit_or_fail,
    company_scope_user_ids,
    ensure_can_manage_user,
    ensure_owner_or_manager,
    get_or_404,
    paginate,
)
from timeclock.services.worked_minutes import calculate_worked_minutes, validate_clock_sequence
from timeclock.timeutils import attendance_timezone, local_now, normalize_ts, parse_optional_hhmm, utcnow

logger = logging.getLogger("timeclock.time_records")

CLOCK_FIELDS: tuple[str, ...] = ("entry_time", "exit_time", "lunch_start", "lunch_end")
QUICK_ENTRY_ORDER: tuple[str, ...] = ("entry_time", "lunch_start", "lunch_end", "exit_time")
QUICK_ENTRY_MESSAGES: dict[str, str] = {
    "entry_time": "Entry recorded",
    "lunch_start": "Lunch start recorded",
    "lunch_end": "Lunch end recorded",
    "exit_time": "Exit recorded",
}


def _ensure_active(user: User) -> None:
    if not user.active:
        raise ApiError(status_code=403, code="USER_INACTIVE", message="User account is inactive.")


def set_clock_value(record: TimeRecord, field: str, value: time | None, *, now: datetime | None = None) -> bool:
    """Write one clock field and stamp its ``<field>_recorded_at`` when the value changes."""
    if getattr(record, field) == value:
        return False
    setattr(record, field, value)
    setattr(record, f"{field}_recorded_at", (now or utcnow()) if value is not None else None)
    return True


def recompute_worked_minutes(record: TimeRecord) -> int:
    validate_clock_sequence(record.entry_time, record.exit_time, record.lunch_start, record.lunch_end)
    record.worked_minutes = calculate_worked_minutes(
        record.entry_time,
        record.exit_time,
        record.lunch_start,
        record.lunch_end,
    )
    return record.worked_minutes


def _parse_submitted_clocks(submitted: dict[str, Any]) -> dict[str, time | None]:
    return {
        field: parse_optional_hhmm(submitted[field], field=field)
        for field in CLOCK_FIELDS
        if field in submitted
    }


def find_day_record(db: Session, *, user_id: int, day: date) -> TimeRecord | None:
    return db.scalar(select(TimeRecord).where(TimeRecord.user_id == user_id, TimeRecord.date == day))


def upsert_day_record(db: Session, user: User, payload: TimeRecordUpsertRequest) -> TimeRecord:
    _ensure_active(user)
    submitted = payload.model_dump(exclude_unset=True)
    clocks = _parse_submitted_clocks(submitted)

    record = find_day_record(db, user_id=user.id, day=payload.date)
    if record is None:
        record = TimeRecord(
            user_id=user.id,
            date=payload.date,
            worked_minutes=0,
            expected_minutes=user.expected_daily_minutes,
        )
        db.add(record)

    now = utcnow()
    for field, value in clocks.items():
        set_clock_value(record, field, value, now=now)
    if "notes" in submitted:
        record.notes = submitted["notes"]

    try:
        recompute_worked_minutes(record)
    except ApiError:
        db.rollback()
        raise

    commit_or_fail(db, message="Could not save the time record")
    db.refresh(record)
    logger.info(
        "time_record_saved",
        extra={"record_id": record.id, "user_id": user.id, "worked_minutes": record.worked_minutes},
    )
    return record


def quick_entry(db: Session, user: User, *, now: datetime | None = None) -> tuple[TimeRecord, str, str]:
    """Punch the next empty clock field of today's record with the current local time."""
    _ensure_active(user)
    local = (now or local_now()).astimezone(attendance_timezone())
    punch = local.time().replace(second=0, microsecond=0)

    record = find_day_record(db, user_id=user.id, day=local.date())
    if record is None:
        record = TimeRecord(
            user_id=user.id,
            date=local.date(),
            worked_minutes=0,
            expected_minutes=user.expected_daily_minutes,
        )
        db.add(record)

    field = next((name for name in QUICK_ENTRY_ORDER if getattr(record, name) is None), None)
    if field is None:
        db.rollback()
        raise ApiError(
            status_code=409,
            code="DAY_COMPLETE",
            message="All clock events for today are already recorded.",
        )

    set_clock_value(record, field, punch, now=utcnow())
    try:
        recompute_worked_minutes(record)
    except ApiError:
        db.rollback()
        raise

    commit_or_fail(db, message="Could not save the time record")
    db.refresh(record)
    logger.info("quick_entry", extra={"record_id": record.id, "user_id": user.id, "field": field})
    return record, field, QUICK_ENTRY_MESSAGES[field]


def list_user_records(
    db: Session,
    *,
    user_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int = 1,
    per_page: int = 15,
) -> Page[TimeRecord]:
    stmt = select(TimeRecord).where(TimeRecord.user_id == user_id)
    if start_date is not None:
        stmt = stmt.where(TimeRecord.date >= start_date)
    if end_date is not None:
        stmt = stmt.where(TimeRecord.date <= end_date)
    stmt = stmt.order_by(TimeRecord.date.desc(), TimeRecord.id.desc())
    return paginate(db, stmt, page=page, per_page=per_page)


def list_company_records(
    db: Session,
    actor: User,
    *,
    user_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int = 1,
    per_page: int = 15,
) -> Page[TimeRecord]:
    stmt = select(TimeRecord)
    scope = company_scope_user_ids(actor)
    if scope is not None:
        stmt = stmt.where(TimeRecord.user_id.in_(scope))
    if user_id is not None:
        stmt = stmt.where(TimeRecord.user_id == user_id)
    if start_date is not None:
        stmt = stmt.where(TimeRecord.date >= start_date)
    if end_date is not None:
        stmt = stmt.where(TimeRecord.date <= end_date)
    stmt = stmt.order_by(TimeRecord.date.desc(), TimeRecord.id.desc())
    return paginate(db, stmt, page=page, per_page=per_page)


def get_record(db: Session, actor: User, record_id: int) -> TimeRecord:
    record = get_or_404(db, TimeRecord, record_id, label="Time record")
    ensure_owner_or_manager(actor, record.user)
    return record


def _submission_delay(record: TimeRecord, value: time | None, recorded_at: datetime | None) -> tuple[int | None, bool]:
    if value is None or recorded_at is None:
        return None, False
    tz = attendance_timezone()
    clock_moment = datetime.combine(record.date, value, tzinfo=tz)
    recorded_local = normalize_ts(recorded_at).astimezone(tz)
    delay_seconds = (recorded_local - clock_moment).total_seconds()
    return int(delay_seconds // 60), recorded_local.date() > record.date


def get_audit_info(record: TimeRecord) -> dict[str, Any]:
    fields: list[dict[str, Any]] = []
    for field in CLOCK_FIELDS:
        value = getattr(record, field)
        recorded_at = getattr(record, f"{field}_recorded_at")
        delay, backdated = _submission_delay(record, value, recorded_at)
        fields.append(
            {
                "field": field,
                "value": value.strftime("%H:%M") if value is not None else None,
                "recorded_at": normalize_ts(recorded_at) if recorded_at is not None else None,
                "submission_delay_minutes": delay,
                "backdated": backdated,
            }
        )
    return {
        "record_id": record.id,
        "user_id": record.user_id,
        "date": record.date,
        "fields": fields,
    }


def admin_update_record(db: Session, actor: User, record_id: int, payload: TimeRecordAdminUpdate) -> TimeRecord:
    record = get_or_404(db, TimeRecord, record_id, label="Time record")
    ensure_can_manage_user(actor, record.user)
    submitted = payload.model_dump(exclude_unset=True)
    clocks = _parse_submitted_clocks(submitted)

    now = utcnow()
    for field, value in clocks.items():
        set_clock_value(record, field, value, now=now)
    if submitted.get("expected_minutes") is not None:
        record.expected_minutes = submitted["expected_minutes"]
    if "notes" in submitted:
        record.notes = submitted["notes"]

    try:
        recompute_worked_minutes(record)
    except ApiError:
        db.rollback()
        raise

    commit_or_fail(db, message="Could not update the time record")
    db.refresh(record)
    logger.info(
        "time_record_overridden",
        extra={"record_id": record.id, "actor_id": actor.id, "fields": sorted(submitted)},
    )
    return record


def delete_record(db: Session, actor: User, record_id: int) -> None:
    record = get_or_404(db, TimeRecord, record_id, label="Time record")
    ensure_can_manage_user(actor, record.user)
    db.delete(record)
    db.commit()
    logger.info("time_record_deleted", extra={"record_id": record_id, "actor_id": actor.id})
