from datetime import date

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from timeclock.audit import audit_user_action
from timeclock.db import get_db
from timeclock.models import TimeRecord, User
from timeclock.routers.common import page_response
from timeclock.schemas import (
    HourBankRead,
    PageRead,
    QuickEntryResponse,
    TimeRecordAdminUpdate,
    TimeRecordAuditRead,
    TimeRecordRead,
    TimeRecordSaveResponse,
    TimeRecordUpsertRequest,
)
from timeclock.security import require_admin, require_user
from timeclock.services.hour_bank import calculate_hour_bank
from timeclock.services.time_records import (
    admin_update_record,
    delete_record,
    get_audit_info,
    get_record,
    list_company_records,
    list_user_records,
    quick_entry,
    upsert_day_record,
)

router = APIRouter(tags=["time-records"])


@router.get("/api/time-records", response_model=PageRead[TimeRecordRead])
def list_my_records_endpoint(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=15, ge=1, le=100),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> PageRead[TimeRecordRead]:
    result = list_user_records(
        db,
        user_id=user.id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        per_page=per_page,
    )
    return page_response(result, TimeRecordRead)


@router.post("/api/time-records", response_model=TimeRecordSaveResponse)
def upsert_record_endpoint(
    payload: TimeRecordUpsertRequest,
    request: Request,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> TimeRecordSaveResponse:
    record = upsert_day_record(db, user, payload)
    request.state.time_record_id = record.id
    return TimeRecordSaveResponse(
        message="Time record saved",
        record=TimeRecordRead.model_validate(record),
        balance_minutes=record.balance_minutes,
    )


@router.post("/api/time-records/quick-entry", response_model=QuickEntryResponse)
def quick_entry_endpoint(
    request: Request,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> QuickEntryResponse:
    record, field, message = quick_entry(db, user)
    request.state.time_record_id = record.id
    return QuickEntryResponse(message=message, field=field, record=TimeRecordRead.model_validate(record))


@router.get("/api/time-records/{record_id}", response_model=TimeRecordRead)
def get_record_endpoint(
    record_id: int,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> TimeRecord:
    return get_record(db, user, record_id)


@router.get("/api/time-records/{record_id}/audit", response_model=TimeRecordAuditRead)
def record_audit_endpoint(
    record_id: int,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> TimeRecordAuditRead:
    record = get_record(db, user, record_id)
    return TimeRecordAuditRead(**get_audit_info(record))


@router.get("/api/hour-bank", response_model=HourBankRead)
def hour_bank_endpoint(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> HourBankRead:
    summary = calculate_hour_bank(db, user_id=user.id, start_date=start_date, end_date=end_date)
    return HourBankRead(**summary.to_dict())


@router.get("/api/admin/time-records", response_model=PageRead[TimeRecordRead])
def list_company_records_endpoint(
    user_id: int | None = Query(default=None, ge=1),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=15, ge=1, le=100),
    actor: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> PageRead[TimeRecordRead]:
    result = list_company_records(
        db,
        actor,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        per_page=per_page,
    )
    return page_response(result, TimeRecordRead)


@router.patch("/api/admin/time-records/{record_id}", response_model=TimeRecordRead)
def admin_update_record_endpoint(
    record_id: int,
    payload: TimeRecordAdminUpdate,
    request: Request,
    actor: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> TimeRecord:
    record = admin_update_record(db, actor, record_id, payload)
    audit_user_action(
        db,
        request,
        actor,
        action="TIME_RECORD_OVERRIDDEN",
        entity_type="time_record",
        entity_id=record.id,
        details={"fields": sorted(payload.model_dump(exclude_unset=True)), "user_id": record.user_id},
    )
    return record


@router.delete("/api/admin/time-records/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_record_endpoint(
    record_id: int,
    request: Request,
    actor: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> None:
    delete_record(db, actor, record_id)
    audit_user_action(
        db,
        request,
        actor,
        action="TIME_RECORD_DELETED",
        entity_type="time_record",
        entity_id=record_id,
    )
