import datetime as dt
from typing import Annotated, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from timeclock.models import AbsenceImpactType, AdjustableField, ReviewStatus, UserRole

HHMM = Annotated[str, Field(pattern=r"^\d{2}:\d{2}(:\d{2})?$")]
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

T = TypeVar("T")


def _format_time(value: dt.time | None) -> str | None:
    if value is None:
        return None
    return value.strftime("%H:%M:%S") if value.second else value.strftime("%H:%M")


class PageRead(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    per_page: int


class MessageResponse(BaseModel):
    success: bool = True
    message: str


# Auth


class LoginRequest(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class RegisterRequest(BaseModel):
    company_id: int = Field(ge=1)
    name: str = Field(min_length=2, max_length=255)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=8, max_length=72)
    hire_date: dt.date | None = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


# Companies


def _digits_only(value: str | None) -> str | None:
    if value is None:
        return None
    return "".join(ch for ch in value if ch.isdigit())


class CompanyBase(BaseModel):
    phone: str | None = Field(default=None, max_length=20)
    address: str | None = None
    city: str | None = Field(default=None, max_length=100)
    state: str | None = Field(default=None, min_length=2, max_length=2)
    zip_code: str | None = Field(default=None, max_length=9)

    @field_validator("zip_code")
    @classmethod
    def _normalize_zip_code(cls, value: str | None) -> str | None:
        normalized = _digits_only(value)
        if normalized is not None and len(normalized) != 8:
            raise ValueError("zip_code must have 8 digits")
        return normalized

    @field_validator("state")
    @classmethod
    def _normalize_state(cls, value: str | None) -> str | None:
        return value.upper() if value is not None else None


class CompanyCreate(CompanyBase):
    name: str = Field(min_length=2, max_length=255)
    cnpj: str = Field(min_length=14, max_length=18)
    email: str | None = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    max_users: int | None = Field(default=None, ge=1)
    active: bool = True

    @field_validator("cnpj")
    @classmethod
    def _normalize_cnpj(cls, value: str) -> str:
        normalized = _digits_only(value) or ""
        if len(normalized) != 14:
            raise ValueError("cnpj must have 14 digits")
        return normalized


class CompanyUpdate(CompanyBase):
    name: str | None = Field(default=None, min_length=2, max_length=255)
    cnpj: str | None = Field(default=None, min_length=14, max_length=18)
    email: str | None = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    max_users: int | None = Field(default=None, ge=1)
    active: bool | None = None

    @field_validator("cnpj")
    @classmethod
    def _normalize_cnpj(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = _digits_only(value) or ""
        if len(normalized) != 14:
            raise ValueError("cnpj must have 14 digits")
        return normalized


class CompanyRead(BaseModel):
    id: int
    name: str
    cnpj: str
    email: str | None
    phone: str | None
    address: str | None
    city: str | None
    state: str | None
    zip_code: str | None
    max_users: int
    active: bool
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


# Users


class UserCreate(BaseModel):
    company_id: int | None = Field(default=None, ge=1)
    name: str = Field(min_length=2, max_length=255)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=8, max_length=72)
    role: UserRole = UserRole.USER
    hire_date: dt.date | None = None
    daily_work_hours: int | None = Field(default=None, ge=1, le=24)
    lunch_duration: int | None = Field(default=None, ge=0, le=240)
    active: bool = True


class UserUpdate(BaseModel):
    company_id: int | None = Field(default=None, ge=1)
    name: str | None = Field(default=None, min_length=2, max_length=255)
    email: str | None = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    password: str | None = Field(default=None, min_length=8, max_length=72)
    role: UserRole | None = None
    hire_date: dt.date | None = None
    daily_work_hours: int | None = Field(default=None, ge=1, le=24)
    lunch_duration: int | None = Field(default=None, ge=0, le=240)
    active: bool | None = None


class UserRead(BaseModel):
    id: int
    company_id: int | None
    name: str
    email: str
    role: UserRole
    hire_date: dt.date | None
    daily_work_hours: int
    lunch_duration: int
    active: bool
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


# Time records


class TimeRecordUpsertRequest(BaseModel):
    date: dt.date
    entry_time: HHMM | None = None
    exit_time: HHMM | None = None
    lunch_start: HHMM | None = None
    lunch_end: HHMM | None = None
    notes: str | None = Field(default=None, max_length=500)


class TimeRecordAdminUpdate(BaseModel):
    entry_time: HHMM | None = None
    exit_time: HHMM | None = None
    lunch_start: HHMM | None = None
    lunch_end: HHMM | None = None
    expected_minutes: int | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=500)


class TimeRecordRead(BaseModel):
    id: int
    user_id: int
    date: dt.date
    entry_time: dt.time | None
    exit_time: dt.time | None
    lunch_start: dt.time | None
    lunch_end: dt.time | None
    worked_minutes: int
    expected_minutes: int
    balance_minutes: int
    notes: str | None
    entry_time_recorded_at: dt.datetime | None
    exit_time_recorded_at: dt.datetime | None
    lunch_start_recorded_at: dt.datetime | None
    lunch_end_recorded_at: dt.datetime | None
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("entry_time", "exit_time", "lunch_start", "lunch_end")
    def _serialize_clock(self, value: dt.time | None) -> str | None:
        return _format_time(value)


class TimeRecordSaveResponse(BaseModel):
    message: str
    record: TimeRecordRead
    balance_minutes: int


class QuickEntryResponse(BaseModel):
    message: str
    field: str
    record: TimeRecordRead


class FieldAuditRead(BaseModel):
    field: str
    value: str | None
    recorded_at: dt.datetime | None
    submission_delay_minutes: int | None
    backdated: bool


class TimeRecordAuditRead(BaseModel):
    record_id: int
    user_id: int
    date: dt.date
    fields: list[FieldAuditRead]


class HourBankRead(BaseModel):
    total_worked_minutes: int
    total_expected_minutes: int
    balance_minutes: int
    balance_formatted: str
    balance_hours: float
    status: Literal["positive", "negative"]
    total_days: int


# Absences


class AbsenceCreate(BaseModel):
    date: dt.date
    start_time: HHMM
    end_time: HHMM
    reason: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    impact_type: AbsenceImpactType = AbsenceImpactType.DISCOUNT

    @model_validator(mode="after")
    def _validate_window(self) -> "AbsenceCreate":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class AbsenceUpdate(BaseModel):
    date: dt.date | None = None
    start_time: HHMM | None = None
    end_time: HHMM | None = None
    reason: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    impact_type: AbsenceImpactType | None = None


class AbsenceStatusUpdate(BaseModel):
    status: Literal["approved", "rejected"]


class AbsenceRead(BaseModel):
    id: int
    user_id: int
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    duration_minutes: int
    reason: str
    description: str | None
    status: ReviewStatus
    impact_type: AbsenceImpactType
    approved_by: int | None
    approved_at: dt.datetime | None
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("start_time", "end_time")
    def _serialize_clock(self, value: dt.time | None) -> str | None:
        return _format_time(value)


# Adjustments


class AdjustmentCreate(BaseModel):
    time_record_id: int = Field(ge=1)
    field_to_change: AdjustableField
    requested_value: str = Field(max_length=1000)
    reason: str = Field(min_length=1, max_length=2000)


class AdjustmentUpdate(BaseModel):
    requested_value: str | None = Field(default=None, max_length=1000)
    reason: str | None = Field(default=None, min_length=1, max_length=2000)


class AdjustmentReviewRequest(BaseModel):
    admin_notes: str | None = Field(default=None, max_length=2000)


class AdjustmentRead(BaseModel):
    id: int
    time_record_id: int
    user_id: int
    field_to_change: AdjustableField
    current_value: str | None
    requested_value: str
    reason: str
    status: ReviewStatus
    reviewed_by: int | None
    reviewed_at: dt.datetime | None
    admin_notes: str | None
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)
