from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from timeclock.errors import ValidationFailure
from timeclock.models import TimeRecord


@dataclass(frozen=True)
class HourBankSummary:
    total_worked_minutes: int
    total_expected_minutes: int
    balance_minutes: int
    balance_formatted: str
    balance_hours: float
    status: str
    total_days: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_worked_minutes": self.total_worked_minutes,
            "total_expected_minutes": self.total_expected_minutes,
            "balance_minutes": self.balance_minutes,
            "balance_formatted": self.balance_formatted,
            "balance_hours": self.balance_hours,
            "status": self.status,
            "total_days": self.total_days,
        }


def format_balance(balance_minutes: int) -> str:
    sign = "+" if balance_minutes >= 0 else "-"
    hours, minutes = divmod(abs(balance_minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


def summarize_hour_bank(records: Iterable[TimeRecord]) -> HourBankSummary:
    total_worked = 0
    total_expected = 0
    total_days = 0
    for record in records:
        total_worked += int(record.worked_minutes or 0)
        total_expected += int(record.expected_minutes or 0)
        total_days += 1

    balance = total_worked - total_expected
    return HourBankSummary(
        total_worked_minutes=total_worked,
        total_expected_minutes=total_expected,
        balance_minutes=balance,
        balance_formatted=format_balance(balance),
        balance_hours=round(balance / 60, 2),
        status="positive" if balance >= 0 else "negative",
        total_days=total_days,
    )


def list_records_for_period(
    db: Session,
    *,
    user_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[TimeRecord]:
    if start_date is not None and end_date is not None and end_date < start_date:
        raise ValidationFailure(
            "end_date must be greater than or equal to start_date",
            errors={"end_date": ["Must not be before start_date"]},
        )

    stmt = select(TimeRecord).where(TimeRecord.user_id == user_id)
    if start_date is not None:
        stmt = stmt.where(TimeRecord.date >= start_date)
    if end_date is not None:
        stmt = stmt.where(TimeRecord.date <= end_date)
    stmt = stmt.order_by(TimeRecord.date.asc(), TimeRecord.id.asc())
    return list(db.scalars(stmt).all())


def calculate_hour_bank(
    db: Session,
    *,
    user_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
) -> HourBankSummary:
    records = list_records_for_period(db, user_id=user_id, start_date=start_date, end_date=end_date)
    return summarize_hour_bank(records)
