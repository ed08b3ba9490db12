from __future__ import annotations

import re
from datetime import date, datetime, time, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo

from timeclock.errors import ValidationFailure
from timeclock.settings import get_settings

_HHMM_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
DEFAULT_TIMEZONE = "America/Sao_Paulo"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@lru_cache
def attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(raw_name)
    except Exception:
        return ZoneInfo(DEFAULT_TIMEZONE)


def local_now() -> datetime:
    return utcnow().astimezone(attendance_timezone())


def normalize_ts(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; stored values are always UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_hhmm(value: str, *, field: str = "time") -> time:
    match = _HHMM_PATTERN.match(value.strip())
    if match is None:
        raise ValidationFailure(
            f"Invalid time format for {field}, expected HH:MM",
            errors={field: ["Expected HH:MM"]},
        )
    hour = int(match.group(1))
    minute = int(match.group(2))
    second = int(match.group(3) or 0)
    if hour > 23 or minute > 59 or second > 59:
        raise ValidationFailure(
            f"Invalid time value for {field}",
            errors={field: ["Hour must be 0-23 and minute 0-59"]},
        )
    return time(hour=hour, minute=minute, second=second)


def parse_optional_hhmm(value: str | None, *, field: str = "time") -> time | None:
    if value is None or not value.strip():
        return None
    return parse_hhmm(value, field=field)


def format_hhmm(value: time | None) -> str | None:
    if value is None:
        return None
    if value.second:
        return value.strftime("%H:%M:%S")
    return value.strftime("%H:%M")


def parse_iso_date(value: str, *, field: str = "date") -> date:
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValidationFailure(
            f"Invalid date format for {field}, expected YYYY-MM-DD",
            errors={field: ["Expected YYYY-MM-DD"]},
        ) from exc


def seconds_of_day(value: time) -> int:
    return value.hour * 3600 + value.minute * 60 + value.second
