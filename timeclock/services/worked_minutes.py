from __future__ import annotations

from datetime import time

from timeclock.errors import ValidationFailure
from timeclock.timeutils import seconds_of_day


def calculate_worked_minutes(
    entry_time: time | None,
    exit_time: time | None,
    lunch_start: time | None = None,
    lunch_end: time | None = None,
) -> int:
    """Minutes between entry and exit, minus the lunch window when both bounds exist.

    Returns 0 while the day is open (no entry or no exit). Never negative.
    """
    if entry_time is None or exit_time is None:
        return 0

    worked_seconds = seconds_of_day(exit_time) - seconds_of_day(entry_time)
    if lunch_start is not None and lunch_end is not None:
        worked_seconds -= seconds_of_day(lunch_end) - seconds_of_day(lunch_start)

    return max(0, worked_seconds // 60)


def validate_clock_sequence(
    entry_time: time | None,
    exit_time: time | None,
    lunch_start: time | None,
    lunch_end: time | None,
) -> None:
    errors: dict[str, list[str]] = {}
    if entry_time is not None and exit_time is not None and exit_time < entry_time:
        errors["exit_time"] = ["Exit time must be greater than or equal to entry time"]
    if lunch_start is not None and lunch_end is not None and lunch_end < lunch_start:
        errors["lunch_end"] = ["Lunch end must be greater than or equal to lunch start"]
    if errors:
        raise ValidationFailure(
            "Clock events are out of order",
            code="INVALID_CLOCK_SEQUENCE",
            errors=errors,
        )
