from __future__ import annotations

import unittest
from datetime import time

from timeclock.errors import ValidationFailure
from timeclock.services.worked_minutes import calculate_worked_minutes, validate_clock_sequence


class WorkedMinutesTests(unittest.TestCase):
    def test_full_day_subtracts_lunch(self) -> None:
        minutes = calculate_worked_minutes(time(8, 0), time(18, 0), time(12, 0), time(13, 0))
        self.assertEqual(minutes, 540)

    def test_missing_exit_counts_nothing(self) -> None:
        self.assertEqual(calculate_worked_minutes(time(8, 0), None), 0)
        self.assertEqual(calculate_worked_minutes(None, time(17, 0)), 0)

    def test_lunch_ignored_unless_both_bounds_present(self) -> None:
        self.assertEqual(calculate_worked_minutes(time(8, 0), time(17, 0), time(12, 0), None), 540)
        self.assertEqual(calculate_worked_minutes(time(8, 0), time(17, 0), None, time(13, 0)), 540)

    def test_seconds_are_floored_to_whole_minutes(self) -> None:
        self.assertEqual(calculate_worked_minutes(time(8, 0, 0), time(8, 1, 59)), 1)

    def test_inverted_window_floors_at_zero(self) -> None:
        self.assertEqual(calculate_worked_minutes(time(17, 0), time(8, 0)), 0)
        self.assertEqual(calculate_worked_minutes(time(8, 0), time(9, 0), time(9, 0), time(12, 0)), 0)

    def test_is_idempotent(self) -> None:
        args = (time(7, 30), time(16, 45), time(11, 50), time(12, 35))
        self.assertEqual(calculate_worked_minutes(*args), calculate_worked_minutes(*args))
        self.assertEqual(calculate_worked_minutes(*args), 510)


class ClockSequenceTests(unittest.TestCase):
    def test_accepts_ordered_events(self) -> None:
        validate_clock_sequence(time(8, 0), time(17, 0), time(12, 0), time(13, 0))
        validate_clock_sequence(time(8, 0), None, None, None)

    def test_rejects_exit_before_entry(self) -> None:
        with self.assertRaises(ValidationFailure) as ctx:
            validate_clock_sequence(time(17, 0), time(8, 0), None, None)
        self.assertEqual(ctx.exception.code, "INVALID_CLOCK_SEQUENCE")
        self.assertIn("exit_time", ctx.exception.errors or {})

    def test_rejects_lunch_end_before_start(self) -> None:
        with self.assertRaises(ValidationFailure) as ctx:
            validate_clock_sequence(time(8, 0), time(17, 0), time(13, 0), time(12, 0))
        self.assertIn("lunch_end", ctx.exception.errors or {})


if __name__ == "__main__":
    unittest.main()
