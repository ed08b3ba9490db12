from __future__ import annotations

import unittest
from datetime import date

from pydantic import ValidationError

from timeclock.errors import ApiError, ValidationFailure
from timeclock.models import Absence, AbsenceImpactType, ReviewStatus, UserRole
from timeclock.schemas import AbsenceCreate, AbsenceUpdate
from timeclock.services.absences import (
    approve_absence,
    create_absence,
    list_pending_absences,
    list_user_absences,
    reject_absence,
    set_absence_status,
    update_absence,
)

from _support import DatabaseTestCase, TestingSessionLocal


class AbsenceSchemaTests(unittest.TestCase):
    def test_end_must_be_after_start(self) -> None:
        with self.assertRaises(ValidationError):
            AbsenceCreate(date=date(2026, 3, 2), start_time="10:00", end_time="09:00", reason="Doctor")

    def test_reason_length_is_bounded(self) -> None:
        with self.assertRaises(ValidationError):
            AbsenceCreate(date=date(2026, 3, 2), start_time="09:00", end_time="10:00", reason="x" * 256)


class AbsenceStateMachineTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.company = self.make_company()
        self.admin = self.make_user(company=self.company, email="admin@example.com", role=UserRole.ADMIN)
        self.employee = self.make_user(company=self.company, email="ana@example.com")

    def _absence(self) -> Absence:
        payload = AbsenceCreate(
            date=date(2026, 3, 2),
            start_time="09:00",
            end_time="11:30",
            reason="Doctor",
            description="Annual check-up",
        )
        return create_absence(self.db, self.employee, payload)

    def test_new_absence_is_pending_with_default_impact(self) -> None:
        absence = self._absence()
        self.assertEqual(absence.status, ReviewStatus.PENDING)
        self.assertEqual(absence.impact_type, AbsenceImpactType.DISCOUNT)
        self.assertEqual(absence.duration_minutes, 150)
        self.assertIsNone(absence.approved_by)

    def test_approve_sets_reviewer_fields_together(self) -> None:
        absence = self._absence()
        approved = approve_absence(self.db, absence.id, self.admin)
        self.assertEqual(approved.status, ReviewStatus.APPROVED)
        self.assertEqual(approved.approved_by, self.admin.id)
        self.assertIsNotNone(approved.approved_at)

    def test_only_one_transition_out_of_pending(self) -> None:
        absence = self._absence()
        reject_absence(self.db, absence.id, self.admin)

        with self.assertRaises(ValidationFailure):
            approve_absence(self.db, absence.id, self.admin)
        with self.assertRaises(ValidationFailure):
            reject_absence(self.db, absence.id, self.admin)

        stored = self.db.get(Absence, absence.id, populate_existing=True)
        self.assertEqual(stored.status, ReviewStatus.REJECTED)

    def test_concurrent_reviewers_cannot_both_win(self) -> None:
        absence = self._absence()
        lead = self.make_user(company=self.company, email="lead@example.com", role=UserRole.ADMIN)
        first_db = TestingSessionLocal()
        second_db = TestingSessionLocal()
        try:
            self.assertEqual(first_db.get(Absence, absence.id).status, ReviewStatus.PENDING)
            self.assertEqual(second_db.get(Absence, absence.id).status, ReviewStatus.PENDING)

            approve_absence(first_db, absence.id, self.admin)
            with self.assertRaises(ValidationFailure) as ctx:
                reject_absence(second_db, absence.id, lead)
        finally:
            first_db.close()
            second_db.close()

        self.assertEqual(ctx.exception.code, "ALREADY_REVIEWED")
        stored = self.db.get(Absence, absence.id, populate_existing=True)
        self.assertEqual(stored.status, ReviewStatus.APPROVED)
        self.assertEqual(stored.approved_by, self.admin.id)

    def test_set_status_dispatches(self) -> None:
        absence = self._absence()
        result = set_absence_status(self.db, absence.id, self.admin, "approved")
        self.assertEqual(result.status, ReviewStatus.APPROVED)

    def test_set_status_refuses_pending(self) -> None:
        absence = self._absence()
        with self.assertRaises(ValidationFailure):
            set_absence_status(self.db, absence.id, self.admin, ReviewStatus.PENDING)

    def test_owner_edits_only_while_pending(self) -> None:
        absence = self._absence()
        updated = update_absence(self.db, self.employee, absence.id, AbsenceUpdate(end_time="12:00"))
        self.assertEqual(updated.duration_minutes, 180)

        approve_absence(self.db, absence.id, self.admin)
        with self.assertRaises(ValidationFailure):
            update_absence(self.db, self.employee, absence.id, AbsenceUpdate(reason="Dentist"))

    def test_edit_keeps_window_ordered(self) -> None:
        absence = self._absence()
        with self.assertRaises(ValidationFailure):
            update_absence(self.db, self.employee, absence.id, AbsenceUpdate(end_time="08:00"))
        stored = self.db.get(Absence, absence.id, populate_existing=True)
        self.assertEqual(stored.duration_minutes, 150)

    def test_other_users_cannot_edit(self) -> None:
        absence = self._absence()
        with self.assertRaises(ApiError) as ctx:
            update_absence(self.db, self.admin, absence.id, AbsenceUpdate(reason="Dentist"))
        self.assertEqual(ctx.exception.status_code, 403)

    def test_listing_filters_by_status(self) -> None:
        first = self._absence()
        self._absence()
        approve_absence(self.db, first.id, self.admin)

        self.assertEqual(list_user_absences(self.db, user_id=self.employee.id).total, 2)
        self.assertEqual(
            list_user_absences(self.db, user_id=self.employee.id, status=ReviewStatus.APPROVED).total,
            1,
        )
        self.assertEqual(list_pending_absences(self.db, self.admin).total, 1)


if __name__ == "__main__":
    unittest.main()
