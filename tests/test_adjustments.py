from __future__ import annotations

import unittest
from datetime import date, datetime, time

from sqlalchemy import delete

from timeclock.errors import ApiError, NotFoundError, PersistenceFailure, ValidationFailure
from timeclock.models import AdjustableField, ReviewStatus, TimeRecord, TimeRecordAdjustment, UserRole
from timeclock.schemas import AdjustmentCreate, AdjustmentUpdate
from timeclock.services.adjustments import (
    approve_adjustment,
    create_adjustment,
    delete_adjustment,
    list_adjustments,
    reject_adjustment,
    update_adjustment,
)

from _support import DatabaseTestCase, TestingSessionLocal


class AdjustmentWorkflowTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.company = self.make_company()
        self.admin = self.make_user(company=self.company, email="admin@example.com", role=UserRole.ADMIN)
        self.employee = self.make_user(company=self.company, email="ana@example.com")
        self.record = self.make_record(
            self.employee,
            day=date(2026, 3, 2),
            entry=time(8, 0),
            exit=time(18, 0),
            lunch_start=time(12, 0),
            lunch_end=time(13, 0),
            worked_minutes=540,
            notes="original",
        )

    def _request(self, field: AdjustableField, value: str) -> TimeRecordAdjustment:
        payload = AdjustmentCreate(
            time_record_id=self.record.id,
            field_to_change=field,
            requested_value=value,
            reason="Forgot to punch",
        )
        return create_adjustment(self.db, self.employee, payload)

    def test_create_captures_current_value(self) -> None:
        adjustment = self._request(AdjustableField.EXIT_TIME, "17:00")
        self.assertEqual(adjustment.status, ReviewStatus.PENDING)
        self.assertEqual(adjustment.current_value, "18:00")
        self.assertEqual(adjustment.user_id, self.employee.id)

    def test_create_rejects_malformed_time(self) -> None:
        with self.assertRaises(ValidationFailure):
            self._request(AdjustableField.ENTRY_TIME, "25:99")

    def test_create_rejects_malformed_date(self) -> None:
        with self.assertRaises(ValidationFailure):
            self._request(AdjustableField.DATE, "02/03/2026")

    def test_approving_exit_time_recomputes_worked_minutes(self) -> None:
        adjustment = self._request(AdjustableField.EXIT_TIME, "17:00")

        approved = approve_adjustment(self.db, adjustment.id, self.admin, admin_notes="ok")

        self.assertEqual(approved.status, ReviewStatus.APPROVED)
        self.assertEqual(approved.reviewed_by, self.admin.id)
        self.assertIsNotNone(approved.reviewed_at)
        self.assertEqual(approved.admin_notes, "ok")
        record = self.db.get(TimeRecord, self.record.id, populate_existing=True)
        self.assertEqual(record.exit_time, time(17, 0))
        self.assertEqual(record.worked_minutes, 480)

    def test_approving_notes_leaves_worked_minutes(self) -> None:
        adjustment = self._request(AdjustableField.NOTES, "Doctor appointment")

        approve_adjustment(self.db, adjustment.id, self.admin)

        record = self.db.get(TimeRecord, self.record.id, populate_existing=True)
        self.assertEqual(record.notes, "Doctor appointment")
        self.assertEqual(record.worked_minutes, 540)

    def test_approving_date_moves_the_record(self) -> None:
        adjustment = self._request(AdjustableField.DATE, "2026-03-03")

        approve_adjustment(self.db, adjustment.id, self.admin)

        record = self.db.get(TimeRecord, self.record.id, populate_existing=True)
        self.assertEqual(record.date, date(2026, 3, 3))
        self.assertEqual(record.worked_minutes, 540)

    def test_second_approval_fails_without_mutation(self) -> None:
        adjustment = self._request(AdjustableField.EXIT_TIME, "17:00")
        approve_adjustment(self.db, adjustment.id, self.admin)
        self.db.execute(
            TimeRecord.__table__.update().where(TimeRecord.id == self.record.id).values(exit_time=time(18, 30))
        )
        self.db.commit()

        with self.assertRaises(ValidationFailure) as ctx:
            approve_adjustment(self.db, adjustment.id, self.admin)

        self.assertEqual(ctx.exception.code, "ALREADY_REVIEWED")
        self.assertIn("already been reviewed with status: approved", ctx.exception.message)
        record = self.db.get(TimeRecord, self.record.id, populate_existing=True)
        self.assertEqual(record.exit_time, time(18, 30))

    def test_concurrent_reviewers_cannot_both_approve(self) -> None:
        adjustment = self._request(AdjustableField.EXIT_TIME, "17:00")
        lead = self.make_user(company=self.company, email="lead@example.com", role=UserRole.ADMIN)
        first_db = TestingSessionLocal()
        second_db = TestingSessionLocal()
        try:
            # Both reviewers have the request loaded while it is still pending.
            self.assertEqual(first_db.get(TimeRecordAdjustment, adjustment.id).status, ReviewStatus.PENDING)
            self.assertEqual(second_db.get(TimeRecordAdjustment, adjustment.id).status, ReviewStatus.PENDING)

            approve_adjustment(first_db, adjustment.id, self.admin, admin_notes="first")
            self.db.execute(
                TimeRecord.__table__.update().where(TimeRecord.id == self.record.id).values(exit_time=time(18, 30))
            )
            self.db.commit()

            with self.assertRaises(ValidationFailure) as ctx:
                approve_adjustment(second_db, adjustment.id, lead, admin_notes="second")
        finally:
            first_db.close()
            second_db.close()

        self.assertEqual(ctx.exception.code, "ALREADY_REVIEWED")
        stored = self.db.get(TimeRecordAdjustment, adjustment.id, populate_existing=True)
        self.assertEqual(stored.reviewed_by, self.admin.id)
        self.assertEqual(stored.admin_notes, "first")
        record = self.db.get(TimeRecord, self.record.id, populate_existing=True)
        self.assertEqual(record.exit_time, time(18, 30))

    def test_approval_keeps_submission_stamps(self) -> None:
        submitted_at = datetime(2026, 3, 2, 21, 0)
        self.record.exit_time_recorded_at = submitted_at
        self.db.commit()
        adjustment = self._request(AdjustableField.EXIT_TIME, "17:00")

        approve_adjustment(self.db, adjustment.id, self.admin)

        record = self.db.get(TimeRecord, self.record.id, populate_existing=True)
        self.assertEqual(record.exit_time, time(17, 0))
        self.assertEqual(record.exit_time_recorded_at, submitted_at)

    def test_approval_applies_value_edited_after_reviewer_loaded_it(self) -> None:
        adjustment = self._request(AdjustableField.EXIT_TIME, "17:00")
        reviewer_db = TestingSessionLocal()
        try:
            self.assertEqual(reviewer_db.get(TimeRecordAdjustment, adjustment.id).requested_value, "17:00")
            update_adjustment(self.db, self.employee, adjustment.id, AdjustmentUpdate(requested_value="17:30"))

            approved = approve_adjustment(reviewer_db, adjustment.id, self.admin)
        finally:
            reviewer_db.close()

        self.assertEqual(approved.requested_value, "17:30")
        record = self.db.get(TimeRecord, self.record.id, populate_existing=True)
        self.assertEqual(record.exit_time, time(17, 30))
        self.assertEqual(record.worked_minutes, 510)

    def test_rejected_request_cannot_be_approved(self) -> None:
        adjustment = self._request(AdjustableField.EXIT_TIME, "17:00")
        rejected = reject_adjustment(self.db, adjustment.id, self.admin, admin_notes="no proof")
        self.assertEqual(rejected.status, ReviewStatus.REJECTED)

        with self.assertRaises(ValidationFailure) as ctx:
            approve_adjustment(self.db, adjustment.id, self.admin)

        self.assertIn("rejected", ctx.exception.message)
        record = self.db.get(TimeRecord, self.record.id, populate_existing=True)
        self.assertEqual(record.exit_time, time(18, 0))

    def test_unknown_request_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            approve_adjustment(self.db, 999, self.admin)

    def test_failed_apply_rolls_back_status(self) -> None:
        adjustment = self._request(AdjustableField.EXIT_TIME, "07:00")

        with self.assertRaises(ValidationFailure) as ctx:
            approve_adjustment(self.db, adjustment.id, self.admin)

        self.assertEqual(ctx.exception.code, "INVALID_CLOCK_SEQUENCE")
        stored = self.db.get(TimeRecordAdjustment, adjustment.id, populate_existing=True)
        self.assertEqual(stored.status, ReviewStatus.PENDING)
        self.assertIsNone(stored.reviewed_by)
        record = self.db.get(TimeRecord, self.record.id, populate_existing=True)
        self.assertEqual(record.exit_time, time(18, 0))
        self.assertEqual(record.worked_minutes, 540)

    def test_missing_target_record_rolls_back_status(self) -> None:
        adjustment = self._request(AdjustableField.NOTES, "late")
        # SQLite does not enforce the foreign key here, so the request outlives its record.
        self.db.execute(delete(TimeRecord).where(TimeRecord.id == self.record.id))
        self.db.commit()
        self.db.expunge_all()

        with self.assertRaises(NotFoundError):
            approve_adjustment(self.db, adjustment.id, self.admin)

        stored = self.db.get(TimeRecordAdjustment, adjustment.id, populate_existing=True)
        self.assertEqual(stored.status, ReviewStatus.PENDING)

    def test_date_collision_surfaces_persistence_failure(self) -> None:
        self.make_record(self.employee, day=date(2026, 3, 3))
        adjustment = self._request(AdjustableField.DATE, "2026-03-03")

        with self.assertRaises(PersistenceFailure):
            approve_adjustment(self.db, adjustment.id, self.admin)

        stored = self.db.get(TimeRecordAdjustment, adjustment.id, populate_existing=True)
        self.assertEqual(stored.status, ReviewStatus.PENDING)

    def test_admin_of_another_company_cannot_review(self) -> None:
        other_company = self.make_company(name="Other", cnpj="99888777000166")
        outsider = self.make_user(company=other_company, email="boss@other.com", role=UserRole.ADMIN)
        adjustment = self._request(AdjustableField.NOTES, "late")

        with self.assertRaises(ApiError) as ctx:
            approve_adjustment(self.db, adjustment.id, outsider)

        self.assertEqual(ctx.exception.status_code, 403)

    def test_requester_edits_and_withdraws_while_pending(self) -> None:
        adjustment = self._request(AdjustableField.EXIT_TIME, "17:00")
        updated = update_adjustment(
            self.db,
            self.employee,
            adjustment.id,
            AdjustmentUpdate(requested_value="17:30"),
        )
        self.assertEqual(updated.requested_value, "17:30")

        delete_adjustment(self.db, self.employee, adjustment.id)
        self.assertIsNone(self.db.get(TimeRecordAdjustment, adjustment.id))

    def test_requester_cannot_edit_reviewed_request(self) -> None:
        adjustment = self._request(AdjustableField.EXIT_TIME, "17:00")
        reject_adjustment(self.db, adjustment.id, self.admin)

        with self.assertRaises(ValidationFailure):
            update_adjustment(self.db, self.employee, adjustment.id, AdjustmentUpdate(reason="please"))

    def test_listing_is_scoped(self) -> None:
        self._request(AdjustableField.NOTES, "a")
        self._request(AdjustableField.EXIT_TIME, "17:00")
        other_company = self.make_company(name="Other", cnpj="99888777000166")
        outsider = self.make_user(company=other_company, email="boss@other.com", role=UserRole.ADMIN)

        self.assertEqual(list_adjustments(self.db, self.employee).total, 2)
        self.assertEqual(list_adjustments(self.db, self.admin, status=ReviewStatus.PENDING).total, 2)
        self.assertEqual(list_adjustments(self.db, outsider).total, 0)


if __name__ == "__main__":
    unittest.main()
