from __future__ import annotations

import unittest

from pydantic import ValidationError

from timeclock.errors import ApiError, ValidationFailure
from timeclock.models import Company, User, UserRole
from timeclock.schemas import CompanyCreate, CompanyUpdate, RegisterRequest, UserCreate, UserUpdate
from timeclock.security import verify_password
from timeclock.services.companies import create_company, delete_company, update_company
from timeclock.services.users import create_user, delete_user, list_users, register_user, update_user

from _support import PASSWORD, DatabaseTestCase


class CompanySchemaTests(unittest.TestCase):
    def test_cnpj_is_normalized_to_digits(self) -> None:
        payload = CompanyCreate(name="Acme", cnpj="11.222.333/0001-81", state="sp", zip_code="01310-100")
        self.assertEqual(payload.cnpj, "11222333000181")
        self.assertEqual(payload.state, "SP")
        self.assertEqual(payload.zip_code, "01310100")

    def test_max_users_must_be_positive(self) -> None:
        with self.assertRaises(ValidationError):
            CompanyCreate(name="Acme", cnpj="11222333000181", max_users=0)


class CompanyServiceTests(DatabaseTestCase):
    def test_create_applies_default_capacity(self) -> None:
        company = create_company(self.db, CompanyCreate(name="Acme", cnpj="11222333000181"))
        self.assertEqual(company.max_users, 50)
        self.assertTrue(company.active)

    def test_duplicate_cnpj_and_email_are_rejected(self) -> None:
        create_company(self.db, CompanyCreate(name="Acme", cnpj="11222333000181", email="hr@acme.com"))
        with self.assertRaises(ValidationFailure) as ctx:
            create_company(self.db, CompanyCreate(name="Acme 2", cnpj="11222333000181", email="HR@acme.com"))
        self.assertEqual(set(ctx.exception.errors or {}), {"cnpj", "email"})

    def test_update_ignores_own_values(self) -> None:
        company = create_company(self.db, CompanyCreate(name="Acme", cnpj="11222333000181"))
        updated = update_company(self.db, company.id, CompanyUpdate(cnpj="11222333000181", city="Campinas"))
        self.assertEqual(updated.city, "Campinas")

    def test_company_with_users_cannot_be_deleted(self) -> None:
        company = self.make_company()
        self.make_user(company=company, email="ana@example.com")

        with self.assertRaises(ValidationFailure) as ctx:
            delete_company(self.db, company.id)

        self.assertEqual(ctx.exception.code, "COMPANY_HAS_USERS")
        self.assertIsNotNone(self.db.get(Company, company.id))

    def test_empty_company_can_be_deleted(self) -> None:
        company = self.make_company()
        delete_company(self.db, company.id)
        self.assertIsNone(self.db.get(Company, company.id))


class UserServiceTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.company = self.make_company(max_users=2)
        self.admin = self.make_user(company=self.company, email="admin@example.com", role=UserRole.ADMIN)
        self.master = self.make_user(company=None, email="root@example.com", role=UserRole.MASTER)

    def test_admin_creates_user_in_own_company(self) -> None:
        other = self.make_company(name="Other", cnpj="99888777000166")
        user = create_user(
            self.db,
            self.admin,
            UserCreate(company_id=other.id, name="Ana Lima", email="Ana@Example.com", password="longpassword"),
        )
        self.assertEqual(user.company_id, self.company.id)
        self.assertEqual(user.email, "ana@example.com")
        self.assertEqual(user.daily_work_hours, 8)
        self.assertEqual(user.lunch_duration, 60)
        self.assertTrue(verify_password("longpassword", user.password_hash))

    def test_capacity_is_enforced(self) -> None:
        create_user(
            self.db,
            self.admin,
            UserCreate(name="Ana Lima", email="ana@example.com", password="longpassword"),
        )
        with self.assertRaises(ValidationFailure) as ctx:
            create_user(
                self.db,
                self.admin,
                UserCreate(name="Bia Souza", email="bia@example.com", password="longpassword"),
            )
        self.assertEqual(ctx.exception.code, "USER_LIMIT_EXCEEDED")

    def test_email_must_be_unique(self) -> None:
        with self.assertRaises(ValidationFailure):
            create_user(
                self.db,
                self.master,
                UserCreate(
                    company_id=self.company.id,
                    name="Admin Two",
                    email="ADMIN@example.com",
                    password="longpassword",
                ),
            )

    def test_admin_cannot_create_master(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            create_user(
                self.db,
                self.admin,
                UserCreate(name="Root Two", email="root2@example.com", password="longpassword", role=UserRole.MASTER),
            )
        self.assertEqual(ctx.exception.status_code, 403)

    def test_master_user_has_no_company(self) -> None:
        user = create_user(
            self.db,
            self.master,
            UserCreate(
                company_id=self.company.id,
                name="Root Two",
                email="root2@example.com",
                password="longpassword",
                role=UserRole.MASTER,
            ),
        )
        self.assertIsNone(user.company_id)

    def test_register_requires_active_company(self) -> None:
        self.company.active = False
        self.db.commit()
        with self.assertRaises(ValidationFailure):
            register_user(
                self.db,
                RegisterRequest(company_id=self.company.id, name="Ana Lima", email="ana@example.com", password=PASSWORD),
            )

    def test_update_rehashes_password(self) -> None:
        employee = self.make_user(company=self.company, email="ana@example.com")
        updated = update_user(self.db, self.admin, employee.id, UserUpdate(password="another-secret"))
        self.assertTrue(verify_password("another-secret", updated.password_hash))

    def test_demoting_master_requires_company(self) -> None:
        other_master = self.make_user(company=None, email="root2@example.com", role=UserRole.MASTER)

        with self.assertRaises(ValidationFailure) as ctx:
            update_user(self.db, self.master, other_master.id, UserUpdate(role=UserRole.ADMIN))

        self.assertIn("company_id", ctx.exception.errors or {})
        stored = self.db.get(User, other_master.id, populate_existing=True)
        self.assertEqual(stored.role, UserRole.MASTER)
        self.assertIsNone(stored.company_id)

    def test_demoted_master_joins_given_company(self) -> None:
        other_master = self.make_user(company=None, email="root2@example.com", role=UserRole.MASTER)

        updated = update_user(
            self.db,
            self.master,
            other_master.id,
            UserUpdate(role=UserRole.ADMIN, company_id=self.company.id),
        )

        self.assertEqual(updated.role, UserRole.ADMIN)
        self.assertEqual(updated.company_id, self.company.id)

    def test_demotion_respects_company_capacity(self) -> None:
        self.make_user(company=self.company, email="ana@example.com")
        other_master = self.make_user(company=None, email="root2@example.com", role=UserRole.MASTER)

        with self.assertRaises(ValidationFailure) as ctx:
            update_user(
                self.db,
                self.master,
                other_master.id,
                UserUpdate(role=UserRole.USER, company_id=self.company.id),
            )

        self.assertEqual(ctx.exception.code, "USER_LIMIT_EXCEEDED")

    def test_promotion_to_master_clears_company(self) -> None:
        employee = self.make_user(company=self.company, email="ana@example.com")

        updated = update_user(self.db, self.master, employee.id, UserUpdate(role=UserRole.MASTER))

        self.assertEqual(updated.role, UserRole.MASTER)
        self.assertIsNone(updated.company_id)

    def test_admin_cannot_move_user_to_another_company(self) -> None:
        other = self.make_company(name="Other", cnpj="99888777000166")
        employee = self.make_user(company=self.company, email="ana@example.com")

        with self.assertRaises(ApiError) as ctx:
            update_user(self.db, self.admin, employee.id, UserUpdate(company_id=other.id))

        self.assertEqual(ctx.exception.status_code, 403)
        self.assertEqual(self.db.get(User, employee.id, populate_existing=True).company_id, self.company.id)

    def test_admin_scope_on_listing_and_delete(self) -> None:
        other = self.make_company(name="Other", cnpj="99888777000166")
        outsider = self.make_user(company=other, email="x@other.com")

        page = list_users(self.db, self.admin)
        self.assertEqual({user.email for user in page.items}, {"admin@example.com"})
        with self.assertRaises(ApiError):
            delete_user(self.db, self.admin, outsider.id)

        delete_user(self.db, self.master, outsider.id)
        self.assertIsNone(self.db.get(User, outsider.id))

    def test_cannot_delete_self(self) -> None:
        with self.assertRaises(ValidationFailure):
            delete_user(self.db, self.admin, self.admin.id)


if __name__ == "__main__":
    unittest.main()
