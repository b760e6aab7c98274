from __future__ import annotations

import unittest

from db_support import TEST_PASSWORD, make_session_factory, make_user, utc
from sqlalchemy import func, select

from devsync.errors import ApiError
from devsync.models import AccountStatus, AttendanceDay, Task, User, UserRole
from devsync.schemas import (
    AttendanceMarkRequest,
    EmployeeCreate,
    EmployeeUpdate,
    PasswordChangeRequest,
    SignupRequest,
    TaskCreate,
    WorkSchedule,
)
from devsync.services.attendance import mark_attendance
from devsync.services.employees import (
    authenticate,
    change_password,
    create_employee,
    delete_employee,
    get_employee_detail,
    list_employees,
    signup,
    update_employee,
)
from devsync.services.tasks import create_task


class AccountTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()

    def tearDown(self) -> None:
        self.db.close()

    def test_signup_normalizes_email_and_forces_employee_role(self) -> None:
        user = signup(
            self.db,
            SignupRequest(name="Ada", email="Ada.Lovelace@Example.com", password=TEST_PASSWORD),
        )

        self.assertEqual(user.email, "ada.lovelace@example.com")
        self.assertEqual(user.role, UserRole.EMPLOYEE)
        self.assertEqual(user.department, "General")
        self.assertNotEqual(user.password_hash, TEST_PASSWORD)

    def test_signup_rejects_duplicate_email_case_insensitively(self) -> None:
        make_user(self.db, name="Ada", email="ada@example.com")

        with self.assertRaises(ApiError) as ctx:
            signup(self.db, SignupRequest(name="Ada 2", email="ADA@example.com", password=TEST_PASSWORD))

        self.assertEqual(ctx.exception.code, "EMAIL_TAKEN")

    def test_authenticate(self) -> None:
        make_user(self.db, name="Ada", email="ada@example.com")

        user = authenticate(self.db, email="ADA@example.com", password=TEST_PASSWORD)
        self.assertIsNotNone(user.last_login_at)

        with self.assertRaises(ApiError) as ctx:
            authenticate(self.db, email="ada@example.com", password="wrong-password")
        self.assertEqual(ctx.exception.code, "INVALID_CREDENTIALS")
        self.assertEqual(ctx.exception.status_code, 401)

    def test_inactive_account_cannot_log_in(self) -> None:
        make_user(self.db, name="Ada", email="ada@example.com", status=AccountStatus.INACTIVE)

        with self.assertRaises(ApiError) as ctx:
            authenticate(self.db, email="ada@example.com", password=TEST_PASSWORD)

        self.assertEqual(ctx.exception.code, "ACCOUNT_INACTIVE")
        self.assertEqual(ctx.exception.status_code, 403)

    def test_change_password_checks_current_password(self) -> None:
        user = make_user(self.db, name="Ada", email="ada@example.com")

        with self.assertRaises(ApiError):
            change_password(
                self.db,
                user=user,
                payload=PasswordChangeRequest(current_password="nope", new_password="another-secret"),
            )
        change_password(
            self.db,
            user=user,
            payload=PasswordChangeRequest(current_password=TEST_PASSWORD, new_password="another-secret"),
        )

        self.assertEqual(authenticate(self.db, email="ada@example.com", password="another-secret").id, user.id)


class EmployeeManagementTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.admin = make_user(self.db, name="Root", email="root@example.com", role=UserRole.ADMIN)

    def tearDown(self) -> None:
        self.db.close()

    def test_create_with_schedule_and_manager(self) -> None:
        user = create_employee(
            self.db,
            EmployeeCreate(
                name="Ada",
                email="ada@example.com",
                password=TEST_PASSWORD,
                department="Research",
                manager_id=self.admin.id,
                work_schedule=WorkSchedule(start_time="08:00", end_time="16:00", work_days=["Monday", "Friday"]),
                permissions=["view_reports"],
            ),
        )

        self.assertEqual(user.manager_id, self.admin.id)
        self.assertEqual(user.work_start_time, "08:00")
        self.assertEqual(user.work_days, ["Monday", "Friday"])
        self.assertEqual(user.permissions, ["view_reports"])

    def test_unknown_manager(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            create_employee(
                self.db,
                EmployeeCreate(name="Ada", email="ada@example.com", password=TEST_PASSWORD, manager_id=404),
            )

        self.assertEqual(ctx.exception.code, "MANAGER_NOT_FOUND")

    def test_employee_cannot_manage_themselves(self) -> None:
        user = make_user(self.db, name="Ada", email="ada@example.com")

        with self.assertRaises(ApiError) as ctx:
            update_employee(self.db, user.id, EmployeeUpdate(manager_id=user.id))

        self.assertEqual(ctx.exception.code, "INVALID_MANAGER")

    def test_list_filters_and_paginates(self) -> None:
        make_user(self.db, name="Ada", email="ada@example.com", department="Research")
        make_user(self.db, name="Linus", email="linus@example.com", department="Kernel")
        make_user(self.db, name="Grace", email="grace@example.com", role=UserRole.HR)

        rows, total = list_employees(self.db, role=UserRole.EMPLOYEE, limit=1)
        searched, _ = list_employees(self.db, search="LINUS")

        self.assertEqual(total, 2)
        self.assertEqual(len(rows), 1)
        self.assertEqual([row.email for row in searched], ["linus@example.com"])

    def test_last_admin_cannot_be_demoted_or_deleted(self) -> None:
        with self.assertRaises(ApiError) as demote:
            update_employee(self.db, self.admin.id, EmployeeUpdate(role=UserRole.HR))
        with self.assertRaises(ApiError) as remove:
            delete_employee(self.db, self.admin.id)

        self.assertEqual(demote.exception.code, "LAST_ADMIN")
        self.assertEqual(remove.exception.code, "LAST_ADMIN")

    def test_second_admin_can_be_demoted(self) -> None:
        other = make_user(self.db, name="Root 2", email="root2@example.com", role=UserRole.ADMIN)

        updated = update_employee(self.db, other.id, EmployeeUpdate(role=UserRole.EMPLOYEE))

        self.assertEqual(updated.role, UserRole.EMPLOYEE)

    def test_delete_removes_attendance_and_keeps_assigned_tasks(self) -> None:
        ada = make_user(self.db, name="Ada", email="ada@example.com")
        report = make_user(self.db, name="Linus", email="linus@example.com")
        update_employee(self.db, report.id, EmployeeUpdate(manager_id=ada.id))
        mark_attendance(self.db, user=ada, payload=AttendanceMarkRequest(type="checkin"), now=utc(2026, 3, 2, 8, 0))
        task = create_task(
            self.db,
            actor=self.admin,
            payload=TaskCreate(title="Own", description="Owned task", assigned_to=ada.id, due_date=utc(2026, 3, 9)),
            now=utc(2026, 3, 2),
        )

        delete_employee(self.db, ada.id)

        self.assertIsNone(self.db.get(User, ada.id))
        self.assertEqual(self.db.scalar(select(func.count(AttendanceDay.id))), 0)
        self.db.expire_all()
        kept = self.db.get(Task, task.id)
        self.assertIsNotNone(kept)
        self.assertIsNone(kept.assignee_id)
        self.assertEqual(kept.assigner_id, self.admin.id)
        self.assertIsNone(self.db.get(User, report.id).manager_id)

    def test_detail_includes_recent_attendance(self) -> None:
        ada = make_user(self.db, name="Ada", email="ada@example.com")
        mark_attendance(self.db, user=ada, payload=AttendanceMarkRequest(type="checkin"), now=utc(2026, 3, 2, 8, 0))

        detail, recent = get_employee_detail(self.db, ada.id, now=utc(2026, 3, 3))

        self.assertEqual(detail.total_attendance_days, 1)
        self.assertEqual([day.date_key for day in recent], ["2026-03-02"])

    def test_missing_employee(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            get_employee_detail(self.db, 999)

        self.assertEqual(ctx.exception.code, "EMPLOYEE_NOT_FOUND")
        self.assertEqual(ctx.exception.status_code, 404)


if __name__ == "__main__":
    unittest.main()
