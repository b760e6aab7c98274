from __future__ import annotations

import unittest

from devsync.errors import ApiError
from devsync.models import Task, User, UserRole
from devsync.services.policy import Operation, authorize, can, require


def _user(user_id: int, role: UserRole) -> User:
    return User(id=user_id, name=f"user-{user_id}", email=f"user{user_id}@example.com", role=role)


class PolicyTests(unittest.TestCase):
    def setUp(self) -> None:
        self.admin = _user(1, UserRole.ADMIN)
        self.hr = _user(2, UserRole.HR)
        self.assignee = _user(3, UserRole.EMPLOYEE)
        self.outsider = _user(4, UserRole.EMPLOYEE)
        self.task = Task(id=10, assignee_id=self.assignee.id, assigner_id=self.hr.id)

    def test_staff_operations(self) -> None:
        for operation in (
            Operation.EMPLOYEE_LIST,
            Operation.EMPLOYEE_CREATE,
            Operation.TASK_CREATE,
            Operation.TASK_STATS,
            Operation.REPORT_READ,
            Operation.CORRECTION_REVIEW,
        ):
            with self.subTest(operation=operation):
                self.assertTrue(can(self.admin, operation))
                self.assertTrue(can(self.hr, operation))
                self.assertFalse(can(self.assignee, operation))

    def test_admin_only_operations(self) -> None:
        for operation in (Operation.EMPLOYEE_DELETE, Operation.TASK_DELETE):
            with self.subTest(operation=operation):
                self.assertTrue(can(self.admin, operation, self.task))
                self.assertFalse(can(self.hr, operation, self.task))
                self.assertFalse(can(self.assignee, operation, self.task))

    def test_task_relations(self) -> None:
        self.assertTrue(can(self.assignee, Operation.TASK_READ, self.task))
        self.assertTrue(can(self.assignee, Operation.TASK_UPDATE, self.task))
        self.assertFalse(can(self.assignee, Operation.TASK_UPDATE_ALL_FIELDS, self.task))
        self.assertFalse(can(self.outsider, Operation.TASK_READ, self.task))
        self.assertFalse(can(self.outsider, Operation.TASK_COMMENT, self.task))

    def test_time_tracking_is_assignee_only(self) -> None:
        self.assertTrue(can(self.assignee, Operation.TASK_TRACK_TIME, self.task))
        self.assertFalse(can(self.admin, Operation.TASK_TRACK_TIME, self.task))

        with self.assertRaises(ApiError) as ctx:
            authorize(self.hr, Operation.TASK_TRACK_TIME, self.task)
        self.assertEqual(ctx.exception.status_code, 403)
        self.assertEqual(ctx.exception.message, "You can only track time for your own tasks")

    def test_require_refuses_resource_scoped_operations(self) -> None:
        with self.assertRaises(ValueError):
            require(Operation.TASK_READ)


if __name__ == "__main__":
    unittest.main()
