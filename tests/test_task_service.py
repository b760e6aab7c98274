from __future__ import annotations

import unittest
from datetime import timedelta
from unittest.mock import patch
from zoneinfo import ZoneInfo

from db_support import make_session_factory, make_user, utc

from devsync.errors import ApiError
from devsync.models import RecurrencePattern, TaskCategory, TaskPriority, TaskStatus, UserRole
from devsync.schemas import TaskCreate, TaskUpdate, TimeEntryCreate
from devsync.services.tasks import (
    add_comment,
    add_months,
    add_time_entry,
    create_task,
    delete_task,
    effective_status,
    get_task,
    list_tasks,
    next_due_date,
    task_stats,
    update_task,
)


class TaskRuleTests(unittest.TestCase):
    def test_effective_status_only_flags_open_tasks(self) -> None:
        due = utc(2026, 3, 1, 12, 0)
        later = utc(2026, 3, 2, 12, 0)

        self.assertEqual(effective_status(TaskStatus.PENDING, due, later), TaskStatus.OVERDUE)
        self.assertEqual(effective_status(TaskStatus.IN_PROGRESS, due, later), TaskStatus.OVERDUE)
        self.assertEqual(effective_status(TaskStatus.COMPLETED, due, later), TaskStatus.COMPLETED)
        self.assertEqual(effective_status(TaskStatus.CANCELLED, due, later), TaskStatus.CANCELLED)
        self.assertEqual(effective_status(TaskStatus.PENDING, later, due), TaskStatus.PENDING)

    def test_add_months_clamps_to_month_end(self) -> None:
        self.assertEqual(add_months(utc(2026, 1, 31), 1), utc(2026, 2, 28))
        self.assertEqual(add_months(utc(2028, 1, 31), 1), utc(2028, 2, 29))
        self.assertEqual(add_months(utc(2026, 11, 15), 3), utc(2027, 2, 15))
        self.assertEqual(add_months(utc(2026, 3, 31), -1), utc(2026, 2, 28))

    def test_next_due_date_per_pattern(self) -> None:
        due = utc(2026, 1, 31, 17, 0)

        self.assertEqual(next_due_date(due, RecurrencePattern.DAILY), utc(2026, 2, 1, 17, 0))
        self.assertEqual(next_due_date(due, RecurrencePattern.WEEKLY), utc(2026, 2, 7, 17, 0))
        self.assertEqual(next_due_date(due, RecurrencePattern.MONTHLY), utc(2026, 2, 28, 17, 0))
        self.assertEqual(next_due_date(due, RecurrencePattern.YEARLY), utc(2027, 1, 31, 17, 0))


class TaskServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.admin = make_user(self.db, name="Root", email="root@example.com", role=UserRole.ADMIN)
        self.hr = make_user(self.db, name="Grace", email="grace@example.com", role=UserRole.HR)
        self.ada = make_user(self.db, name="Ada", email="ada@example.com")
        self.linus = make_user(self.db, name="Linus", email="linus@example.com")

    def tearDown(self) -> None:
        self.db.close()

    def _create(self, **overrides):  # type: ignore[no-untyped-def]
        data = {
            "title": "Ship release",
            "description": "Cut and publish the release build",
            "assigned_to": self.ada.id,
            "due_date": utc(2026, 3, 10, 17, 0),
            "priority": TaskPriority.HIGH,
            "category": TaskCategory.DEVELOPMENT,
            "tags": ["release", " backend ", ""],
        }
        data.update(overrides)
        return create_task(self.db, actor=self.hr, payload=TaskCreate(**data), now=utc(2026, 3, 1, 9, 0))

    def test_create_sets_defaults(self) -> None:
        task = self._create()

        self.assertEqual(task.status, TaskStatus.PENDING)
        self.assertEqual(task.progress, 0)
        self.assertEqual(task.actual_hours, 0.0)
        self.assertEqual(task.assigner_id, self.hr.id)
        self.assertEqual(task.tags, ["release", "backend"])

    def test_employee_cannot_create(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            create_task(
                self.db,
                actor=self.ada,
                payload=TaskCreate(
                    title="x",
                    description="y",
                    assigned_to=self.ada.id,
                    due_date=utc(2026, 3, 10),
                ),
            )

        self.assertEqual(ctx.exception.code, "ACCESS_DENIED")
        self.assertEqual(ctx.exception.status_code, 403)

    def test_unknown_assignee(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            self._create(assigned_to=999)

        self.assertEqual(ctx.exception.code, "ASSIGNEE_NOT_FOUND")

    def test_only_participants_can_read(self) -> None:
        task = self._create()

        self.assertEqual(get_task(self.db, actor=self.ada, task_id=task.id, now=utc(2026, 3, 2)).id, task.id)
        self.assertEqual(get_task(self.db, actor=self.admin, task_id=task.id, now=utc(2026, 3, 2)).id, task.id)
        with self.assertRaises(ApiError) as ctx:
            get_task(self.db, actor=self.linus, task_id=task.id, now=utc(2026, 3, 2))

        self.assertEqual(ctx.exception.code, "ACCESS_DENIED")

    def test_completion_sets_progress_and_timestamp(self) -> None:
        task = self._create()

        updated = update_task(
            self.db,
            actor=self.ada,
            task_id=task.id,
            payload=TaskUpdate(status=TaskStatus.COMPLETED),
            now=utc(2026, 3, 5, 11, 0),
        )

        self.assertEqual(updated.status, TaskStatus.COMPLETED)
        self.assertEqual(updated.progress, 100)
        self.assertEqual(updated.completed_at, utc(2026, 3, 5, 11, 0))

    def test_assignee_updates_are_limited_to_progress_fields(self) -> None:
        task = self._create()

        updated = update_task(
            self.db,
            actor=self.ada,
            task_id=task.id,
            payload=TaskUpdate(title="Renamed", priority=TaskPriority.LOW, progress=40),
            now=utc(2026, 3, 2),
        )

        self.assertEqual(updated.title, "Ship release")
        self.assertEqual(updated.priority, TaskPriority.HIGH)
        self.assertEqual(updated.progress, 40)

    def test_other_employee_cannot_update(self) -> None:
        task = self._create()

        with self.assertRaises(ApiError) as ctx:
            update_task(self.db, actor=self.linus, task_id=task.id, payload=TaskUpdate(progress=10))

        self.assertEqual(ctx.exception.code, "ACCESS_DENIED")

    def test_completing_recurring_task_schedules_next_due_date(self) -> None:
        task = self._create(
            due_date=utc(2026, 3, 31, 17, 0),
            is_recurring=True,
            recurring_pattern=RecurrencePattern.MONTHLY,
        )

        updated = update_task(
            self.db,
            actor=self.hr,
            task_id=task.id,
            payload=TaskUpdate(status=TaskStatus.COMPLETED),
            now=utc(2026, 3, 30),
        )

        self.assertEqual(updated.next_due_date, utc(2026, 4, 30, 17, 0))

    def test_recurring_without_pattern_is_rejected(self) -> None:
        task = self._create()

        with self.assertRaises(ApiError) as ctx:
            update_task(self.db, actor=self.hr, task_id=task.id, payload=TaskUpdate(is_recurring=True))

        self.assertEqual(ctx.exception.code, "INVALID_RECURRENCE")

    def test_time_entries_accumulate_actual_hours(self) -> None:
        task = self._create()

        add_time_entry(
            self.db,
            actor=self.ada,
            task_id=task.id,
            payload=TimeEntryCreate(start_time=utc(2026, 3, 2, 9, 0), end_time=utc(2026, 3, 2, 9, 30)),
        )
        updated = add_time_entry(
            self.db,
            actor=self.ada,
            task_id=task.id,
            payload=TimeEntryCreate(start_time=utc(2026, 3, 2, 13, 0), end_time=utc(2026, 3, 2, 14, 30)),
        )

        self.assertEqual([entry.duration_minutes for entry in updated.time_entries], [30, 90])
        self.assertEqual(updated.actual_hours, 2.0)

    def test_half_minutes_round_up(self) -> None:
        task = self._create()
        start = utc(2026, 3, 2, 9, 0)

        short = add_time_entry(
            self.db,
            actor=self.ada,
            task_id=task.id,
            payload=TimeEntryCreate(start_time=start, end_time=start + timedelta(seconds=30)),
        )
        self.assertEqual([entry.duration_minutes for entry in short.time_entries], [1])
        self.assertEqual(short.actual_hours, 0.02)

        updated = add_time_entry(
            self.db,
            actor=self.ada,
            task_id=task.id,
            payload=TimeEntryCreate(
                start_time=utc(2026, 3, 2, 10, 0),
                end_time=utc(2026, 3, 2, 10, 0) + timedelta(seconds=150),
            ),
        )
        self.assertEqual([entry.duration_minutes for entry in updated.time_entries], [1, 3])

    def test_time_entry_date_follows_attendance_timezone(self) -> None:
        task = self._create()

        with patch("devsync.services.attendance_calc.attendance_timezone", return_value=ZoneInfo("Europe/Istanbul")):
            updated = add_time_entry(
                self.db,
                actor=self.ada,
                task_id=task.id,
                payload=TimeEntryCreate(start_time=utc(2026, 3, 2, 22, 30), end_time=utc(2026, 3, 2, 23, 30)),
            )

        self.assertEqual([entry.date_key for entry in updated.time_entries], ["2026-03-03"])

    def test_zero_length_time_entry_is_rejected(self) -> None:
        task = self._create()

        with self.assertRaises(ApiError) as ctx:
            add_time_entry(
                self.db,
                actor=self.ada,
                task_id=task.id,
                payload=TimeEntryCreate(start_time=utc(2026, 3, 2, 9, 0), end_time=utc(2026, 3, 2, 9, 0)),
            )

        self.assertEqual(ctx.exception.code, "INVALID_DURATION")

    def test_only_assignee_tracks_time(self) -> None:
        task = self._create()

        with self.assertRaises(ApiError) as ctx:
            add_time_entry(
                self.db,
                actor=self.admin,
                task_id=task.id,
                payload=TimeEntryCreate(start_time=utc(2026, 3, 2, 9, 0), end_time=utc(2026, 3, 2, 10, 0)),
            )

        self.assertEqual(ctx.exception.code, "ACCESS_DENIED")
        self.assertEqual(ctx.exception.message, "You can only track time for your own tasks")

    def test_overdue_is_applied_when_read(self) -> None:
        task = self._create(due_date=utc(2026, 3, 3, 17, 0))

        before = get_task(self.db, actor=self.ada, task_id=task.id, now=utc(2026, 3, 3, 12, 0))
        self.assertEqual(before.status, TaskStatus.PENDING)

        after = get_task(self.db, actor=self.ada, task_id=task.id, now=utc(2026, 3, 4, 9, 0))
        self.assertEqual(after.status, TaskStatus.OVERDUE)

    def test_list_scopes_employees_to_their_tasks(self) -> None:
        self._create()
        self._create(title="Review docs", assigned_to=self.linus.id, category=TaskCategory.DOCUMENTATION)

        own, own_total = list_tasks(self.db, actor=self.ada, now=utc(2026, 3, 2))
        everything, all_total = list_tasks(self.db, actor=self.hr, now=utc(2026, 3, 2))
        searched, _ = list_tasks(self.db, actor=self.hr, search="docs", now=utc(2026, 3, 2))

        self.assertEqual(own_total, 1)
        self.assertEqual(own[0].assignee_id, self.ada.id)
        self.assertEqual(all_total, 2)
        self.assertEqual(len(everything), 2)
        self.assertEqual([task.title for task in searched], ["Review docs"])

    def test_list_rejects_unknown_status(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            list_tasks(self.db, actor=self.hr, status="pending,sleeping")

        self.assertEqual(ctx.exception.code, "INVALID_STATUS")

    def test_comments_keep_author(self) -> None:
        task = self._create()

        updated = add_comment(self.db, actor=self.ada, task_id=task.id, body="  On it  ", now=utc(2026, 3, 2))

        self.assertEqual(len(updated.comments), 1)
        self.assertEqual(updated.comments[0].body, "On it")
        self.assertEqual(updated.comments[0].author.id, self.ada.id)

    def test_only_admin_deletes(self) -> None:
        task = self._create()

        with self.assertRaises(ApiError):
            delete_task(self.db, actor=self.hr, task_id=task.id)
        delete_task(self.db, actor=self.admin, task_id=task.id)

        with self.assertRaises(ApiError) as ctx:
            get_task(self.db, actor=self.admin, task_id=task.id)
        self.assertEqual(ctx.exception.code, "TASK_NOT_FOUND")

    def test_stats_overview(self) -> None:
        first = self._create(estimated_hours=4)
        self._create(title="Overdue", due_date=utc(2026, 3, 2), estimated_hours=2)
        update_task(
            self.db,
            actor=self.ada,
            task_id=first.id,
            payload=TaskUpdate(status=TaskStatus.COMPLETED, actual_hours=3),
            now=utc(2026, 3, 1, 10, 0),
        )

        stats, priority_stats, category_stats = task_stats(self.db, now=utc(2026, 3, 5))

        self.assertEqual(stats.total_tasks, 2)
        self.assertEqual(stats.completed_tasks, 1)
        self.assertEqual(stats.overdue_tasks, 1)
        self.assertEqual(stats.avg_estimated_hours, 3.0)
        self.assertEqual(stats.total_actual_hours, 3.0)
        self.assertEqual([(item.priority, item.count) for item in priority_stats], [(TaskPriority.HIGH, 2)])
        self.assertEqual(category_stats[0].category, TaskCategory.DEVELOPMENT)
        self.assertEqual(category_stats[0].avg_hours, 1.5)


if __name__ == "__main__":
    unittest.main()
