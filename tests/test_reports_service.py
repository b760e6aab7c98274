from __future__ import annotations

import unittest
from datetime import date
from io import BytesIO

from db_support import make_session_factory, make_user, utc
from openpyxl import load_workbook

from devsync.errors import ApiError
from devsync.models import TaskStatus, UserRole
from devsync.schemas import AttendanceMarkRequest, ProductivityInput, TaskCreate, TaskUpdate
from devsync.services.attendance import mark_attendance
from devsync.services.exports import DETAIL_HEADERS, SUMMARY_HEADERS, build_attendance_report_xlsx_bytes
from devsync.services.reports import (
    ReportWindow,
    attendance_detail_rows,
    attendance_summary_rows,
    build_dashboard,
    build_employee_report,
    build_productivity_report,
    rank_performers,
    resolve_window,
)
from devsync.services.tasks import create_task, update_task


class ReportServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.admin = make_user(self.db, name="Root", email="root@example.com", role=UserRole.ADMIN)
        self.ada = make_user(self.db, name="Ada", email="ada@example.com", department="Research")
        self.linus = make_user(self.db, name="Linus", email="linus@example.com", department="Kernel")

        self._work_day(self.ada, 2, in_hour=8, out_hour=16, score=8)
        self._work_day(self.linus, 2, in_hour=10, out_hour=14, score=None)
        self._work_day(self.ada, 3, in_hour=9, out_hour=17, score=6)

        task = create_task(
            self.db,
            actor=self.admin,
            payload=TaskCreate(title="Paper", description="Write it", assigned_to=self.ada.id, due_date=utc(2026, 3, 20)),
            now=utc(2026, 3, 1),
        )
        update_task(
            self.db,
            actor=self.ada,
            task_id=task.id,
            payload=TaskUpdate(status=TaskStatus.COMPLETED),
            now=utc(2026, 3, 3, 12, 0),
        )

    def tearDown(self) -> None:
        self.db.close()

    def _work_day(self, user, day: int, *, in_hour: int, out_hour: int, score: int | None) -> None:  # type: ignore[no-untyped-def]
        productivity = ProductivityInput(score=score) if score is not None else None
        mark_attendance(
            self.db,
            user=user,
            payload=AttendanceMarkRequest(type="checkin", productivity=productivity),
            now=utc(2026, 3, day, in_hour, 0),
        )
        mark_attendance(
            self.db,
            user=user,
            payload=AttendanceMarkRequest(type="checkout"),
            now=utc(2026, 3, day, out_hour, 0),
        )

    def test_resolve_window_rejects_inverted_range(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            resolve_window(date(2026, 3, 5), date(2026, 3, 1))

        self.assertEqual(ctx.exception.code, "INVALID_DATE_RANGE")

    def test_resolve_window_defaults_to_last_thirty_days(self) -> None:
        window = resolve_window(None, None, now=utc(2026, 3, 31, 12, 0))

        self.assertEqual(window.start_key, "2026-03-01")
        self.assertEqual(window.end_key, "2026-03-31")

    def test_summary_rows(self) -> None:
        rows = attendance_summary_rows(self.db, ReportWindow(date(2026, 3, 1), date(2026, 3, 31)))
        by_email = {row.user_email: row for row in rows}

        self.assertEqual(by_email["ada@example.com"].total_days, 2)
        self.assertEqual(by_email["ada@example.com"].total_hours, 16.0)
        self.assertEqual(by_email["ada@example.com"].avg_productivity, 7.0)
        self.assertEqual(by_email["ada@example.com"].late_arrivals, 1)
        self.assertEqual(by_email["linus@example.com"].late_arrivals, 1)

    def test_detail_rows_filter_by_department(self) -> None:
        rows = attendance_detail_rows(
            self.db,
            ReportWindow(date(2026, 3, 1), date(2026, 3, 31)),
            department="Kernel",
        )

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].user.email, "linus@example.com")
        self.assertEqual(rows[0].total_hours, 4.0)

    def test_rank_performers(self) -> None:
        performers = rank_performers(self.db, since=utc(2026, 3, 1), until=utc(2026, 3, 31), limit=5)

        self.assertEqual([item.email for item in performers], ["ada@example.com", "linus@example.com"])
        # 10 x 1 completed + avg productivity 7 + 0.5 x 16 hours
        self.assertEqual(performers[0].performance_score, 25.0)
        self.assertEqual(performers[1].performance_score, 2.0)

    def test_dashboard(self) -> None:
        dashboard = build_dashboard(self.db, now=utc(2026, 3, 3, 18, 0))

        self.assertEqual(dashboard.total_employees, 2)
        self.assertEqual(dashboard.today_attendance, 1)
        self.assertEqual(dashboard.attendance_stats.absent, 1)
        self.assertEqual(dashboard.task_stats["completed"], 1)
        self.assertEqual([item.department for item in dashboard.department_stats], ["Kernel", "Research"])

    def test_employee_report(self) -> None:
        report = build_employee_report(
            self.db,
            self.ada.id,
            start=date(2026, 3, 1),
            end=date(2026, 3, 31),
            now=utc(2026, 3, 31),
        )

        self.assertEqual(report.attendance.total_days, 2)
        self.assertEqual(report.attendance.late_arrivals, 1)
        self.assertEqual(report.attendance.early_departures, 1)
        self.assertEqual(report.tasks.completed_tasks, 1)

    def test_productivity_report(self) -> None:
        report = build_productivity_report(
            self.db,
            start=date(2026, 3, 1),
            end=date(2026, 3, 31),
            now=utc(2026, 3, 31),
        )

        self.assertEqual([item.department for item in report.department_productivity], ["Research"])
        self.assertEqual(report.department_productivity[0].avg_productivity, 7.0)
        self.assertEqual([item.date for item in report.daily_trends], ["2026-03-02", "2026-03-03"])

    def test_xlsx_export(self) -> None:
        window = ReportWindow(date(2026, 3, 1), date(2026, 3, 31))

        for report_type, headers in (("summary", SUMMARY_HEADERS), ("detailed", DETAIL_HEADERS)):
            with self.subTest(report_type=report_type):
                payload = build_attendance_report_xlsx_bytes(self.db, window=window, report_type=report_type)
                self.assertTrue(payload.startswith(b"PK"))

                sheet = load_workbook(BytesIO(payload)).active
                values = [cell.value for row in sheet.iter_rows() for cell in row]
                for header in headers:
                    self.assertIn(header, values)
                self.assertIn("ada@example.com", values)


if __name__ == "__main__":
    unittest.main()
