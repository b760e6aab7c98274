from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from db_support import TEST_PASSWORD, auth_headers, make_session_factory, make_user, override_get_db
from fastapi.testclient import TestClient

from devsync.db import get_db
from devsync.main import app
from devsync.models import UserRole
from devsync.routers.admin import XLSX_MEDIA_TYPE
from devsync.security import login_throttle


class ApiEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory()
        app.dependency_overrides[get_db] = override_get_db(self.session_factory)
        login_throttle.reset()
        self.client = TestClient(app)

        with self.session_factory() as db:
            self.admin = make_user(db, name="Root", email="root@example.com", role=UserRole.ADMIN)
            self.hr = make_user(db, name="Grace", email="grace@example.com", role=UserRole.HR)
            self.employee = make_user(db, name="Ada", email="ada@example.com")

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_health_reports_schema_guard_placeholder(self) -> None:
        response = self.client.get("/api/health")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertIn("SCHEMA_GUARD_NOT_RUN", body["schema_guard"]["issues"])

    def test_unknown_route_uses_error_envelope(self) -> None:
        response = self.client.get("/api/nope", headers={"X-Request-Id": "req-123"})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.headers["X-Request-Id"], "req-123")
        self.assertEqual(
            response.json(),
            {"success": False, "message": "Route not found", "request_id": "req-123"},
        )

    def test_signup_then_me(self) -> None:
        signup = self.client.post(
            "/api/auth/signup",
            json={"name": "Linus", "email": "Linus@Example.com", "password": TEST_PASSWORD, "role": "admin"},
        )

        self.assertEqual(signup.status_code, 201)
        token = signup.json()["access_token"]
        self.assertEqual(signup.json()["user"]["role"], "employee")

        me = TestClient(app).get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["user"]["email"], "linus@example.com")

    def test_login_failure_and_validation(self) -> None:
        failed = self.client.post("/api/auth/login", json={"email": "ada@example.com", "password": "wrong-one"})
        short = self.client.post(
            "/api/auth/signup",
            json={"name": "Short", "email": "short@example.com", "password": "123"},
        )

        self.assertEqual(failed.status_code, 401)
        self.assertFalse(failed.json()["success"])
        self.assertEqual(short.status_code, 400)
        self.assertTrue(short.json()["message"].startswith("password:"))

    def test_login_success(self) -> None:
        response = self.client.post("/api/auth/login", json={"email": "ADA@example.com", "password": TEST_PASSWORD})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["user"]["id"], self.employee.id)

    def test_authentication_and_roles_are_enforced(self) -> None:
        anonymous = self.client.get("/api/attendance/today")
        forbidden = self.client.get("/api/employees", headers=auth_headers(self.employee))
        allowed = self.client.get("/api/employees", headers=auth_headers(self.hr))

        self.assertEqual(anonymous.status_code, 401)
        self.assertEqual(forbidden.status_code, 403)
        self.assertEqual(allowed.status_code, 200)

    def test_double_checkin_is_rejected(self) -> None:
        headers = auth_headers(self.employee)

        first = self.client.post("/api/attendance/mark", json={"type": "checkin"}, headers=headers)
        second = self.client.post("/api/attendance/mark", json={"type": "checkin"}, headers=headers)
        today = self.client.get("/api/attendance/today", headers=headers)

        self.assertEqual(first.status_code, 200)
        self.assertIsNotNone(first.json()["attendance"]["check_in"])
        self.assertEqual(second.status_code, 400)
        self.assertFalse(second.json()["success"])
        self.assertEqual(today.status_code, 200)

    def test_task_creation_and_stats_permissions(self) -> None:
        due = (datetime.now(timezone.utc) + timedelta(days=3)).isoformat()

        created = self.client.post(
            "/api/tasks",
            json={"title": "Ship", "description": "Ship it", "assigned_to": self.employee.id, "due_date": due},
            headers=auth_headers(self.admin),
        )
        denied = self.client.post(
            "/api/tasks",
            json={"title": "Ship", "description": "Ship it", "assigned_to": self.employee.id, "due_date": due},
            headers=auth_headers(self.employee),
        )
        employee_stats = self.client.get("/api/tasks/stats/overview", headers=auth_headers(self.employee))
        admin_stats = self.client.get("/api/tasks/stats/overview", headers=auth_headers(self.admin))
        mine = self.client.get("/api/tasks", headers=auth_headers(self.employee))

        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json()["task"]["status"], "pending")
        self.assertEqual(denied.status_code, 403)
        self.assertEqual(employee_stats.status_code, 403)
        self.assertEqual(admin_stats.status_code, 200)
        self.assertEqual(admin_stats.json()["stats"]["total_tasks"], 1)
        self.assertEqual(mine.status_code, 200)
        self.assertEqual(len(mine.json()["tasks"]), 1)

    def test_attendance_report_export(self) -> None:
        response = self.client.get(
            "/api/admin/reports/attendance/export",
            params={"start_date": "2026-03-01", "end_date": "2026-03-31", "report_type": "detailed"},
            headers=auth_headers(self.hr),
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["content-type"], XLSX_MEDIA_TYPE)
        self.assertIn("attendance-detailed-2026-03-01-2026-03-31.xlsx", response.headers["content-disposition"])
        self.assertTrue(response.content.startswith(b"PK"))

    def test_inverted_report_range(self) -> None:
        response = self.client.get(
            "/api/admin/reports/attendance",
            params={"start_date": "2026-03-31", "end_date": "2026-03-01"},
            headers=auth_headers(self.admin),
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "start_date must be before end_date")


if __name__ == "__main__":
    unittest.main()
