from __future__ import annotations

import unittest
from unittest.mock import patch

from devsync.services.schema_guard import REQUIRED_ENUM_VALUES, REQUIRED_TABLE_COLUMNS, verify_runtime_schema


class _FakeResult:
    def __init__(self, value):
        self._value = value

    def scalar(self):  # type: ignore[no-untyped-def]
        return self._value


class _FakeConnection:
    def __init__(self, version_value):
        self._version_value = version_value

    def __enter__(self):  # type: ignore[no-untyped-def]
        return self

    def __exit__(self, exc_type, exc, tb):  # type: ignore[no-untyped-def]
        return False

    def execute(self, _statement):  # type: ignore[no-untyped-def]
        return _FakeResult(self._version_value)


class _FakeEngine:
    def __init__(self, version_value):
        self._version_value = version_value

    def connect(self):  # type: ignore[no-untyped-def]
        return _FakeConnection(self._version_value)


class _FakeInspector:
    def __init__(self, *, columns_by_table: dict[str, set[str]], enums: list[dict[str, object]]):
        self._columns_by_table = columns_by_table
        self._enums = enums

    def get_columns(self, table_name: str):  # type: ignore[no-untyped-def]
        columns = self._columns_by_table[table_name]
        return [{"name": item} for item in columns]

    def get_enums(self):  # type: ignore[no-untyped-def]
        return self._enums


class _NoEnumInspector:
    def __init__(self, columns_by_table: dict[str, set[str]]):
        self._columns_by_table = columns_by_table

    def get_columns(self, table_name: str):  # type: ignore[no-untyped-def]
        return [{"name": item} for item in self._columns_by_table[table_name]]


def _complete_enums() -> list[dict[str, object]]:
    return [{"name": name, "labels": sorted(values)} for name, values in REQUIRED_ENUM_VALUES.items()]


class SchemaGuardTests(unittest.TestCase):
    def test_verify_runtime_schema_ok_when_required_columns_exist(self) -> None:
        fake_inspector = _FakeInspector(
            columns_by_table={name: set(columns) for name, columns in REQUIRED_TABLE_COLUMNS.items()},
            enums=_complete_enums(),
        )
        fake_engine = _FakeEngine("0001_initial")

        with patch("devsync.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(fake_engine)  # type: ignore[arg-type]

        self.assertTrue(result.ok)
        self.assertEqual(result.issues, [])
        self.assertEqual(result.warnings, [])
        self.assertEqual(result.to_dict()["issue_count"], 0)
        self.assertEqual(result.to_dict()["alembic_version"], "0001_initial")

    def test_unexpected_alembic_head_is_a_warning(self) -> None:
        fake_inspector = _FakeInspector(
            columns_by_table={name: set(columns) for name, columns in REQUIRED_TABLE_COLUMNS.items()},
            enums=_complete_enums(),
        )

        with patch("devsync.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(_FakeEngine("0000_legacy"))  # type: ignore[arg-type]

        self.assertTrue(result.ok)
        self.assertEqual(result.warnings, ["ALEMBIC_VERSION_MISMATCH:0000_legacy!=0001_initial"])

    def test_verify_runtime_schema_reports_missing_columns(self) -> None:
        columns = {name: set(columns) for name, columns in REQUIRED_TABLE_COLUMNS.items()}
        columns["attendance_days"].discard("working_minutes")
        columns["tasks"] = {"id"}
        enums = [
            {"name": "user_role", "labels": ["admin", "employee"]},
            {"name": "attendance_status", "labels": ["present", "late", "half-day", "absent"]},
            {"name": "task_status", "labels": ["pending", "in-progress", "completed", "cancelled", "overdue"]},
        ]
        fake_inspector = _FakeInspector(columns_by_table=columns, enums=enums)
        fake_engine = _FakeEngine("")

        with patch("devsync.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(fake_engine)  # type: ignore[arg-type]

        self.assertFalse(result.ok)
        self.assertIn("MISSING_COLUMNS:attendance_days:working_minutes", result.issues)
        self.assertTrue(any(item.startswith("MISSING_COLUMNS:tasks:") for item in result.issues))
        self.assertIn("MISSING_ENUM_VALUES:user_role:hr", result.issues)
        self.assertIn("ALEMBIC_VERSION_EMPTY", result.issues)

    def test_dialect_without_enums_only_warns(self) -> None:
        fake_inspector = _NoEnumInspector({name: set(columns) for name, columns in REQUIRED_TABLE_COLUMNS.items()})

        with patch("devsync.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(_FakeEngine("0001_initial"))  # type: ignore[arg-type]

        self.assertTrue(result.ok)
        self.assertIn("ENUM_INSPECTION_UNSUPPORTED", result.warnings)
        self.assertIn("ENUM_NOT_FOUND:task_status", result.warnings)


if __name__ == "__main__":
    unittest.main()
