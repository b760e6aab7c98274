from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

EXPECTED_ALEMBIC_HEAD = "0001_initial"

REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    "users": {"id", "email", "password_hash", "role", "status", "manager_id"},
    "attendance_days": {"id", "user_id", "date_key", "check_in", "check_out", "working_minutes"},
    "attendance_breaks": {"id", "attendance_day_id", "sequence", "break_start"},
    "attendance_corrections": {"id", "attendance_day_id", "field", "status"},
    "tasks": {"id", "assignee_id", "status", "due_date", "progress"},
    "alembic_version": {"version_num"},
}

# Only PostgreSQL exposes named enums; other dialects report a warning.
REQUIRED_ENUM_VALUES: dict[str, set[str]] = {
    "user_role": {"admin", "hr", "employee"},
    "attendance_status": {"present", "late", "half-day", "absent"},
    "task_status": {"pending", "in-progress", "completed", "cancelled", "overdue"},
}


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    alembic_version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "alembic_version": self.alembic_version,
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "issue_count": len(self.issues),
            "warning_count": len(self.warnings),
        }


def _column_issues(inspector: Any) -> list[str]:
    found: list[str] = []
    for table_name, required in REQUIRED_TABLE_COLUMNS.items():
        try:
            present = {str(column.get("name")) for column in inspector.get_columns(table_name)}
        except Exception as exc:  # pragma: no cover
            found.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue
        missing = sorted(required - present)
        if missing:
            found.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing)}")
    return found


def _enum_labels(inspector: Any, warnings: list[str]) -> dict[str, set[str]]:
    reader = getattr(inspector, "get_enums", None)
    if reader is None:
        warnings.append("ENUM_INSPECTION_UNSUPPORTED")
        return {}
    try:
        raw_enums = reader() or []
    except Exception as exc:  # pragma: no cover
        warnings.append(f"ENUM_INSPECTION_FAILED:{exc.__class__.__name__}")
        return {}

    labels_by_name: dict[str, set[str]] = {}
    for item in raw_enums:
        name = str(item.get("name") or "").strip()
        labels = item.get("labels")
        if name and isinstance(labels, list):
            labels_by_name[name] = {str(label) for label in labels}
    return labels_by_name


def _enum_issues(labels_by_name: dict[str, set[str]], warnings: list[str]) -> list[str]:
    found: list[str] = []
    for enum_name, required in REQUIRED_ENUM_VALUES.items():
        labels = labels_by_name.get(enum_name)
        if labels is None:
            warnings.append(f"ENUM_NOT_FOUND:{enum_name}")
            continue
        missing = sorted(required - labels)
        if missing:
            found.append(f"MISSING_ENUM_VALUES:{enum_name}:{','.join(missing)}")
    return found


def _read_alembic_version(engine: Engine, issues: list[str], warnings: list[str]) -> str | None:
    try:
        with engine.connect() as connection:
            value = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
    except Exception as exc:  # pragma: no cover
        issues.append(f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}")
        return None

    version = str(value).strip() if value is not None else ""
    if not version:
        issues.append("ALEMBIC_VERSION_EMPTY")
        return None
    if version != EXPECTED_ALEMBIC_HEAD:
        warnings.append(f"ALEMBIC_VERSION_MISMATCH:{version}!={EXPECTED_ALEMBIC_HEAD}")
    return version


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    """Check the live database against the columns, enums and migration head the app relies on."""
    checked_at_utc = datetime.now(timezone.utc)
    inspector = inspect(engine)
    warnings: list[str] = []

    issues = _column_issues(inspector)
    issues.extend(_enum_issues(_enum_labels(inspector, warnings), warnings))
    version = _read_alembic_version(engine, issues, warnings)

    return SchemaGuardResult(
        ok=not issues,
        checked_at_utc=checked_at_utc,
        issues=issues,
        warnings=warnings,
        alembic_version=version,
    )
