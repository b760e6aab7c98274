#!/usr/bin/env python
from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, make_url

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from devsync.services.schema_guard import EXPECTED_ALEMBIC_HEAD
from devsync.settings import get_settings

REQUIRED_TABLES = (
    "users",
    "attendance_days",
    "attendance_breaks",
    "attendance_corrections",
    "tasks",
    "task_dependencies",
    "task_comments",
    "task_time_entries",
    "task_attachments",
)


def _table_names(conn: Connection) -> set[str]:
    return set(
        conn.execute(
            text(
                """
                select table_name
                from information_schema.tables
                where table_schema='public'
                """
            )
        ).scalars()
    )


def run(database_url: str | None = None) -> dict[str, Any]:
    database_url = database_url or get_settings().database_url
    engine = create_engine(database_url)
    report: dict[str, Any] = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "database_url": make_url(database_url).render_as_string(hide_password=True),
        "checks": [],
    }

    def add(name: str, status: str, details: dict[str, Any]) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    with engine.connect() as conn:
        tables = _table_names(conn)

        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})
        add(
            "migration_up_to_date",
            "ok" if EXPECTED_ALEMBIC_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_ALEMBIC_HEAD, "current": current_versions},
        )

        missing = [table for table in REQUIRED_TABLES if table not in tables]
        add("missing_tables", "fail" if missing else "ok", {"tables": missing})

        if "attendance_days" in tables:
            duplicate_days = conn.execute(
                text(
                    """
                    select user_id, date_key, count(*)
                    from attendance_days
                    group by user_id, date_key
                    having count(*) > 1
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "duplicate_attendance_day",
                "fail" if duplicate_days else "ok",
                {"rows": [list(row) for row in duplicate_days]},
            )

            open_breaks = conn.execute(
                text(
                    """
                    select b.attendance_day_id
                    from attendance_breaks b
                    join attendance_days d on d.id = b.attendance_day_id
                    where b.break_end is null and d.check_out is not null
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "open_break_after_checkout",
                "warn" if open_breaks else "ok",
                {"sample_day_ids": [row[0] for row in open_breaks]},
            )

        if "users" in tables:
            admin_count = conn.execute(
                text("select count(*) from users where role = 'admin' and status = 'active'")
            ).scalar_one()
            add("active_admin_present", "ok" if admin_count else "fail", {"active_admins": admin_count})

        if "tasks" in tables:
            orphan_tasks = conn.execute(
                text(
                    """
                    select t.id
                    from tasks t
                    left join users u on u.id = t.assignee_id
                    where t.assignee_id is not null and u.id is null
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "task_orphan_assignee",
                "fail" if orphan_tasks else "ok",
                {"sample_ids": [row[0] for row in orphan_tasks]},
            )

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
