# scripts/verify_db_schema.py
from __future__ import annotations

import sys

from sqlalchemy import create_engine, inspect, text

from shiftops.core.config import settings

REQUIRED_TABLES = {
    "dealerships",
    "users",
    "task_generators",
    "task_generator_assignments",
    "tasks",
    "task_assignments",
    "task_responses",
    "shifts",
    "settings",
}

# (table, constraint): инварианты, без которых sweep-ы небезопасны
REQUIRED_UNIQUES = {
    ("tasks", "uq_tasks_generator_period"),
    ("task_responses", "uq_task_responses_task_user"),
    ("task_assignments", "uq_task_assignments_task_user"),
}
REQUIRED_CHECKS = {
    ("tasks", "ck_tasks_archived_inactive"),
    ("tasks", "ck_tasks_archive_reason"),
}


def die(msg: str) -> None:
    print(f"[verify-db-schema] ERROR: {msg}", file=sys.stderr)
    sys.exit(1)


def main() -> None:
    engine = create_engine(settings.database_url, future=True)

    with engine.connect() as conn:
        try:
            version = conn.execute(text("select version_num from alembic_version")).scalar_one()
        except Exception as e:  # pragma: no cover
            die(f"alembic_version table missing: {e}")

        print(f"[ok] alembic_version = {version}")

        insp = inspect(conn)

        missing = REQUIRED_TABLES - set(insp.get_table_names())
        if missing:
            die(f"missing tables: {sorted(missing)}")
        print("[ok] required tables present")

        for table, name in sorted(REQUIRED_UNIQUES):
            names = {u["name"] for u in insp.get_unique_constraints(table)}
            names |= {i["name"] for i in insp.get_indexes(table) if i.get("unique")}
            if name not in names:
                die(f"missing unique constraint {name} on {table}")
        print("[ok] unique constraints present")

        for table, name in sorted(REQUIRED_CHECKS):
            names = {c["name"] for c in insp.get_check_constraints(table)}
            if name not in names:
                die(f"missing check constraint {name} on {table}")
        print("[ok] check constraints present")

    print("[verify-db-schema] OK")


if __name__ == "__main__":
    main()
