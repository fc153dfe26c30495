from __future__ import annotations

import logging

from sqlalchemy import inspect, text

import app.models  # noqa: F401
from app.db.base import Base
from app.db.session import engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "users": {"id", "email", "role", "chair"},
    "positions": {"id", "name", "exemption_hours"},
    "instructors": {"id", "email", "position_id"},
    "instructor_commitments": {"id", "instructor_id", "year", "semester", "program", "hours", "version"},
    "courses": {"id", "code", "status", "assigned_to", "lecture_hours", "lab_hours", "tutorial_hours"},
    "assignments": {"id", "year", "semester", "program", "assigned_by"},
    "sub_assignments": {
        "id",
        "assignment_id",
        "instructor_id",
        "course_id",
        "section",
        "lab_division",
        "workload_hours",
        "preference_rank",
        "assignment_reason",
    },
    "preference_forms": {
        "id",
        "chair",
        "year",
        "semester",
        "program",
        "max_preferences",
        "submission_start",
        "submission_end",
        "courses",
    },
    "preferences": {"id", "instructor_id", "form_id", "rankings"},
}

# Columns added after the first release: (table, column, DDL type and default).
ADDITIVE_COLUMNS: tuple[tuple[str, str, str], ...] = (
    ("sub_assignments", "preference_rank", "INTEGER"),
    ("sub_assignments", "assignment_reason", "TEXT"),
    ("instructor_commitments", "version", "INTEGER NOT NULL DEFAULT 1"),
    ("activity_logs", "actor_role", "VARCHAR(50)"),
)


def _ensure_additive_columns() -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        for table_name, column_name, ddl in ADDITIVE_COLUMNS:
            if table_name not in table_names:
                continue
            column_names = {item["name"] for item in inspector.get_columns(table_name)}
            if column_name in column_names:
                continue
            logger.info("Adding missing column %s.%s", table_name, column_name)
            connection.execute(text(f"ALTER TABLE {table_name} ADD COLUMN {column_name} {ddl}"))


def _assert_required_columns() -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables = [name for name in REQUIRED_COLUMNS if name not in table_names]
        if missing_tables:
            raise RuntimeError(f"Missing required tables: {', '.join(sorted(missing_tables))}")

        missing_columns: list[str] = []
        for table_name, required in REQUIRED_COLUMNS.items():
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            for column_name in sorted(required - existing):
                missing_columns.append(f"{table_name}.{column_name}")
        if missing_columns:
            raise RuntimeError(f"Missing required columns: {', '.join(missing_columns)}")


def ensure_runtime_schema_compatibility() -> None:
    try:
        # Ensure missing tables are present before additive compatibility patches.
        Base.metadata.create_all(bind=engine)
        _ensure_additive_columns()
        _assert_required_columns()
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema compatibility bootstrap failed")
        raise RuntimeError("Runtime schema compatibility bootstrap failed") from exc
