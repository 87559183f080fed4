from __future__ import annotations

import logging

from sqlalchemy import inspect, text

import app.models  # noqa: F401
from app.db.base import Base
from app.db.session import engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "batches": {"id", "shift", "current_semester", "department_id", "is_active"},
    "course_offerings": {"id", "session_id", "course_id", "course_type", "semester", "department_id"},
    "classrooms": {"id", "room_number", "capacity", "room_type", "is_active", "is_under_maintenance"},
    "course_schedules": {"id", "batch_id", "days_of_week", "start_time", "end_time", "status", "closed_at"},
    "schedule_proposals": {"id", "session_id", "status", "schedule_data", "metadata"},
}


def _ensure_course_schedule_status_columns() -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        if "course_schedules" not in set(inspector.get_table_names()):
            return
        column_names = {item["name"] for item in inspector.get_columns("course_schedules")}
        if "status" not in column_names:
            connection.execute(
                text("ALTER TABLE course_schedules ADD COLUMN status VARCHAR(20) NOT NULL DEFAULT 'active'")
            )
        if "closed_at" not in column_names:
            column_type = "TIMESTAMP WITH TIME ZONE" if connection.dialect.name == "postgresql" else "DATETIME"
            connection.execute(text(f"ALTER TABLE course_schedules ADD COLUMN closed_at {column_type}"))


def _ensure_classroom_maintenance_column() -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        if "classrooms" not in set(inspector.get_table_names()):
            return
        column_names = {item["name"] for item in inspector.get_columns("classrooms")}
        if "is_under_maintenance" in column_names:
            return
        connection.execute(
            text("ALTER TABLE classrooms ADD COLUMN is_under_maintenance BOOLEAN NOT NULL DEFAULT FALSE")
        )


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
        _ensure_course_schedule_status_columns()
        _ensure_classroom_maintenance_column()
        _assert_required_columns()
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema compatibility bootstrap failed")
        raise RuntimeError("Runtime schema compatibility bootstrap failed") from exc
