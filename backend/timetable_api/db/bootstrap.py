from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from timetable_api.db.base import Base
import timetable_api.models  # noqa: F401

logger = logging.getLogger(__name__)

REQUIRED_TABLES: tuple[str, ...] = (
    "teacher_preferences",
    "semester_schedules",
    "semester_schedule_slots",
    "schedule_proposals",
)


def missing_tables(bind: Engine) -> list[str]:
    with bind.connect() as connection:
        existing = set(inspect(connection).get_table_names())
    return [name for name in REQUIRED_TABLES if name not in existing]


def ensure_runtime_schema(bind: Engine, *, auto_create: bool) -> list[str]:
    """Reports required tables that are absent, creating them first when allowed."""
    try:
        if auto_create:
            Base.metadata.create_all(bind=bind)
        missing = missing_tables(bind)
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema bootstrap failed")
        raise RuntimeError("Runtime schema bootstrap failed") from exc

    if missing:
        logger.warning(
            "SCHEMA INCOMPLETE | missing_tables=%s | hint=run `alembic upgrade head`",
            ",".join(missing),
        )
    else:
        logger.info("SCHEMA READY | tables=%s", len(REQUIRED_TABLES))
    return missing
