from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
from typing import Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from timetable_api.models.teacher_preference import TeacherPreference

logger = logging.getLogger(__name__)

DAY_NAME_INDEX = {
    "MONDAY": 1,
    "TUESDAY": 2,
    "WEDNESDAY": 3,
    "THURSDAY": 4,
    "FRIDAY": 5,
    "SATURDAY": 6,
    "SUNDAY": 7,
    "MON": 1,
    "TUE": 2,
    "WED": 3,
    "THU": 4,
    "FRI": 5,
    "SAT": 6,
    "SUN": 7,
}


def day_to_index(value: int | str | None) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value if 1 <= value <= 7 else None
    text = str(value).strip().upper()
    if text.isdigit():
        return day_to_index(int(text))
    return DAY_NAME_INDEX.get(text)


def expand_time_range(raw: str | int | None) -> list[int]:
    """Expands "3" or "1-4" (inclusive) into slot indices; malformed input yields []."""
    if raw is None or isinstance(raw, bool):
        return []
    if isinstance(raw, int):
        return [raw] if raw >= 0 else []
    text = str(raw).strip()
    if not text:
        return []
    start_raw, sep, end_raw = text.partition("-")
    try:
        start = int(start_raw.strip())
        end = int(end_raw.strip()) if sep else start
    except ValueError:
        return []
    if start < 0 or end < start:
        return []
    return list(range(start, end + 1))


@dataclass(frozen=True)
class TeacherConstraint:
    teacher_id: str
    max_load_per_day: int | None = None
    max_load_per_week: int | None = None
    blocked: frozenset[tuple[int, int]] = field(default_factory=frozenset)

    def with_blocked(self, cells: Iterable[tuple[int, int]]) -> "TeacherConstraint":
        return replace(self, blocked=self.blocked | frozenset(cells))


def _positive_or_none(value: int | None) -> int | None:
    if value is None or value <= 0:
        return None
    return value


def constraint_from_preference(preference: TeacherPreference) -> TeacherConstraint:
    blocked: set[tuple[int, int]] = set()
    for window in preference.unavailable or []:
        if not isinstance(window, dict):
            logger.warning(
                "TEACHER WINDOW SKIPPED | teacher_id=%s | reason=not_an_object | value=%r",
                preference.teacher_id,
                window,
            )
            continue
        day = day_to_index(window.get("day_of_week", window.get("dayOfWeek")))
        slots = expand_time_range(window.get("time_range", window.get("timeRange")))
        if day is None or not slots:
            logger.warning(
                "TEACHER WINDOW SKIPPED | teacher_id=%s | reason=malformed | value=%r",
                preference.teacher_id,
                window,
            )
            continue
        blocked.update((day, slot) for slot in slots)
    return TeacherConstraint(
        teacher_id=preference.teacher_id,
        max_load_per_day=_positive_or_none(preference.max_load_per_day),
        max_load_per_week=_positive_or_none(preference.max_load_per_week),
        blocked=frozenset(blocked),
    )


def load_teacher_constraints(db: Session, teacher_ids: Iterable[str]) -> dict[str, TeacherConstraint]:
    ids = sorted(set(teacher_ids))
    if not ids:
        return {}
    rows = db.execute(select(TeacherPreference).where(TeacherPreference.teacher_id.in_(ids))).scalars().all()
    return {row.teacher_id: constraint_from_preference(row) for row in rows}


class ConstraintModel:
    """Capacity lookups for teachers over one generation run.

    Source constraints are never modified; the model only tracks how many
    sessions have been placed so far. Unknown teachers are unconstrained.
    """

    def __init__(self, constraints: Mapping[str, TeacherConstraint] | None = None) -> None:
        self._constraints = dict(constraints or {})
        # index 0 unused so day numbers 1..7 index directly
        self._day_load: dict[str, list[int]] = {}
        self._week_load: dict[str, int] = {}

    def constraint_for(self, teacher_id: str) -> TeacherConstraint:
        constraint = self._constraints.get(teacher_id)
        if constraint is None:
            return TeacherConstraint(teacher_id=teacher_id)
        return constraint

    def day_load(self, teacher_id: str, day: int) -> int:
        loads = self._day_load.get(teacher_id)
        return loads[day] if loads else 0

    def week_load(self, teacher_id: str) -> int:
        return self._week_load.get(teacher_id, 0)

    def capacity_at(self, teacher_id: str, day: int) -> int | None:
        limit = self.constraint_for(teacher_id).max_load_per_day
        if limit is None:
            return None
        return max(0, limit - self.day_load(teacher_id, day))

    def capacity_remaining_this_week(self, teacher_id: str) -> int | None:
        limit = self.constraint_for(teacher_id).max_load_per_week
        if limit is None:
            return None
        return max(0, limit - self.week_load(teacher_id))

    def is_blocked(self, teacher_id: str, day: int, slot: int) -> bool:
        return (day, slot) in self.constraint_for(teacher_id).blocked

    def can_take(self, teacher_id: str, day: int) -> bool:
        daily = self.capacity_at(teacher_id, day)
        if daily is not None and daily < 1:
            return False
        weekly = self.capacity_remaining_this_week(teacher_id)
        return weekly is None or weekly >= 1

    def reserve(self, teacher_id: str, day: int) -> None:
        loads = self._day_load.setdefault(teacher_id, [0] * 8)
        loads[day] += 1
        self._week_load[teacher_id] = self._week_load.get(teacher_id, 0) + 1

    def release(self, teacher_id: str, day: int) -> None:
        loads = self._day_load.get(teacher_id)
        if loads and loads[day] > 0:
            loads[day] -= 1
        if self._week_load.get(teacher_id, 0) > 0:
            self._week_load[teacher_id] -= 1

    def load_violations(self, teacher_id: str) -> list[dict]:
        constraint = self.constraint_for(teacher_id)
        violations: list[dict] = []
        if constraint.max_load_per_day is not None:
            for day, count in enumerate(self._day_load.get(teacher_id, [])):
                if count > constraint.max_load_per_day:
                    violations.append(
                        {"rule": "maxLoadPerDay", "day": day, "load": count, "limit": constraint.max_load_per_day}
                    )
        week = self.week_load(teacher_id)
        if constraint.max_load_per_week is not None and week > constraint.max_load_per_week:
            violations.append({"rule": "maxLoadPerWeek", "load": week, "limit": constraint.max_load_per_week})
        return violations
