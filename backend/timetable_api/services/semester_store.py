from __future__ import annotations

from collections import defaultdict
import logging
from threading import Lock
from typing import Iterable, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from timetable_api.core.exceptions import PersistenceError, ResourceNotFoundError, ScheduleStateError
from timetable_api.models.semester_schedule import (
    SemesterSchedule,
    SemesterScheduleSlot,
    SemesterScheduleStatus,
)
from timetable_api.services.scheduling.domain import SlotAssignment

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[SemesterScheduleStatus, set[SemesterScheduleStatus]] = {
    SemesterScheduleStatus.draft: {SemesterScheduleStatus.published, SemesterScheduleStatus.archived},
    SemesterScheduleStatus.published: {SemesterScheduleStatus.archived},
    SemesterScheduleStatus.archived: set(),
}

PAIR_LOCK_STRIPES = 64
# fixed pool; unrelated pairs may share a stripe, which only costs contention
_pair_locks: tuple[Lock, ...] = tuple(Lock() for _ in range(PAIR_LOCK_STRIPES))


def _pair_lock(term_id: str, class_id: str) -> Lock:
    return _pair_locks[hash((term_id, class_id)) % PAIR_LOCK_STRIPES]


class VersionCollision(Exception):
    pass


class SemesterScheduleStore:
    """Versioned persistence for accepted proposals.

    Version assignment and the row + slot insert run in one transaction.
    Commits for the same (term, class) pair are serialized by a process
    lock plus ``SELECT ... FOR UPDATE`` on the pair's rows; the unique
    (term_id, class_id, version) constraint catches anything that slips
    through and the commit is retried with a fresh version.
    """

    def __init__(self, db: Session, *, retry_attempts: int = 3) -> None:
        self.db = db
        self.retry_attempts = max(1, retry_attempts)

    def _next_version(self, term_id: str, class_id: str) -> int:
        versions = (
            self.db.execute(
                select(SemesterSchedule.version)
                .where(SemesterSchedule.term_id == term_id, SemesterSchedule.class_id == class_id)
                .with_for_update()
            )
            .scalars()
            .all()
        )
        return max(versions, default=0) + 1

    def create_versioned(
        self,
        *,
        term_id: str,
        class_id: str,
        slots: Sequence[SlotAssignment],
        meta: dict | None = None,
        created_by_id: str | None = None,
        publish: bool = False,
    ) -> SemesterSchedule:
        if not term_id or not class_id:
            raise PersistenceError("term_id and class_id are required")

        for attempt in range(1, self.retry_attempts + 1):
            with _pair_lock(term_id, class_id):
                try:
                    return self._insert(
                        term_id=term_id,
                        class_id=class_id,
                        slots=slots,
                        meta=meta or {},
                        created_by_id=created_by_id,
                        publish=publish,
                    )
                except VersionCollision:
                    self.db.rollback()
                    logger.warning(
                        "SEMESTER SCHEDULE VERSION COLLISION | term_id=%s | class_id=%s | attempt=%s/%s",
                        term_id,
                        class_id,
                        attempt,
                        self.retry_attempts,
                    )
                except SQLAlchemyError as exc:
                    self.db.rollback()
                    logger.exception(
                        "SEMESTER SCHEDULE COMMIT FAILED | term_id=%s | class_id=%s",
                        term_id,
                        class_id,
                    )
                    raise PersistenceError(
                        "failed to persist semester schedule",
                        details={"term_id": term_id, "class_id": class_id},
                    ) from exc
        raise PersistenceError(
            "could not assign a unique schedule version",
            details={"term_id": term_id, "class_id": class_id, "attempts": self.retry_attempts},
        )

    def _insert(
        self,
        *,
        term_id: str,
        class_id: str,
        slots: Sequence[SlotAssignment],
        meta: dict,
        created_by_id: str | None,
        publish: bool,
    ) -> SemesterSchedule:
        schedule = SemesterSchedule(
            term_id=term_id,
            class_id=class_id,
            version=self._next_version(term_id, class_id),
            status=SemesterScheduleStatus.draft,
            meta=meta,
            created_by_id=created_by_id,
        )
        self.db.add(schedule)
        try:
            self.db.flush()
        except IntegrityError as exc:
            raise VersionCollision() from exc

        self.db.add_all(
            [
                SemesterScheduleSlot(
                    semester_schedule_id=schedule.id,
                    day_of_week=slot.day_of_week,
                    time_slot=slot.time_slot,
                    subject_id=slot.subject_id,
                    teacher_id=slot.teacher_id,
                    room=slot.room,
                )
                for slot in slots
            ]
        )
        self.db.flush()

        if publish:
            schedule.status = SemesterScheduleStatus.published
            self.db.flush()

        self.db.commit()
        self.db.refresh(schedule)
        return schedule

    def list_by_term_class(self, term_id: str, class_id: str) -> list[SemesterSchedule]:
        return list(
            self.db.execute(
                select(SemesterSchedule)
                .where(SemesterSchedule.term_id == term_id, SemesterSchedule.class_id == class_id)
                .order_by(SemesterSchedule.version.desc())
            ).scalars()
        )

    def get(self, schedule_id: str) -> SemesterSchedule:
        schedule = self.db.get(SemesterSchedule, schedule_id)
        if schedule is None:
            raise ResourceNotFoundError("SemesterSchedule", schedule_id, message="semester schedule not found")
        return schedule

    def list_slots(self, schedule_id: str) -> list[SemesterScheduleSlot]:
        self.get(schedule_id)
        return list(
            self.db.execute(
                select(SemesterScheduleSlot)
                .where(SemesterScheduleSlot.semester_schedule_id == schedule_id)
                .order_by(SemesterScheduleSlot.day_of_week, SemesterScheduleSlot.time_slot)
            ).scalars()
        )

    def update_status(self, schedule_id: str, status: SemesterScheduleStatus) -> SemesterSchedule:
        schedule = self.get(schedule_id)
        current = schedule.status
        if status not in ALLOWED_TRANSITIONS[current]:
            raise ScheduleStateError(
                f"cannot move schedule from {current.value} to {status.value}",
                details={"schedule_id": schedule_id, "from": current.value, "to": status.value},
            )
        try:
            result = self.db.execute(
                update(SemesterSchedule)
                .where(SemesterSchedule.id == schedule_id, SemesterSchedule.status == current)
                .values(status=status)
            )
            if result.rowcount != 1:
                self.db.rollback()
                raise ScheduleStateError(
                    "schedule status changed concurrently",
                    details={"schedule_id": schedule_id, "expected": current.value},
                )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("SEMESTER SCHEDULE STATUS UPDATE FAILED | schedule_id=%s", schedule_id)
            raise PersistenceError("failed to update semester schedule status") from exc
        self.db.refresh(schedule)
        logger.info(
            "SEMESTER SCHEDULE STATUS | schedule_id=%s | from=%s | to=%s",
            schedule_id,
            current.value,
            status.value,
        )
        return schedule

    def delete_draft(self, schedule_id: str) -> None:
        schedule = self.get(schedule_id)
        if schedule.status != SemesterScheduleStatus.draft:
            raise ScheduleStateError(
                "only draft schedules can be deleted",
                details={"schedule_id": schedule_id, "status": schedule.status.value},
            )
        try:
            self.db.execute(
                delete(SemesterScheduleSlot).where(SemesterScheduleSlot.semester_schedule_id == schedule_id)
            )
            result = self.db.execute(
                delete(SemesterSchedule).where(
                    SemesterSchedule.id == schedule_id,
                    SemesterSchedule.status == SemesterScheduleStatus.draft,
                )
            )
            if result.rowcount != 1:
                self.db.rollback()
                raise ScheduleStateError(
                    "only draft schedules can be deleted",
                    details={"schedule_id": schedule_id},
                )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("SEMESTER SCHEDULE DELETE FAILED | schedule_id=%s", schedule_id)
            raise PersistenceError("failed to delete semester schedule") from exc
        logger.info("SEMESTER SCHEDULE DELETED | schedule_id=%s", schedule_id)

    def published_teacher_cells(
        self,
        *,
        term_id: str,
        exclude_class_id: str,
        teacher_ids: Iterable[str],
    ) -> dict[str, set[tuple[int, int]]]:
        ids = sorted(set(teacher_ids))
        if not ids:
            return {}
        rows = self.db.execute(
            select(SemesterScheduleSlot.teacher_id, SemesterScheduleSlot.day_of_week, SemesterScheduleSlot.time_slot)
            .join(SemesterSchedule, SemesterSchedule.id == SemesterScheduleSlot.semester_schedule_id)
            .where(
                SemesterSchedule.term_id == term_id,
                SemesterSchedule.class_id != exclude_class_id,
                SemesterSchedule.status == SemesterScheduleStatus.published,
                SemesterScheduleSlot.teacher_id.in_(ids),
            )
        ).all()
        cells: dict[str, set[tuple[int, int]]] = defaultdict(set)
        for teacher_id, day, slot in rows:
            cells[teacher_id].add((day, slot))
        return dict(cells)
