from __future__ import annotations

import logging
from time import perf_counter
from typing import Any, Mapping, Protocol
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from timetable_api.core.config import Settings
from timetable_api.core.exceptions import (
    PersistenceError,
    RequestValidationFailed,
    ScheduleStateError,
)
from timetable_api.models.semester_schedule import (
    SemesterSchedule,
    SemesterScheduleSlot,
    SemesterScheduleStatus,
)
from timetable_api.schemas.generator import GenerateScheduleRequest
from timetable_api.services.proposal_cache import ProposalCache, build_proposal_cache
from timetable_api.services.scheduling.constraints import TeacherConstraint, load_teacher_constraints
from timetable_api.services.scheduling.domain import Proposal
from timetable_api.services.scheduling.engine import solve
from timetable_api.services.scheduling.normalizer import ProblemInstance, normalize_request
from timetable_api.services.semester_store import SemesterScheduleStore

logger = logging.getLogger(__name__)

ALGORITHM_NAME = "greedy_repair_v1"


class ScheduleGenerator(Protocol):
    def generate(self, request: GenerateScheduleRequest | Mapping[str, Any]) -> Proposal: ...

    def save(self, proposal_id: str, *, commit_to_daily: bool = False, actor_id: str | None = None) -> str: ...

    def list(self, term_id: str, class_id: str) -> list[SemesterSchedule]: ...

    def get_slots(self, schedule_id: str) -> list[SemesterScheduleSlot]: ...

    def update_status(self, schedule_id: str, status: SemesterScheduleStatus) -> SemesterSchedule: ...

    def delete(self, schedule_id: str) -> None: ...


class ScheduleGeneratorService:
    def __init__(
        self,
        db: Session,
        *,
        settings: Settings,
        cache: ProposalCache | None = None,
        store: SemesterScheduleStore | None = None,
    ) -> None:
        self.db = db
        self.settings = settings
        self.cache = cache if cache is not None else build_proposal_cache(db, settings)
        self.store = store if store is not None else SemesterScheduleStore(
            db, retry_attempts=settings.commit_retry_attempts
        )

    def _resolve_constraints(self, instance: ProblemInstance) -> dict[str, TeacherConstraint]:
        try:
            constraints = load_teacher_constraints(self.db, instance.teacher_ids)
            if self.settings.block_cross_class_slots:
                occupied = self.store.published_teacher_cells(
                    term_id=instance.term_id,
                    exclude_class_id=instance.class_id,
                    teacher_ids=instance.teacher_ids,
                )
                for teacher_id, cells in occupied.items():
                    base = constraints.get(teacher_id, TeacherConstraint(teacher_id=teacher_id))
                    constraints[teacher_id] = base.with_blocked(cells)
        except SQLAlchemyError as exc:
            logger.exception("TEACHER CONSTRAINT LOOKUP FAILED | term_id=%s | class_id=%s", instance.term_id, instance.class_id)
            raise PersistenceError("failed to load teacher preferences") from exc
        return constraints

    def generate(self, request: GenerateScheduleRequest | Mapping[str, Any]) -> Proposal:
        instance = normalize_request(request)
        started = perf_counter()
        logger.info(
            "SCHEDULE GENERATION START | term_id=%s | class_id=%s | days=%s | slots_per_day=%s | loads=%s | units=%s",
            instance.term_id,
            instance.class_id,
            list(instance.grid.days),
            instance.grid.slots_per_day,
            len(instance.loads),
            len(instance.units),
        )

        constraints = self._resolve_constraints(instance)
        result = solve(
            instance,
            constraints,
            max_iterations=self.settings.repair_max_iterations,
            max_swap_attempts=self.settings.repair_max_swap_attempts,
        )

        proposal = Proposal(
            proposal_id=str(uuid.uuid4()),
            term_id=instance.term_id,
            class_id=instance.class_id,
            score=result.score,
            slots=result.slots,
            conflicts=result.conflicts,
            stats=result.stats,
            context={
                "days": list(instance.grid.days),
                "timeSlotsPerDay": instance.grid.slots_per_day,
                "subjectLoads": [load.as_payload() for load in instance.loads],
                "hardConstraints": list(instance.hard_constraints),
                "softConstraints": list(instance.soft_constraints),
                "requestMeta": instance.meta,
            },
        )
        try:
            self.cache.put(proposal)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("PROPOSAL CACHE WRITE FAILED | proposal_id=%s", proposal.proposal_id)
            raise PersistenceError("failed to store schedule proposal") from exc

        logger.info(
            "SCHEDULE GENERATION COMPLETE | proposal_id=%s | term_id=%s | class_id=%s | slots=%s | conflicts=%s | score=%.4f | iterations=%s | runtime_ms=%s",
            proposal.proposal_id,
            proposal.term_id,
            proposal.class_id,
            len(proposal.slots),
            len(proposal.conflicts),
            proposal.score,
            proposal.stats.iterations,
            int((perf_counter() - started) * 1000),
        )
        return proposal

    def save(self, proposal_id: str, *, commit_to_daily: bool = False, actor_id: str | None = None) -> str:
        if not proposal_id or not proposal_id.strip():
            raise RequestValidationFailed("proposalId", "proposal id is required")
        proposal = self.cache.get(proposal_id.strip())
        if proposal.conflicts:
            raise ScheduleStateError(
                "proposal contains unresolved conflicts",
                details={"proposal_id": proposal.proposal_id, "conflicts": len(proposal.conflicts)},
            )

        logger.info(
            "SCHEDULE SAVE START | proposal_id=%s | term_id=%s | class_id=%s | commit_to_daily=%s",
            proposal.proposal_id,
            proposal.term_id,
            proposal.class_id,
            commit_to_daily,
        )
        meta = {
            "proposalId": proposal.proposal_id,
            "score": proposal.score,
            "stats": {
                "iterations": proposal.stats.iterations,
                "gapPenalty": proposal.stats.gap_penalty,
                "loadPenalty": proposal.stats.load_penalty,
            },
            "generated": proposal.generated_at.isoformat(),
            "algorithm": ALGORITHM_NAME,
            **proposal.context,
        }
        schedule = self.store.create_versioned(
            term_id=proposal.term_id,
            class_id=proposal.class_id,
            slots=proposal.slots,
            meta=meta,
            created_by_id=actor_id,
            publish=commit_to_daily,
        )
        try:
            self.cache.discard(proposal.proposal_id)
        except SQLAlchemyError:
            # the schedule is already committed; the row still expires on its own
            self.db.rollback()
            logger.exception("PROPOSAL DISCARD FAILED | proposal_id=%s", proposal.proposal_id)
        else:
            logger.info("PROPOSAL DISCARDED | proposal_id=%s | reason=committed", proposal.proposal_id)
        logger.info(
            "SCHEDULE SAVE COMPLETE | proposal_id=%s | schedule_id=%s | version=%s | status=%s",
            proposal.proposal_id,
            schedule.id,
            schedule.version,
            schedule.status.value,
        )
        return schedule.id

    def list(self, term_id: str, class_id: str) -> list[SemesterSchedule]:
        if not term_id:
            raise RequestValidationFailed("termId", "termId is required")
        if not class_id:
            raise RequestValidationFailed("classId", "classId is required")
        return self.store.list_by_term_class(term_id, class_id)

    def get_slots(self, schedule_id: str) -> list[SemesterScheduleSlot]:
        return self.store.list_slots(schedule_id)

    def update_status(self, schedule_id: str, status: SemesterScheduleStatus) -> SemesterSchedule:
        return self.store.update_status(schedule_id, status)

    def delete(self, schedule_id: str) -> None:
        self.store.delete_draft(schedule_id)
