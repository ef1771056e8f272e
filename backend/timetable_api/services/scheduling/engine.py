from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from timetable_api.core.exceptions import SchedulerError
from timetable_api.services.scheduling.constraints import ConstraintModel, TeacherConstraint
from timetable_api.services.scheduling.domain import Conflict, ImprovementStats, SlotAssignment
from timetable_api.services.scheduling.normalizer import ProblemInstance
from timetable_api.services.scheduling.placement import ScheduleGrid, place_units
from timetable_api.services.scheduling.repair import RepairEngine, audit_hard_constraints

CONFLICT_WEIGHT = 100.0
GAP_WEIGHT = 2.0
LOAD_WEIGHT = 5.0


def compute_score(conflict_count: int, gap: float, load: float) -> float:
    # quality lies in (0, 100], so one extra conflict always outweighs any penalty difference
    quality = 100.0 / (1.0 + GAP_WEIGHT * gap + LOAD_WEIGHT * load)
    return quality - CONFLICT_WEIGHT * conflict_count


@dataclass(frozen=True)
class EngineResult:
    score: float
    slots: tuple[SlotAssignment, ...]
    conflicts: tuple[Conflict, ...]
    stats: ImprovementStats


def solve(
    instance: ProblemInstance,
    constraints: Mapping[str, TeacherConstraint],
    *,
    max_iterations: int,
    max_swap_attempts: int,
) -> EngineResult:
    if not instance.grid.days or instance.grid.slots_per_day < 1:
        raise SchedulerError("generation grid has no cells", details={"days": list(instance.grid.days)})
    if any(unit.unit_id != index for index, unit in enumerate(instance.units)):
        raise SchedulerError("demand unit ids must match their position")

    model = ConstraintModel(constraints)
    grid = ScheduleGrid(instance.grid, instance.units, model)

    conflicts = place_units(grid)
    stats = RepairEngine(grid, max_iterations=max_iterations, max_swap_attempts=max_swap_attempts).run()
    conflicts.extend(audit_hard_constraints(grid))

    return EngineResult(
        score=compute_score(len(conflicts), stats.gap_penalty, stats.load_penalty),
        slots=tuple(grid.export_slots()),
        conflicts=tuple(conflicts),
        stats=stats,
    )
