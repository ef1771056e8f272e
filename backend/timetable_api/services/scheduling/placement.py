from __future__ import annotations

from collections import Counter
from typing import Iterator, Sequence

from timetable_api.services.scheduling.constraints import ConstraintModel
from timetable_api.services.scheduling.domain import UNMET_DEMAND, Conflict, SlotAssignment
from timetable_api.services.scheduling.normalizer import DemandUnit, GridDescriptor, SubjectLoad

EMPTY = -1


class ScheduleGrid:
    """Fixed-size days x slots arena holding one unit id per cell.

    Cells are addressed by (day index, slot), where the day index points
    into ``descriptor.days``. Teacher occupancy is tracked in parallel
    arrays so double-booking checks never allocate.
    """

    def __init__(
        self,
        descriptor: GridDescriptor,
        units: Sequence[DemandUnit],
        constraints: ConstraintModel,
    ) -> None:
        self.descriptor = descriptor
        self.days = descriptor.days
        self.slots_per_day = descriptor.slots_per_day
        self.units = list(units)
        self.constraints = constraints

        teacher_ids = sorted({unit.teacher_id for unit in self.units})
        self.teacher_ids = teacher_ids
        self.teacher_index = {teacher_id: index for index, teacher_id in enumerate(teacher_ids)}
        self.unit_teacher = [self.teacher_index[unit.teacher_id] for unit in self.units]

        day_count = len(self.days)
        self.cells = [[EMPTY] * self.slots_per_day for _ in range(day_count)]
        self.teacher_busy = [
            [[False] * self.slots_per_day for _ in range(day_count)] for _ in teacher_ids
        ]
        self.day_counts = [0] * day_count

    def iter_cells(self) -> Iterator[tuple[int, int]]:
        for day_index in range(len(self.days)):
            for slot in range(self.slots_per_day):
                yield day_index, slot

    def unit_at(self, day_index: int, slot: int) -> DemandUnit | None:
        unit_id = self.cells[day_index][slot]
        return None if unit_id == EMPTY else self.units[unit_id]

    def is_eligible(self, unit: DemandUnit, day_index: int, slot: int) -> bool:
        if self.cells[day_index][slot] != EMPTY:
            return False
        if self.teacher_busy[self.unit_teacher[unit.unit_id]][day_index][slot]:
            return False
        day = self.days[day_index]
        if self.constraints.is_blocked(unit.teacher_id, day, slot):
            return False
        return self.constraints.can_take(unit.teacher_id, day)

    def place(self, unit_id: int, day_index: int, slot: int) -> None:
        unit = self.units[unit_id]
        self.cells[day_index][slot] = unit_id
        self.teacher_busy[self.unit_teacher[unit_id]][day_index][slot] = True
        self.day_counts[day_index] += 1
        self.constraints.reserve(unit.teacher_id, self.days[day_index])

    def remove(self, day_index: int, slot: int) -> int:
        unit_id = self.cells[day_index][slot]
        if unit_id == EMPTY:
            return EMPTY
        unit = self.units[unit_id]
        self.cells[day_index][slot] = EMPTY
        self.teacher_busy[self.unit_teacher[unit_id]][day_index][slot] = False
        self.day_counts[day_index] -= 1
        self.constraints.release(unit.teacher_id, self.days[day_index])
        return unit_id

    def placed_by_load(self) -> Counter:
        counts: Counter = Counter()
        for day_index, slot in self.iter_cells():
            unit = self.unit_at(day_index, slot)
            if unit is not None:
                counts[unit.load.load_index] += 1
        return counts

    def export_slots(self) -> list[SlotAssignment]:
        slots: list[SlotAssignment] = []
        for day_index, slot in self.iter_cells():
            unit = self.unit_at(day_index, slot)
            if unit is None:
                continue
            slots.append(
                SlotAssignment(
                    day_of_week=self.days[day_index],
                    time_slot=slot,
                    subject_id=unit.subject_id,
                    teacher_id=unit.teacher_id,
                )
            )
        return slots


def placement_order(units: Sequence[DemandUnit]) -> list[DemandUnit]:
    return sorted(
        units,
        key=lambda unit: (
            -unit.difficulty,
            -unit.load.weekly_count,
            unit.subject_id,
            unit.teacher_id,
            unit.load.load_index,
            unit.occurrence,
        ),
    )


def candidate_cells(grid: ScheduleGrid, unit: DemandUnit) -> Iterator[tuple[int, int]]:
    preferred = sorted(set(unit.load.preferred_slots))
    for day_index in range(len(grid.days)):
        for slot in preferred:
            yield day_index, slot
    preferred_set = set(preferred)
    for day_index, slot in grid.iter_cells():
        if slot not in preferred_set:
            yield day_index, slot


def _unmet_demand_conflict(load: SubjectLoad, placed: int) -> Conflict:
    shortfall = load.weekly_count - placed
    return Conflict(
        type=UNMET_DEMAND,
        message=(
            f"unable to schedule subject {load.subject_id} for teacher {load.teacher_id}: "
            f"{shortfall} of {load.weekly_count} weekly sessions unplaced"
        ),
        meta={
            "subjectId": load.subject_id,
            "teacherId": load.teacher_id,
            "loadIndex": load.load_index,
            "requested": load.weekly_count,
            "placed": placed,
            "shortfall": shortfall,
        },
    )


def place_units(grid: ScheduleGrid) -> list[Conflict]:
    """Greedy first-fit placement; unplaceable units become unmet-demand conflicts."""
    failed: Counter = Counter()
    loads: dict[int, SubjectLoad] = {}
    for unit in placement_order(grid.units):
        loads[unit.load.load_index] = unit.load
        for day_index, slot in candidate_cells(grid, unit):
            if grid.is_eligible(unit, day_index, slot):
                grid.place(unit.unit_id, day_index, slot)
                break
        else:
            failed[unit.load.load_index] += 1

    conflicts: list[Conflict] = []
    for load_index in sorted(failed):
        load = loads[load_index]
        conflicts.append(_unmet_demand_conflict(load, load.weekly_count - failed[load_index]))
    return conflicts
