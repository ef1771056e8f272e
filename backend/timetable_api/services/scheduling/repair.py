from __future__ import annotations

import logging

from timetable_api.services.scheduling.domain import (
    HARD_CONSTRAINT_VIOLATION,
    Conflict,
    ImprovementStats,
    SlotAssignment,
)
from timetable_api.services.scheduling.normalizer import DemandUnit
from timetable_api.services.scheduling.placement import EMPTY, ScheduleGrid

logger = logging.getLogger(__name__)

_EPSILON = 1e-9


def day_gap_penalty(grid: ScheduleGrid, day_index: int) -> int:
    """Idle slots strictly between each teacher's first and last session that day."""
    spans: dict[int, list[int]] = {}
    row = grid.cells[day_index]
    for slot, unit_id in enumerate(row):
        if unit_id == EMPTY:
            continue
        teacher = grid.unit_teacher[unit_id]
        span = spans.get(teacher)
        if span is None:
            spans[teacher] = [slot, slot, 1]
        else:
            span[1] = slot
            span[2] += 1
    return sum((last - first + 1) - count for first, last, count in spans.values())


def gap_penalty(grid: ScheduleGrid) -> int:
    return sum(day_gap_penalty(grid, day_index) for day_index in range(len(grid.days)))


def load_penalty(grid: ScheduleGrid) -> float:
    """Population variance of occupied cells per day."""
    counts = grid.day_counts
    if not counts:
        return 0.0
    mean = sum(counts) / len(counts)
    return sum((count - mean) ** 2 for count in counts) / len(counts)


class RepairEngine:
    """First-improvement local search over pairwise cell swaps.

    A swap exchanges the contents of an occupied cell with another cell
    (occupied or empty). Only swaps that keep every hard constraint and
    strictly lower gap + load penalty are applied, one per iteration.
    """

    def __init__(self, grid: ScheduleGrid, *, max_iterations: int, max_swap_attempts: int) -> None:
        self.grid = grid
        self.max_iterations = max(0, max_iterations)
        self.max_swap_attempts = max(1, max_swap_attempts)
        self._day_gaps = [day_gap_penalty(grid, index) for index in range(len(grid.days))]

    def _total(self) -> float:
        return sum(self._day_gaps) + load_penalty(self.grid)

    def _swap_is_legal(self, a: tuple[int, int], b: tuple[int, int]) -> bool:
        grid = self.grid
        unit_a = grid.unit_at(*a)
        unit_b = grid.unit_at(*b)
        if unit_a is None:
            return False
        if unit_b is not None and unit_b.load is unit_a.load:
            return False
        same_teacher = unit_b is not None and unit_b.teacher_id == unit_a.teacher_id

        if not self._can_move(unit_a, src=a, dst=b, same_teacher=same_teacher):
            return False
        if unit_b is not None and not self._can_move(unit_b, src=b, dst=a, same_teacher=same_teacher):
            return False
        return True

    def _can_move(self, unit: DemandUnit, *, src: tuple[int, int], dst: tuple[int, int], same_teacher: bool) -> bool:
        grid = self.grid
        dst_day = grid.days[dst[0]]
        if grid.constraints.is_blocked(unit.teacher_id, dst_day, dst[1]):
            return False
        if not same_teacher and grid.teacher_busy[grid.unit_teacher[unit.unit_id]][dst[0]][dst[1]]:
            return False
        if src[0] != dst[0] and not same_teacher:
            daily = grid.constraints.capacity_at(unit.teacher_id, dst_day)
            if daily is not None and daily < 1:
                return False
        return True

    def _apply_swap(self, a: tuple[int, int], b: tuple[int, int]) -> None:
        grid = self.grid
        unit_a = grid.remove(*a)
        unit_b = grid.remove(*b)
        grid.place(unit_a, *b)
        if unit_b != EMPTY:
            grid.place(unit_b, *a)

    def _refresh_gaps(self, *day_indices: int) -> None:
        for day_index in set(day_indices):
            self._day_gaps[day_index] = day_gap_penalty(self.grid, day_index)

    def _find_improving_swap(self) -> bool:
        grid = self.grid
        cells = list(grid.iter_cells())
        order = {cell: position for position, cell in enumerate(cells)}
        current = self._total()
        attempts = 0
        for a in cells:
            if grid.cells[a[0]][a[1]] == EMPTY:
                continue
            for b in cells:
                if b == a:
                    continue
                b_occupied = grid.cells[b[0]][b[1]] != EMPTY
                if b_occupied and order[b] < order[a]:
                    # already evaluated as (b, a)
                    continue
                if not self._swap_is_legal(a, b):
                    continue
                attempts += 1
                if attempts > self.max_swap_attempts:
                    return False
                self._apply_swap(a, b)
                self._refresh_gaps(a[0], b[0])
                if self._total() < current - _EPSILON:
                    return True
                self._apply_swap(b, a)
                self._refresh_gaps(a[0], b[0])
        return False

    def run(self) -> ImprovementStats:
        iterations = 0
        while iterations < self.max_iterations:
            if not self._find_improving_swap():
                break
            iterations += 1
        stats = ImprovementStats(
            iterations=iterations,
            gap_penalty=float(sum(self._day_gaps)),
            load_penalty=load_penalty(self.grid),
        )
        logger.debug(
            "REPAIR COMPLETE | iterations=%s | gap_penalty=%s | load_penalty=%.4f",
            stats.iterations,
            stats.gap_penalty,
            stats.load_penalty,
        )
        return stats


def audit_hard_constraints(grid: ScheduleGrid) -> list[Conflict]:
    """Reports any placed cell or teacher load that breaks a hard constraint."""
    conflicts: list[Conflict] = []
    for day_index, slot in grid.iter_cells():
        unit = grid.unit_at(day_index, slot)
        if unit is None:
            continue
        day = grid.days[day_index]
        if grid.constraints.is_blocked(unit.teacher_id, day, slot):
            conflicts.append(
                Conflict(
                    type=HARD_CONSTRAINT_VIOLATION,
                    message=f"teacher {unit.teacher_id} scheduled inside a blocked window",
                    slot=SlotAssignment(day, slot, unit.subject_id, unit.teacher_id),
                    meta={"teacherId": unit.teacher_id, "rule": "blockedWindow"},
                )
            )
    for teacher_id in grid.teacher_ids:
        for violation in grid.constraints.load_violations(teacher_id):
            conflicts.append(
                Conflict(
                    type=HARD_CONSTRAINT_VIOLATION,
                    message=(
                        f"teacher {teacher_id} exceeds {violation['rule']} "
                        f"({violation['load']} > {violation['limit']})"
                    ),
                    meta={"teacherId": teacher_id, **violation},
                )
            )
    return conflicts
