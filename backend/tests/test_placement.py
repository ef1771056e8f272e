from timetable_api.services.scheduling.constraints import ConstraintModel, TeacherConstraint
from timetable_api.services.scheduling.domain import UNMET_DEMAND
from timetable_api.services.scheduling.normalizer import normalize_request
from timetable_api.services.scheduling.placement import (
    ScheduleGrid,
    candidate_cells,
    place_units,
    placement_order,
)


def build_grid(loads, *, days=(1, 2), slots=4, constraints=None):
    instance = normalize_request(
        {
            "termId": "2025",
            "classId": "10A",
            "timeSlotsPerDay": slots,
            "days": list(days),
            "subjectLoads": loads,
        }
    )
    return ScheduleGrid(instance.grid, instance.units, ConstraintModel(constraints))


def occupied(grid):
    return [(grid.days[day_index], slot) for day_index, slot in grid.iter_cells() if grid.unit_at(day_index, slot)]


def test_placement_order_prefers_difficulty_then_weekly_count_then_ids():
    grid = build_grid(
        [
            {"subjectId": "b", "teacherId": "t1", "weeklyCount": 1},
            {"subjectId": "a", "teacherId": "t2", "weeklyCount": 1},
            {"subjectId": "z", "teacherId": "t3", "weeklyCount": 2},
            {"subjectId": "y", "teacherId": "t4", "weeklyCount": 1, "difficulty": 9},
        ]
    )

    order = [(unit.subject_id, unit.occurrence) for unit in placement_order(grid.units)]

    assert order == [("y", 0), ("z", 0), ("z", 1), ("a", 0), ("b", 0)]


def test_candidate_cells_visit_preferred_slots_first():
    grid = build_grid([{"subjectId": "math", "teacherId": "t1", "weeklyCount": 1, "preferredSlots": [2]}])

    cells = list(candidate_cells(grid, grid.units[0]))

    assert cells[:2] == [(0, 2), (1, 2)]
    assert cells[2:5] == [(0, 0), (0, 1), (0, 3)]
    assert len(cells) == grid.descriptor.cell_count


def test_place_units_fills_grid_in_order():
    grid = build_grid([{"subjectId": "math", "teacherId": "t1", "weeklyCount": 4}])

    conflicts = place_units(grid)

    assert conflicts == []
    assert occupied(grid) == [(1, 0), (1, 1), (1, 2), (1, 3)]
    assert grid.day_counts == [4, 0]


def test_place_units_skips_blocked_cells():
    grid = build_grid(
        [{"subjectId": "math", "teacherId": "t1", "weeklyCount": 2}],
        slots=2,
        constraints={"t1": TeacherConstraint("t1", blocked=frozenset({(1, 0)}))},
    )

    place_units(grid)

    assert occupied(grid) == [(1, 1), (2, 0)]


def test_daily_cap_spreads_sessions_across_days():
    grid = build_grid(
        [{"subjectId": "math", "teacherId": "t1", "weeklyCount": 3}],
        days=(1, 2, 3),
        constraints={"t1": TeacherConstraint("t1", max_load_per_day=1)},
    )

    assert place_units(grid) == []
    assert occupied(grid) == [(1, 0), (2, 0), (3, 0)]


def test_weekly_cap_produces_one_aggregated_unmet_demand_conflict():
    grid = build_grid(
        [
            {"subjectId": "math", "teacherId": "t1", "weeklyCount": 5},
            {"subjectId": "art", "teacherId": "t2", "weeklyCount": 1},
        ],
        constraints={"t1": TeacherConstraint("t1", max_load_per_week=3)},
    )

    conflicts = place_units(grid)

    assert len(conflicts) == 1
    conflict = conflicts[0]
    assert conflict.type == UNMET_DEMAND
    assert conflict.meta == {
        "subjectId": "math",
        "teacherId": "t1",
        "loadIndex": 0,
        "requested": 5,
        "placed": 3,
        "shortfall": 2,
    }
    assert grid.placed_by_load() == {0: 3, 1: 1}


def test_export_slots_follow_grid_order():
    grid = build_grid(
        [
            {"subjectId": "math", "teacherId": "t1", "weeklyCount": 1, "preferredSlots": [3]},
            {"subjectId": "art", "teacherId": "t2", "weeklyCount": 1},
        ]
    )
    place_units(grid)

    slots = grid.export_slots()

    assert [(slot.day_of_week, slot.time_slot, slot.subject_id) for slot in slots] == [
        (1, 0, "art"),
        (1, 3, "math"),
    ]
