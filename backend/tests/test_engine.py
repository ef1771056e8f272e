from collections import Counter

import pytest

from timetable_api.core.exceptions import SchedulerError
from timetable_api.services.scheduling.constraints import TeacherConstraint
from timetable_api.services.scheduling.domain import UNMET_DEMAND
from timetable_api.services.scheduling.engine import compute_score, solve
from timetable_api.services.scheduling.normalizer import GridDescriptor, ProblemInstance, normalize_request


def run(payload, constraints=None, **caps):
    caps.setdefault("max_iterations", 20)
    caps.setdefault("max_swap_attempts", 20_000)
    return solve(normalize_request(payload), constraints or {}, **caps)


SCENARIO = {
    "termId": "2025",
    "classId": "10A",
    "timeSlotsPerDay": 4,
    "days": [1, 2],
    "subjectLoads": [{"subjectId": "math", "teacherId": "t1", "weeklyCount": 4}],
}

MIXED = {
    "termId": "2025",
    "classId": "9B",
    "timeSlotsPerDay": 6,
    "days": [1, 2, 3, 4, 5],
    "subjectLoads": [
        {"subjectId": "math", "teacherId": "t1", "weeklyCount": 6, "difficulty": 8},
        {"subjectId": "physics", "teacherId": "t1", "weeklyCount": 4, "difficulty": 7},
        {"subjectId": "english", "teacherId": "t2", "weeklyCount": 5, "preferredSlots": [0, 1]},
        {"subjectId": "history", "teacherId": "t3", "weeklyCount": 3},
        {"subjectId": "art", "teacherId": "t4", "weeklyCount": 2, "preferredSlots": [5]},
        {"subjectId": "sport", "teacherId": "t5", "weeklyCount": 12},
    ],
}

MIXED_CONSTRAINTS = {
    "t1": TeacherConstraint("t1", max_load_per_day=2, blocked=frozenset({(1, 0), (1, 1)})),
    "t5": TeacherConstraint("t5", max_load_per_week=8),
}


def test_scenario_places_all_demand_evenly():
    result = run(SCENARIO)

    assert len(result.slots) == 4
    assert all(slot.subject_id == "math" for slot in result.slots)
    assert Counter(slot.day_of_week for slot in result.slots) == {1: 2, 2: 2}
    assert result.conflicts == ()
    assert result.score == pytest.approx(100.0)


def test_scenario_with_excess_demand_reports_shortfall():
    result = run({**SCENARIO, "subjectLoads": [{"subjectId": "math", "teacherId": "t1", "weeklyCount": 10}]})

    assert len(result.slots) == 8
    assert len(result.conflicts) == 1
    conflict = result.conflicts[0]
    assert conflict.type == UNMET_DEMAND
    assert conflict.meta["shortfall"] == 2
    assert conflict.meta["placed"] == 8
    assert result.score == pytest.approx(0.0)


def test_generation_is_deterministic():
    first = run(MIXED, MIXED_CONSTRAINTS)
    second = run(MIXED, MIXED_CONSTRAINTS)

    assert first == second


def test_no_double_booking():
    result = run(MIXED, MIXED_CONSTRAINTS)

    cells = [(slot.day_of_week, slot.time_slot) for slot in result.slots]
    assert len(cells) == len(set(cells))
    teacher_cells = [(slot.teacher_id, slot.day_of_week, slot.time_slot) for slot in result.slots]
    assert len(teacher_cells) == len(set(teacher_cells))


def test_placed_plus_unmet_equals_weekly_count():
    result = run(MIXED, MIXED_CONSTRAINTS)

    placed = Counter((slot.subject_id, slot.teacher_id) for slot in result.slots)
    shortfall = Counter()
    for conflict in result.conflicts:
        if conflict.type == UNMET_DEMAND:
            shortfall[(conflict.meta["subjectId"], conflict.meta["teacherId"])] += conflict.meta["shortfall"]

    for load in MIXED["subjectLoads"]:
        key = (load["subjectId"], load["teacherId"])
        assert placed[key] + shortfall[key] == load["weeklyCount"]
    assert shortfall[("sport", "t5")] == 4


def test_hard_constraints_hold_after_repair():
    result = run(MIXED, MIXED_CONSTRAINTS)

    t1_slots = [slot for slot in result.slots if slot.teacher_id == "t1"]
    assert not any((slot.day_of_week, slot.time_slot) in {(1, 0), (1, 1)} for slot in t1_slots)
    assert max(Counter(slot.day_of_week for slot in t1_slots).values()) <= 2
    assert all(conflict.type == UNMET_DEMAND for conflict in result.conflicts)


def test_iteration_cap_bounds_reported_iterations():
    result = run(MIXED, MIXED_CONSTRAINTS, max_iterations=3)

    assert result.stats.iterations <= 3


def test_one_conflict_outweighs_any_penalty():
    assert compute_score(0, 500.0, 500.0) > compute_score(1, 0.0, 0.0)
    assert compute_score(0, 0.0, 0.0) == 100.0
    assert compute_score(0, 1.0, 0.0) < compute_score(0, 0.0, 0.0)


def test_empty_grid_is_rejected():
    instance = normalize_request(SCENARIO)
    broken = ProblemInstance(
        term_id=instance.term_id,
        class_id=instance.class_id,
        grid=GridDescriptor(days=(), slots_per_day=4),
        loads=instance.loads,
        units=instance.units,
    )

    with pytest.raises(SchedulerError) as exc_info:
        solve(broken, {}, max_iterations=5, max_swap_attempts=10)

    assert exc_info.value.status_code == 400
