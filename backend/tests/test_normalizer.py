import pytest

from timetable_api.core.exceptions import RequestValidationFailed
from timetable_api.services.scheduling.normalizer import normalize_request


def build_request(**overrides):
    payload = {
        "termId": "2025",
        "classId": "10A",
        "timeSlotsPerDay": 4,
        "days": [1, 2],
        "subjectLoads": [{"subjectId": "math", "teacherId": "t1", "weeklyCount": 4}],
    }
    payload.update(overrides)
    return payload


def test_normalize_expands_loads_into_units():
    instance = normalize_request(
        build_request(
            subjectLoads=[
                {"subjectId": "math", "teacherId": "t1", "weeklyCount": 3},
                {"subjectId": "art", "teacherId": "t2", "weeklyCount": 2, "difficulty": 4},
            ]
        )
    )

    assert len(instance.loads) == 2
    assert [unit.unit_id for unit in instance.units] == [0, 1, 2, 3, 4]
    assert [unit.subject_id for unit in instance.units] == ["math", "math", "math", "art", "art"]
    assert [unit.occurrence for unit in instance.units] == [0, 1, 2, 0, 1]
    assert instance.units[0].difficulty == 0
    assert instance.units[3].difficulty == 4
    assert instance.teacher_ids == ("t1", "t2")
    assert instance.grid.cell_count == 8


def test_normalize_dedupes_and_sorts_days():
    instance = normalize_request(build_request(days=[5, 1, 5, 3]))

    assert instance.grid.days == (1, 3, 5)
    assert instance.grid.day_index(5) == 2


def test_normalize_keeps_first_occurrence_of_preferred_slots():
    instance = normalize_request(
        build_request(
            subjectLoads=[{"subjectId": "math", "teacherId": "t1", "weeklyCount": 1, "preferredSlots": [2, 0, 2]}]
        )
    )

    assert instance.loads[0].preferred_slots == (2, 0)


def test_normalize_strips_identifiers():
    instance = normalize_request(
        build_request(subjectLoads=[{"subjectId": " math ", "teacherId": " t1", "weeklyCount": 1}])
    )

    assert instance.loads[0].subject_id == "math"
    assert instance.loads[0].teacher_id == "t1"


def test_preferred_slot_outside_day_is_rejected():
    with pytest.raises(RequestValidationFailed) as exc_info:
        normalize_request(
            build_request(
                subjectLoads=[
                    {"subjectId": "math", "teacherId": "t1", "weeklyCount": 1},
                    {"subjectId": "art", "teacherId": "t2", "weeklyCount": 1, "preferredSlots": [1, 4]},
                ]
            )
        )

    assert exc_info.value.field == "subjectLoads[1].preferredSlots"
    assert exc_info.value.status_code == 422


@pytest.mark.parametrize(
    ("overrides", "field"),
    [
        ({"timeSlotsPerDay": 17}, "timeSlotsPerDay"),
        ({"timeSlotsPerDay": 0}, "timeSlotsPerDay"),
        ({"days": []}, "days"),
        ({"days": [0, 2]}, "days"),
        ({"subjectLoads": []}, "subjectLoads"),
        (
            {"subjectLoads": [{"subjectId": "math", "teacherId": "t1", "weeklyCount": 0}]},
            "subjectLoads[0].weeklyCount",
        ),
        (
            {"subjectLoads": [{"subjectId": "math", "teacherId": "   ", "weeklyCount": 1}]},
            "subjectLoads[0].teacherId",
        ),
        (
            {"subjectLoads": [{"subjectId": "math", "teacherId": "t1", "weeklyCount": 1, "preferredSlots": [-1]}]},
            "subjectLoads[0].preferredSlots",
        ),
    ],
)
def test_invalid_request_reports_offending_field(overrides, field):
    with pytest.raises(RequestValidationFailed) as exc_info:
        normalize_request(build_request(**overrides))

    assert exc_info.value.field == field
    assert exc_info.value.details["field"] == field


def test_too_many_subject_loads_is_rejected():
    loads = [{"subjectId": f"s{index}", "teacherId": "t1", "weeklyCount": 1} for index in range(129)]

    with pytest.raises(RequestValidationFailed) as exc_info:
        normalize_request(build_request(subjectLoads=loads))

    assert exc_info.value.field == "subjectLoads"
