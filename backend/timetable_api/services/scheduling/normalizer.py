"""Turns a raw generation request into a grid-shaped problem instance.

Validation happens before anything is built: a request that fails here
never reaches placement, so no partial grid exists for it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from pydantic import ValidationError

from timetable_api.core.exceptions import RequestValidationFailed
from timetable_api.schemas.generator import GenerateScheduleRequest


@dataclass(frozen=True)
class GridDescriptor:
    days: tuple[int, ...]
    slots_per_day: int

    @property
    def cell_count(self) -> int:
        return len(self.days) * self.slots_per_day

    def day_index(self, day: int) -> int:
        return self.days.index(day)


@dataclass(frozen=True)
class SubjectLoad:
    load_index: int
    subject_id: str
    teacher_id: str
    weekly_count: int
    difficulty: int | None = None
    preferred_slots: tuple[int, ...] = ()
    tags: tuple[str, ...] = ()

    def as_payload(self) -> dict:
        return {
            "subjectId": self.subject_id,
            "teacherId": self.teacher_id,
            "weeklyCount": self.weekly_count,
            "difficulty": self.difficulty,
            "preferredSlots": list(self.preferred_slots),
            "tags": list(self.tags),
        }


@dataclass(frozen=True)
class DemandUnit:
    """One required weekly occurrence of a subject load."""

    unit_id: int
    load: SubjectLoad
    occurrence: int

    @property
    def subject_id(self) -> str:
        return self.load.subject_id

    @property
    def teacher_id(self) -> str:
        return self.load.teacher_id

    @property
    def difficulty(self) -> int:
        return self.load.difficulty or 0


@dataclass(frozen=True)
class ProblemInstance:
    term_id: str
    class_id: str
    grid: GridDescriptor
    loads: tuple[SubjectLoad, ...]
    units: tuple[DemandUnit, ...]
    hard_constraints: tuple[str, ...] = ()
    soft_constraints: tuple[str, ...] = ()
    meta: dict = field(default_factory=dict)

    @property
    def teacher_ids(self) -> tuple[str, ...]:
        return tuple(sorted({load.teacher_id for load in self.loads}))


def _error_field(error: Mapping[str, Any]) -> str:
    parts: list[str] = []
    for item in error.get("loc", ()):
        if isinstance(item, int) and parts:
            parts[-1] = f"{parts[-1]}[{item}]"
        else:
            parts.append(str(item))
    return ".".join(parts) or "body"


def validate_request(payload: GenerateScheduleRequest | Mapping[str, Any]) -> GenerateScheduleRequest:
    if isinstance(payload, GenerateScheduleRequest):
        return payload
    try:
        return GenerateScheduleRequest.model_validate(payload)
    except ValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False)
        first = errors[0]
        raise RequestValidationFailed(
            _error_field(first),
            first.get("msg", "invalid value"),
            details={"errors": [{"field": _error_field(item), "message": item.get("msg")} for item in errors]},
        ) from exc


def normalize_request(payload: GenerateScheduleRequest | Mapping[str, Any]) -> ProblemInstance:
    request = validate_request(payload)

    for index, item in enumerate(request.subject_loads):
        outside = [slot for slot in item.preferred_slots if slot >= request.time_slots_per_day]
        if outside:
            raise RequestValidationFailed(
                f"subjectLoads[{index}].preferredSlots",
                f"slot indices {outside} outside [0, {request.time_slots_per_day})",
            )

    grid = GridDescriptor(
        days=tuple(sorted(set(request.days))),
        slots_per_day=request.time_slots_per_day,
    )

    loads: list[SubjectLoad] = []
    units: list[DemandUnit] = []
    for index, item in enumerate(request.subject_loads):
        load = SubjectLoad(
            load_index=index,
            subject_id=item.subject_id,
            teacher_id=item.teacher_id,
            weekly_count=item.weekly_count,
            difficulty=item.difficulty,
            preferred_slots=tuple(dict.fromkeys(item.preferred_slots)),
            tags=tuple(item.tags),
        )
        loads.append(load)
        for occurrence in range(load.weekly_count):
            units.append(DemandUnit(unit_id=len(units), load=load, occurrence=occurrence))

    return ProblemInstance(
        term_id=request.term_id,
        class_id=request.class_id,
        grid=grid,
        loads=tuple(loads),
        units=tuple(units),
        hard_constraints=tuple(request.hard_constraints),
        soft_constraints=tuple(request.soft_constraints),
        meta=dict(request.meta),
    )
