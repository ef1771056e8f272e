from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from timetable_api.models.semester_schedule import SemesterScheduleStatus

MAX_TIME_SLOTS_PER_DAY = 16
MAX_SUBJECT_LOADS = 128
# A class cannot hold more sessions than 7 days x 16 slots.
MAX_WEEKLY_COUNT = 7 * MAX_TIME_SLOTS_PER_DAY


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class SubjectLoadIn(CamelModel):
    subject_id: str = Field(alias="subjectId", min_length=1, max_length=36)
    teacher_id: str = Field(alias="teacherId", min_length=1, max_length=36)
    weekly_count: int = Field(alias="weeklyCount", ge=1, le=MAX_WEEKLY_COUNT)
    difficulty: int | None = Field(default=None, ge=1, le=10)
    preferred_slots: list[int] = Field(default_factory=list, alias="preferredSlots")
    tags: list[str] = Field(default_factory=list)

    @field_validator("subject_id", "teacher_id")
    @classmethod
    def strip_identifier(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Identifier must not be blank")
        return cleaned

    @field_validator("preferred_slots")
    @classmethod
    def validate_preferred_slots(cls, value: list[int]) -> list[int]:
        negative = [slot for slot in value if slot < 0]
        if negative:
            raise ValueError(f"Preferred slot indices must be >= 0, got {negative}")
        return value


class GenerateScheduleRequest(CamelModel):
    term_id: str = Field(alias="termId", min_length=1, max_length=36)
    class_id: str = Field(alias="classId", min_length=1, max_length=36)
    time_slots_per_day: int = Field(alias="timeSlotsPerDay", ge=1, le=MAX_TIME_SLOTS_PER_DAY)
    days: list[int] = Field(min_length=1)
    subject_loads: list[SubjectLoadIn] = Field(alias="subjectLoads", min_length=1, max_length=MAX_SUBJECT_LOADS)
    hard_constraints: list[str] = Field(default_factory=list, alias="hardConstraints")
    soft_constraints: list[str] = Field(default_factory=list, alias="softConstraints")
    meta: dict = Field(default_factory=dict)

    @field_validator("days")
    @classmethod
    def validate_days(cls, value: list[int]) -> list[int]:
        invalid = [day for day in value if day < 1 or day > 7]
        if invalid:
            raise ValueError(f"Days must be between 1 and 7, got {invalid}")
        return value


class ScheduleSlotOut(CamelModel):
    day_of_week: int = Field(alias="dayOfWeek")
    time_slot: int = Field(alias="timeSlot")
    subject_id: str = Field(alias="subjectId")
    teacher_id: str = Field(alias="teacherId")
    room: str | None = None


class ProposalConflictOut(CamelModel):
    type: str
    message: str
    slot: ScheduleSlotOut | None = None
    meta: dict | None = None


class ImprovementStatsOut(CamelModel):
    iterations: int
    gap_penalty: float = Field(alias="gapPenalty")
    load_penalty: float = Field(alias="loadPenalty")


class ProposalOut(CamelModel):
    proposal_id: str = Field(alias="proposalId")
    score: float
    slots: list[ScheduleSlotOut]
    conflicts: list[ProposalConflictOut]
    stats: ImprovementStatsOut


class SchedulePreviewResponse(CamelModel):
    mode: Literal["preview"] = "preview"
    proposal: ProposalOut


class SaveScheduleRequest(CamelModel):
    proposal_id: str = Field(alias="proposalId", min_length=1, max_length=36)
    commit_to_daily: bool = Field(default=False, alias="commitToDaily")


class SaveScheduleResponse(CamelModel):
    schedule_id: str = Field(alias="scheduleId")


class SemesterScheduleOut(CamelModel):
    id: str
    term_id: str = Field(alias="termId")
    class_id: str = Field(alias="classId")
    version: int
    status: SemesterScheduleStatus
    score: float | None = None
    meta: dict
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    @model_validator(mode="after")
    def lift_score_from_meta(self) -> "SemesterScheduleOut":
        if self.score is None and isinstance(self.meta.get("score"), (int, float)):
            self.score = float(self.meta["score"])
        return self


class SemesterScheduleSlotOut(CamelModel):
    id: str
    semester_schedule_id: str = Field(alias="semesterScheduleId")
    day_of_week: int = Field(alias="dayOfWeek")
    time_slot: int = Field(alias="timeSlot")
    subject_id: str = Field(alias="subjectId")
    teacher_id: str = Field(alias="teacherId")
    room: str | None = None


class ScheduleStatusUpdate(CamelModel):
    status: SemesterScheduleStatus
