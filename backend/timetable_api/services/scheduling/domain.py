from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

UNMET_DEMAND = "unmet_demand"
HARD_CONSTRAINT_VIOLATION = "hard_constraint_violation"


@dataclass(frozen=True)
class SlotAssignment:
    day_of_week: int
    time_slot: int
    subject_id: str
    teacher_id: str
    room: str | None = None

    def as_payload(self) -> dict:
        return {
            "dayOfWeek": self.day_of_week,
            "timeSlot": self.time_slot,
            "subjectId": self.subject_id,
            "teacherId": self.teacher_id,
            "room": self.room,
        }

    @classmethod
    def from_payload(cls, data: dict) -> "SlotAssignment":
        return cls(
            day_of_week=int(data["dayOfWeek"]),
            time_slot=int(data["timeSlot"]),
            subject_id=data["subjectId"],
            teacher_id=data["teacherId"],
            room=data.get("room"),
        )


@dataclass(frozen=True)
class Conflict:
    type: str
    message: str
    slot: SlotAssignment | None = None
    meta: dict | None = None

    def as_payload(self) -> dict:
        return {
            "type": self.type,
            "message": self.message,
            "slot": self.slot.as_payload() if self.slot is not None else None,
            "meta": self.meta,
        }

    @classmethod
    def from_payload(cls, data: dict) -> "Conflict":
        slot = data.get("slot")
        return cls(
            type=data["type"],
            message=data["message"],
            slot=SlotAssignment.from_payload(slot) if slot else None,
            meta=data.get("meta"),
        )


@dataclass(frozen=True)
class ImprovementStats:
    iterations: int
    gap_penalty: float
    load_penalty: float


@dataclass(frozen=True)
class Proposal:
    """A generated, not yet committed timetable for one class and term."""

    proposal_id: str
    term_id: str
    class_id: str
    score: float
    slots: tuple[SlotAssignment, ...]
    conflicts: tuple[Conflict, ...]
    stats: ImprovementStats
    context: dict = field(default_factory=dict)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_payload(self) -> dict:
        return {
            "proposalId": self.proposal_id,
            "termId": self.term_id,
            "classId": self.class_id,
            "score": self.score,
            "slots": [slot.as_payload() for slot in self.slots],
            "conflicts": [conflict.as_payload() for conflict in self.conflicts],
            "stats": {
                "iterations": self.stats.iterations,
                "gapPenalty": self.stats.gap_penalty,
                "loadPenalty": self.stats.load_penalty,
            },
            "context": self.context,
            "generatedAt": self.generated_at.isoformat(),
        }

    @classmethod
    def from_payload(cls, data: dict) -> "Proposal":
        stats = data.get("stats") or {}
        return cls(
            proposal_id=data["proposalId"],
            term_id=data["termId"],
            class_id=data["classId"],
            score=float(data["score"]),
            slots=tuple(SlotAssignment.from_payload(item) for item in data.get("slots", [])),
            conflicts=tuple(Conflict.from_payload(item) for item in data.get("conflicts", [])),
            stats=ImprovementStats(
                iterations=int(stats.get("iterations", 0)),
                gap_penalty=float(stats.get("gapPenalty", 0.0)),
                load_penalty=float(stats.get("loadPenalty", 0.0)),
            ),
            context=dict(data.get("context") or {}),
            generated_at=datetime.fromisoformat(data["generatedAt"]),
        )
