from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Index, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from timetable_api.db.base import Base


class SemesterScheduleStatus(str, Enum):
    draft = "DRAFT"
    published = "PUBLISHED"
    archived = "ARCHIVED"


class SemesterSchedule(Base):
    __tablename__ = "semester_schedules"
    __table_args__ = (
        UniqueConstraint("term_id", "class_id", "version", name="uq_semester_schedules_term_class_version"),
        Index("ix_semester_schedules_term_class", "term_id", "class_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    term_id: Mapped[str] = mapped_column(String(36), nullable=False)
    class_id: Mapped[str] = mapped_column(String(36), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[SemesterScheduleStatus] = mapped_column(
        SAEnum(
            SemesterScheduleStatus,
            name="semester_schedule_status",
            values_callable=lambda statuses: [item.value for item in statuses],
        ),
        nullable=False,
        default=SemesterScheduleStatus.draft,
    )
    meta: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    slots: Mapped[list["SemesterScheduleSlot"]] = relationship(
        back_populates="schedule",
        cascade="all, delete-orphan",
    )


class SemesterScheduleSlot(Base):
    __tablename__ = "semester_schedule_slots"
    __table_args__ = (
        UniqueConstraint(
            "semester_schedule_id",
            "day_of_week",
            "time_slot",
            name="uq_semester_schedule_slots_cell",
        ),
        Index("ix_semester_schedule_slots_teacher", "teacher_id", "day_of_week", "time_slot"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    semester_schedule_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("semester_schedules.id", ondelete="CASCADE"), nullable=False
    )
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    time_slot: Mapped[int] = mapped_column(Integer, nullable=False)
    subject_id: Mapped[str] = mapped_column(String(36), nullable=False)
    teacher_id: Mapped[str] = mapped_column(String(36), nullable=False)
    room: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    schedule: Mapped[SemesterSchedule] = relationship(back_populates="slots")
