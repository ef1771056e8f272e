import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from timetable_api.db.base import Base


class TeacherPreference(Base):
    """Capacity and availability rules owned by the teacher master data."""

    __tablename__ = "teacher_preferences"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    teacher_id: Mapped[str] = mapped_column(String(36), unique=True, index=True, nullable=False)
    max_load_per_day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_load_per_week: Mapped[int | None] = mapped_column(Integer, nullable=True)
    unavailable: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
