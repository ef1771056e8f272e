from timetable_api.models.proposal import CachedProposal  # noqa: F401
from timetable_api.models.semester_schedule import (  # noqa: F401
    SemesterSchedule,
    SemesterScheduleSlot,
    SemesterScheduleStatus,
)
from timetable_api.models.teacher_preference import TeacherPreference  # noqa: F401
