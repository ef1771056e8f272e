import logging

from fastapi import APIRouter, Depends, Query, Response, status

from timetable_api.api.deps import Principal, get_current_principal, get_generator_service, require_scheduler_role
from timetable_api.schemas.generator import (
    GenerateScheduleRequest,
    ProposalOut,
    SaveScheduleRequest,
    SaveScheduleResponse,
    SchedulePreviewResponse,
    ScheduleStatusUpdate,
    SemesterScheduleOut,
    SemesterScheduleSlotOut,
)
from timetable_api.services.schedule_generator import ScheduleGenerator

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/schedules/generator", response_model=SchedulePreviewResponse)
@router.post("/schedule/generate", response_model=SchedulePreviewResponse, include_in_schema=False)
def generate_schedule(
    payload: GenerateScheduleRequest,
    principal: Principal = Depends(require_scheduler_role),
    service: ScheduleGenerator = Depends(get_generator_service),
) -> SchedulePreviewResponse:
    logger.info(
        "SCHEDULE PREVIEW REQUEST | user_id=%s | term_id=%s | class_id=%s",
        principal.id,
        payload.term_id,
        payload.class_id,
    )
    proposal = service.generate(payload)
    return SchedulePreviewResponse(proposal=ProposalOut.model_validate(proposal.as_payload()))


@router.post("/schedule/save", response_model=SaveScheduleResponse, status_code=status.HTTP_201_CREATED)
def save_schedule(
    payload: SaveScheduleRequest,
    principal: Principal = Depends(require_scheduler_role),
    service: ScheduleGenerator = Depends(get_generator_service),
) -> SaveScheduleResponse:
    schedule_id = service.save(
        payload.proposal_id,
        commit_to_daily=payload.commit_to_daily,
        actor_id=principal.id,
    )
    return SaveScheduleResponse(schedule_id=schedule_id)


@router.get("/semester-schedule", response_model=list[SemesterScheduleOut])
def list_semester_schedules(
    term_id: str = Query(alias="termId", min_length=1, max_length=36),
    class_id: str = Query(alias="classId", min_length=1, max_length=36),
    principal: Principal = Depends(get_current_principal),
    service: ScheduleGenerator = Depends(get_generator_service),
) -> list[SemesterScheduleOut]:
    return [SemesterScheduleOut.model_validate(item) for item in service.list(term_id, class_id)]


@router.get("/semester-schedule/{schedule_id}/slots", response_model=list[SemesterScheduleSlotOut])
def list_semester_schedule_slots(
    schedule_id: str,
    principal: Principal = Depends(get_current_principal),
    service: ScheduleGenerator = Depends(get_generator_service),
) -> list[SemesterScheduleSlotOut]:
    return [SemesterScheduleSlotOut.model_validate(item) for item in service.get_slots(schedule_id)]


@router.patch("/semester-schedule/{schedule_id}/status", response_model=SemesterScheduleOut)
def update_semester_schedule_status(
    schedule_id: str,
    payload: ScheduleStatusUpdate,
    principal: Principal = Depends(require_scheduler_role),
    service: ScheduleGenerator = Depends(get_generator_service),
) -> SemesterScheduleOut:
    schedule = service.update_status(schedule_id, payload.status)
    return SemesterScheduleOut.model_validate(schedule)


@router.delete("/semester-schedule/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_semester_schedule(
    schedule_id: str,
    principal: Principal = Depends(require_scheduler_role),
    service: ScheduleGenerator = Depends(get_generator_service),
) -> Response:
    service.delete(schedule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
