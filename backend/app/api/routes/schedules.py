import logging
from time import perf_counter

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_actor_id, get_auto_scheduler, get_db, get_proposal_service
from app.schemas.scheduler import (
    ApplyProposalResponse,
    BatchScheduleRequest,
    CheckConflictsRequest,
    ConflictRecordOut,
    CourseScheduleOut,
    GenerateScheduleRequest,
    GenerateScheduleResponse,
    GenerationStatsOut,
    ProposalOut,
    ProposalSummaryOut,
    ScheduleStatusSummaryOut,
    SessionScheduleRequest,
    StatusTransitionResponse,
    ValidateScheduleRequest,
    ValidationReportOut,
)
from app.services.audit import log_activity
from app.services.auto_scheduler import AutoScheduler
from app.services.schedule_proposals import ScheduleProposalService, serialize_proposal

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/schedules/generate", response_model=GenerateScheduleResponse, status_code=status.HTTP_201_CREATED)
def generate_schedule(
    payload: GenerateScheduleRequest,
    actor_id: str = Depends(get_actor_id),
    scheduler: AutoScheduler = Depends(get_auto_scheduler),
    db: Session = Depends(get_db),
) -> GenerateScheduleResponse:
    started = perf_counter()
    logger.info(
        "SCHEDULE GENERATION START | user_id=%s | session_id=%s | batches=%s | department_id=%s | target_shift=%s",
        actor_id,
        payload.session_id,
        len(payload.batch_ids or []),
        payload.department_id,
        payload.target_shift,
    )
    try:
        result = scheduler.generate_schedule(payload.session_id, actor_id, payload)
        db.commit()
        response = GenerateScheduleResponse(
            proposal=ProposalOut.model_validate(serialize_proposal(result.proposal)),
            stats=GenerationStatsOut.model_validate(result.stats),
        )
    except Exception:
        db.rollback()
        elapsed_ms = int((perf_counter() - started) * 1000)
        logger.exception(
            "SCHEDULE GENERATION FAILED | user_id=%s | session_id=%s | wall_ms=%s",
            actor_id,
            payload.session_id,
            elapsed_ms,
        )
        raise

    elapsed_ms = int((perf_counter() - started) * 1000)
    logger.info(
        "SCHEDULE GENERATION COMPLETE | user_id=%s | session_id=%s | proposal_id=%s | scheduled=%s | unscheduled=%s | wall_ms=%s",
        actor_id,
        payload.session_id,
        response.proposal.id,
        response.stats.scheduled,
        len(response.stats.unscheduled),
        elapsed_ms,
    )
    return response


@router.post("/schedules/validate", response_model=ValidationReportOut)
def validate_schedule(
    payload: ValidateScheduleRequest,
    scheduler: AutoScheduler = Depends(get_auto_scheduler),
) -> ValidationReportOut:
    report = scheduler.gatherer.validate_prerequisites(payload.session_id, payload.batch_ids, payload.department_id)
    return ValidationReportOut.model_validate(report.to_dict())


@router.post("/schedules/check-conflicts", response_model=list[ConflictRecordOut])
def check_conflicts(
    payload: CheckConflictsRequest,
    scheduler: AutoScheduler = Depends(get_auto_scheduler),
) -> list[ConflictRecordOut]:
    records = scheduler.check_existing_conflicts(payload.batch_ids, payload.session_id)
    return [ConflictRecordOut.model_validate(record.to_payload()) for record in records]


@router.get("/schedules/proposals", response_model=list[ProposalSummaryOut])
def list_proposals(
    session_id: str | None = Query(default=None),
    proposals: ScheduleProposalService = Depends(get_proposal_service),
) -> list[ProposalSummaryOut]:
    return [
        ProposalSummaryOut.model_validate(serialize_proposal(item, include_items=False))
        for item in proposals.get_proposals(session_id)
    ]


@router.get("/schedules/proposals/{proposal_id}", response_model=ProposalOut)
def get_proposal(
    proposal_id: str,
    proposals: ScheduleProposalService = Depends(get_proposal_service),
) -> ProposalOut:
    return ProposalOut.model_validate(proposals.get_proposal_by_id(proposal_id))


@router.post("/schedules/proposals/{proposal_id}/apply", response_model=ApplyProposalResponse)
def apply_proposal(
    proposal_id: str,
    actor_id: str = Depends(get_actor_id),
    proposals: ScheduleProposalService = Depends(get_proposal_service),
    db: Session = Depends(get_db),
) -> ApplyProposalResponse:
    result = proposals.apply_proposal(proposal_id)
    log_activity(
        db,
        user_id=actor_id,
        action="schedule.proposal.apply",
        entity_type="schedule_proposal",
        entity_id=proposal_id,
        details={
            "schedules_created": result["schedules_created"],
            "previous_schedules_closed": result["previous_schedules_closed"],
        },
    )
    db.commit()
    return ApplyProposalResponse.model_validate(result)


@router.post("/schedules/proposals/{proposal_id}/reject", response_model=ProposalSummaryOut)
def reject_proposal(
    proposal_id: str,
    actor_id: str = Depends(get_actor_id),
    proposals: ScheduleProposalService = Depends(get_proposal_service),
    db: Session = Depends(get_db),
) -> ProposalSummaryOut:
    proposal = proposals.reject_proposal(proposal_id)
    log_activity(
        db,
        user_id=actor_id,
        action="schedule.proposal.reject",
        entity_type="schedule_proposal",
        entity_id=proposal_id,
    )
    db.commit()
    return ProposalSummaryOut.model_validate(serialize_proposal(proposal, include_items=False))


@router.delete("/schedules/proposals/{proposal_id}")
def delete_proposal(
    proposal_id: str,
    actor_id: str = Depends(get_actor_id),
    proposals: ScheduleProposalService = Depends(get_proposal_service),
    db: Session = Depends(get_db),
) -> dict:
    proposals.delete_proposal(proposal_id)
    log_activity(
        db,
        user_id=actor_id,
        action="schedule.proposal.delete",
        entity_type="schedule_proposal",
        entity_id=proposal_id,
    )
    db.commit()
    return {"success": True, "message": "Proposal deleted successfully"}


@router.post("/schedules/close-batches", response_model=StatusTransitionResponse)
def close_batch_schedules(
    payload: BatchScheduleRequest,
    actor_id: str = Depends(get_actor_id),
    scheduler: AutoScheduler = Depends(get_auto_scheduler),
    db: Session = Depends(get_db),
) -> StatusTransitionResponse:
    result = scheduler.close_schedules_for_batches(payload.batch_ids)
    log_activity(
        db,
        user_id=actor_id,
        action="schedule.close.batches",
        entity_type="course_schedule",
        details={"batch_ids": payload.batch_ids, "count": result["count"]},
    )
    db.commit()
    return StatusTransitionResponse.model_validate(result)


@router.post("/schedules/close-session", response_model=StatusTransitionResponse)
def close_session_schedules(
    payload: SessionScheduleRequest,
    actor_id: str = Depends(get_actor_id),
    scheduler: AutoScheduler = Depends(get_auto_scheduler),
    db: Session = Depends(get_db),
) -> StatusTransitionResponse:
    result = scheduler.close_schedules_for_session(payload.session_id)
    log_activity(
        db,
        user_id=actor_id,
        action="schedule.close.session",
        entity_type="course_schedule",
        entity_id=payload.session_id,
        details={"count": result["count"]},
    )
    db.commit()
    return StatusTransitionResponse.model_validate(result)


@router.post("/schedules/reopen-batches", response_model=StatusTransitionResponse)
def reopen_batch_schedules(
    payload: BatchScheduleRequest,
    actor_id: str = Depends(get_actor_id),
    scheduler: AutoScheduler = Depends(get_auto_scheduler),
    db: Session = Depends(get_db),
) -> StatusTransitionResponse:
    result = scheduler.reopen_schedules_for_batches(payload.batch_ids)
    log_activity(
        db,
        user_id=actor_id,
        action="schedule.reopen.batches",
        entity_type="course_schedule",
        details={"batch_ids": payload.batch_ids, "count": result["count"]},
    )
    db.commit()
    return StatusTransitionResponse.model_validate(result)


@router.get("/schedules/status-summary", response_model=ScheduleStatusSummaryOut)
def schedule_status_summary(
    batch_ids: list[str] | None = Query(default=None),
    session_id: str | None = Query(default=None),
    scheduler: AutoScheduler = Depends(get_auto_scheduler),
) -> ScheduleStatusSummaryOut:
    return ScheduleStatusSummaryOut.model_validate(scheduler.get_schedule_status_summary(batch_ids, session_id))


@router.get("/schedules/active", response_model=list[CourseScheduleOut])
def active_schedules(
    batch_ids: list[str] | None = Query(default=None),
    session_id: str | None = Query(default=None),
    scheduler: AutoScheduler = Depends(get_auto_scheduler),
) -> list[CourseScheduleOut]:
    return [CourseScheduleOut.model_validate(row) for row in scheduler.get_active_schedules(batch_ids, session_id)]
