from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, ResourceNotFoundError
from app.models.academic_session import AcademicSession
from app.models.batch import Batch
from app.models.classroom import Classroom
from app.models.course_offering import CourseOffering
from app.models.schedule_proposal import ProposalStatus, ScheduleProposal
from app.models.teacher import Teacher
from app.services.course_schedules import CourseScheduleStore
from app.services.time_slot_engine import ScheduleEntry

logger = logging.getLogger(__name__)


def serialize_proposal(proposal: ScheduleProposal, include_items: bool = True) -> dict:
    payload = {
        "id": proposal.id,
        "session_id": proposal.session_id,
        "generated_by": proposal.generated_by,
        "status": proposal.status.value,
        "metadata": dict(proposal.details or {}),
        "item_count": len(proposal.schedule_data or []),
        "created_at": proposal.created_at,
    }
    if include_items:
        payload["schedule_data"] = list(proposal.schedule_data or [])
    return payload


class ScheduleProposalService:
    """Persistence and lifecycle of generated timetable proposals.

    A proposal moves from ``pending`` to ``approved`` (applied into the
    committed schedule store) or ``rejected``. Approved proposals are final.
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self.schedules = CourseScheduleStore(db)

    def create_proposal(
        self,
        session_id: str,
        generated_by: str,
        schedule_data: list[dict],
        metadata: dict | None = None,
    ) -> ScheduleProposal:
        items = [{**item, "sessionId": session_id} for item in schedule_data]
        proposal = ScheduleProposal(
            session_id=session_id,
            generated_by=generated_by,
            status=ProposalStatus.pending,
            schedule_data=items,
            details=dict(metadata or {}),
        )
        self.db.add(proposal)
        self.db.flush()
        logger.info("Proposal created | proposal_id=%s session_id=%s items=%s", proposal.id, session_id, len(items))
        return proposal

    def get_proposals(self, session_id: str | None = None) -> list[ScheduleProposal]:
        query = select(ScheduleProposal)
        if session_id:
            query = query.where(ScheduleProposal.session_id == session_id)
        query = query.order_by(ScheduleProposal.created_at.desc(), ScheduleProposal.id.desc())
        return list(self.db.execute(query).scalars().all())

    def pending_entries(self, session_id: str, exclude_batch_ids: list[str] | None = None) -> list[ScheduleEntry]:
        excluded = set(exclude_batch_ids or [])
        proposals = self.db.execute(
            select(ScheduleProposal).where(
                ScheduleProposal.session_id == session_id,
                ScheduleProposal.status == ProposalStatus.pending,
            )
        ).scalars()
        entries: list[ScheduleEntry] = []
        for proposal in proposals:
            for item in proposal.schedule_data or []:
                if str(item.get("batchId")) in excluded:
                    continue
                entries.extend(ScheduleEntry.expand_payload(item, source="pending"))
        return entries

    def _get(self, proposal_id: str) -> ScheduleProposal:
        proposal = self.db.get(ScheduleProposal, proposal_id)
        if proposal is None:
            raise ResourceNotFoundError("Proposal", proposal_id)
        return proposal

    def get_proposal_by_id(self, proposal_id: str) -> dict:
        proposal = self._get(proposal_id)
        items = list(proposal.schedule_data or [])

        def ids(key: str) -> set[str]:
            return {str(item[key]) for item in items if item.get(key)}

        batches = {row.id: row for row in self._rows(Batch, ids("batchId"))}
        courses = {row.id: row for row in self._rows(CourseOffering, ids("sessionCourseId"))}
        rooms = {row.id: row for row in self._rows(Classroom, ids("classroomId"))}
        teachers = {row.id: row for row in self._rows(Teacher, ids("teacherId"))}

        enriched: list[dict] = []
        for item in items:
            batch = batches.get(str(item.get("batchId")))
            course = courses.get(str(item.get("sessionCourseId")))
            room = rooms.get(str(item.get("classroomId")))
            teacher = teachers.get(str(item.get("teacherId")))
            room_label = None
            if room is not None:
                room_label = f"{room.room_number} ({room.building_name})" if room.building_name else room.room_number
            enriched.append(
                {
                    **item,
                    "batchName": item.get("batchName") or (batch.name if batch else item.get("batchId")),
                    "batchShift": item.get("batchShift") or (batch.shift.value if batch else "day"),
                    "courseCode": item.get("courseCode") or (course.code if course else ""),
                    "courseName": item.get("courseName") or (course.name if course else item.get("sessionCourseId")),
                    "roomName": item.get("roomName") or room_label or item.get("classroomId"),
                    "teacherName": item.get("teacherName") or (teacher.full_name if teacher else "Not Assigned"),
                }
            )

        payload = serialize_proposal(proposal, include_items=False)
        payload["schedule_data"] = enriched
        return payload

    def _rows(self, model, ids: set[str]) -> list:
        if not ids:
            return []
        return list(self.db.execute(select(model).where(model.id.in_(ids))).scalars().all())

    def apply_proposal(self, proposal_id: str) -> dict:
        """Commit a pending proposal into the schedule store.

        Runs as one transaction: every referenced batch's active rows are
        closed and the proposal's entries are inserted, or nothing changes.
        """
        proposal = self._get(proposal_id)
        if proposal.status == ProposalStatus.approved:
            raise ConflictError("Proposal already applied", details={"proposal_id": proposal_id})

        session = self.db.get(AcademicSession, proposal.session_id)
        if session is None:
            raise ResourceNotFoundError("Session", proposal.session_id)

        items = list(proposal.schedule_data or [])
        batch_ids = list(dict.fromkeys(str(item["batchId"]) for item in items if item.get("batchId")))
        try:
            closed = self.schedules.close_by_batch_ids(batch_ids)
            created = self.schedules.insert_many(items, session)
            proposal.status = ProposalStatus.approved
            proposal.details = {
                **(proposal.details or {}),
                "appliedAt": datetime.now(timezone.utc).isoformat(),
                "schedulesCreated": len(created),
                "previousSchedulesClosed": closed,
            }
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("Proposal apply failed | proposal_id=%s", proposal_id)
            raise

        logger.info(
            "PROPOSAL APPLIED | proposal_id=%s | session_id=%s | created=%s | closed=%s",
            proposal_id,
            proposal.session_id,
            len(created),
            closed,
        )
        return {
            "success": True,
            "schedules_created": len(created),
            "previous_schedules_closed": closed,
            "message": f"Successfully created {len(created)} class schedules",
        }

    def reject_proposal(self, proposal_id: str) -> ScheduleProposal:
        proposal = self._get(proposal_id)
        if proposal.status == ProposalStatus.approved:
            raise ConflictError("Cannot reject an applied proposal", details={"proposal_id": proposal_id})
        proposal.status = ProposalStatus.rejected
        proposal.details = {**(proposal.details or {}), "rejectedAt": datetime.now(timezone.utc).isoformat()}
        self.db.flush()
        return proposal

    def delete_proposal(self, proposal_id: str) -> None:
        proposal = self._get(proposal_id)
        if proposal.status == ProposalStatus.approved:
            raise ConflictError("Cannot delete an applied proposal", details={"proposal_id": proposal_id})
        self.db.delete(proposal)
        self.db.flush()
