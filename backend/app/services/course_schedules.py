from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.academic_session import AcademicSession
from app.models.course_schedule import ClassType, CourseSchedule, ScheduleStatus
from app.services.time_slot_engine import ScheduleEntry

logger = logging.getLogger(__name__)


def entries_from_row(row: CourseSchedule, source: str = "committed") -> list[ScheduleEntry]:
    """Expand a committed row into one entry per weekday it meets on."""
    return [
        ScheduleEntry(
            session_course_id=row.session_course_id,
            batch_id=row.batch_id,
            classroom_id=row.classroom_id,
            teacher_id=row.teacher_id,
            day=day,
            start_time=row.start_time,
            end_time=row.end_time,
            class_type=row.class_type.value,
            session_id=row.session_id,
            source=source,
        )
        for day in row.days_of_week or []
    ]


class CourseScheduleStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _live(self):
        return select(CourseSchedule).where(CourseSchedule.is_active.is_(True), CourseSchedule.deleted_at.is_(None))

    def get_active(
        self,
        batch_ids: list[str] | None = None,
        session_id: str | None = None,
        exclude_batch_ids: list[str] | None = None,
    ) -> list[CourseSchedule]:
        query = self._live().where(CourseSchedule.status == ScheduleStatus.active)
        if batch_ids:
            query = query.where(CourseSchedule.batch_id.in_(batch_ids))
        if session_id:
            query = query.where(CourseSchedule.session_id == session_id)
        if exclude_batch_ids:
            query = query.where(CourseSchedule.batch_id.not_in(exclude_batch_ids))
        query = query.order_by(CourseSchedule.batch_id, CourseSchedule.start_time, CourseSchedule.id)
        return list(self.db.execute(query).scalars().all())

    def active_entries(
        self,
        batch_ids: list[str] | None = None,
        session_id: str | None = None,
        exclude_batch_ids: list[str] | None = None,
    ) -> list[ScheduleEntry]:
        entries: list[ScheduleEntry] = []
        for row in self.get_active(batch_ids, session_id, exclude_batch_ids):
            entries.extend(entries_from_row(row))
        return entries

    def _close(self, rows: list[CourseSchedule]) -> int:
        closed_at = datetime.now(timezone.utc)
        for row in rows:
            row.status = ScheduleStatus.closed
            row.closed_at = closed_at
        self.db.flush()
        return len(rows)

    def close_by_batch_ids(self, batch_ids: list[str]) -> int:
        if not batch_ids:
            return 0
        return self._close(self.get_active(batch_ids=batch_ids))

    def close_by_session(self, session_id: str) -> int:
        return self._close(self.get_active(session_id=session_id))

    def reopen_by_batch_ids(self, batch_ids: list[str]) -> int:
        if not batch_ids:
            return 0
        rows = (
            self.db.execute(
                self._live().where(
                    CourseSchedule.batch_id.in_(batch_ids),
                    CourseSchedule.status == ScheduleStatus.closed,
                )
            )
            .scalars()
            .all()
        )
        for row in rows:
            row.status = ScheduleStatus.active
            row.closed_at = None
        self.db.flush()
        return len(rows)

    def insert_many(self, payloads: list[dict], session: AcademicSession) -> list[CourseSchedule]:
        rows: list[CourseSchedule] = []
        for payload in payloads:
            building = None
            room_name = payload.get("roomName") or ""
            if room_name.endswith(")") and " (" in room_name:
                building = room_name.rsplit(" (", 1)[1][:-1]
            rows.append(
                CourseSchedule(
                    session_id=session.id,
                    batch_id=str(payload["batchId"]),
                    session_course_id=str(payload["sessionCourseId"]),
                    teacher_id=payload.get("teacherId"),
                    classroom_id=payload.get("classroomId"),
                    building=building,
                    days_of_week=list(payload.get("daysOfWeek") or []),
                    start_time=payload["startTime"],
                    end_time=payload["endTime"],
                    class_type=ClassType(payload.get("classType") or ClassType.lecture.value),
                    is_recurring=True,
                    start_date=session.start_date,
                    end_date=session.end_date,
                    status=ScheduleStatus.active,
                    is_active=True,
                )
            )
        self.db.add_all(rows)
        self.db.flush()
        return rows

    def status_summary(self, batch_ids: list[str] | None = None, session_id: str | None = None) -> dict[str, int]:
        query = (
            select(CourseSchedule.status, func.count(CourseSchedule.id))
            .where(CourseSchedule.is_active.is_(True), CourseSchedule.deleted_at.is_(None))
            .group_by(CourseSchedule.status)
        )
        if batch_ids:
            query = query.where(CourseSchedule.batch_id.in_(batch_ids))
        if session_id:
            query = query.where(CourseSchedule.session_id == session_id)
        summary = {status.value: 0 for status in ScheduleStatus}
        for status, count in self.db.execute(query).all():
            summary[status.value] = count
        return summary
