from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import ResourceNotFoundError
from app.models.batch import Batch
from app.models.classroom import Classroom
from app.models.course_offering import CourseOffering
from app.services.directory_clients import InstructorAssignment, TeacherAssignmentDirectory, TeacherDirectory
from app.services.teacher_names import TeacherNameCache
from app.services.time_slot_engine import (
    ROOM_TYPE_REQUIREMENTS,
    BatchInfo,
    CourseInfo,
    RoomInfo,
    TeacherRef,
    TimeSlotEngine,
)

logger = logging.getLogger(__name__)

UNKNOWN_TEACHER = "Unknown Teacher"
UNASSIGNED_MESSAGE = (
    "Some courses don't have teachers assigned. Please assign teachers before generating schedule."
)


@dataclass
class PrerequisiteReport:
    valid: bool
    errors: list = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    unassigned_courses: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "unassigned_courses": list(self.unassigned_courses),
        }


@dataclass
class SchedulingData:
    batches: list[BatchInfo]
    courses: list[CourseInfo]
    classrooms: list[RoomInfo]
    assignments: dict[tuple[str, str], TeacherRef]
    department_names: dict[str, str]

    def courses_for(self, batch: BatchInfo) -> list[CourseInfo]:
        return [
            course
            for course in self.courses
            if course.department_id == batch.department_id and course.semester == batch.semester
        ]


class SchedulingDataGatherer:
    """Loads batches, offerings, rooms and instructor assignments for a run."""

    def __init__(
        self,
        db: Session,
        assignment_directory: TeacherAssignmentDirectory,
        teacher_directory: TeacherDirectory | None = None,
        teacher_names: TeacherNameCache | None = None,
    ) -> None:
        self.db = db
        self.assignment_directory = assignment_directory
        self.teacher_names = teacher_names or TeacherNameCache(db, teacher_directory)

    def _load_batches(self, batch_ids: list[str] | None, department_id: str | None) -> list[Batch]:
        if batch_ids:
            wanted = list(dict.fromkeys(batch_ids))
            rows = self.db.execute(select(Batch).where(Batch.id.in_(wanted))).scalars().all()
            found = {row.id for row in rows}
            for batch_id in wanted:
                if batch_id not in found:
                    raise ResourceNotFoundError("Batch", batch_id)
            by_id = {row.id: row for row in rows}
            return [by_id[batch_id] for batch_id in wanted if by_id[batch_id].is_active]

        query = select(Batch).where(Batch.is_active.is_(True))
        if department_id:
            query = query.where(Batch.department_id == department_id)
        return list(self.db.execute(query.order_by(Batch.name, Batch.id)).scalars().all())

    def _load_offerings(self, session_id: str, batches: list[Batch], department_id: str | None) -> list[CourseOffering]:
        if not batches:
            return []
        semesters = sorted({batch.current_semester for batch in batches})
        department_ids = sorted({batch.department_id for batch in batches})
        query = select(CourseOffering).where(
            CourseOffering.session_id == session_id,
            CourseOffering.semester.in_(semesters),
        )
        if department_id:
            query = query.where(CourseOffering.department_id == department_id)
        else:
            query = query.where(CourseOffering.department_id.in_(department_ids))
        return list(self.db.execute(query.order_by(CourseOffering.code, CourseOffering.id)).scalars().all())

    def _load_classrooms(self) -> list[Classroom]:
        return list(
            self.db.execute(
                select(Classroom)
                .where(Classroom.is_active.is_(True), Classroom.is_under_maintenance.is_(False))
                .order_by(Classroom.room_number, Classroom.id)
            )
            .scalars()
            .all()
        )

    def _fetch_assignments(self, batches: list[Batch]) -> dict[str, list[InstructorAssignment]]:
        if not batches:
            return {}
        settings = get_settings()
        workers = min(settings.directory_max_workers, len(batches))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                batch.id: pool.submit(self.assignment_directory.get_assignments, batch.id, batch.current_semester)
                for batch in batches
            }
            return {batch_id: future.result() for batch_id, future in futures.items()}

    @staticmethod
    def _offerings_for(batch: Batch, offerings: list[CourseOffering]) -> list[CourseOffering]:
        return [
            offering
            for offering in offerings
            if offering.department_id == batch.department_id and offering.semester == batch.current_semester
        ]

    def validate_prerequisites(
        self,
        session_id: str,
        batch_ids: list[str] | None = None,
        department_id: str | None = None,
    ) -> PrerequisiteReport:
        warnings: list[str] = []

        batches = self._load_batches(batch_ids, department_id)
        if not batches:
            return PrerequisiteReport(valid=False, errors=["No active batches found for the selected criteria"])

        offerings = self._load_offerings(session_id, batches, department_id)
        if not offerings:
            return PrerequisiteReport(
                valid=False,
                errors=["No session courses found for the selected batches' semesters"],
            )

        assignments_by_batch = self._fetch_assignments(batches)
        unassigned: list[dict] = []
        for batch in batches:
            assigned = {assignment.course_id for assignment in assignments_by_batch.get(batch.id, [])}
            for offering in self._offerings_for(batch, offerings):
                if offering.course_id in assigned:
                    continue
                unassigned.append(
                    {
                        "batchId": batch.id,
                        "batchName": batch.name,
                        "courseId": offering.course_id,
                        "courseCode": offering.code,
                        "courseName": offering.name,
                        "semester": batch.current_semester,
                    }
                )
        if unassigned:
            return PrerequisiteReport(
                valid=False,
                errors=[{"message": UNASSIGNED_MESSAGE, "unassignedCourses": unassigned}],
                unassigned_courses=unassigned,
            )

        classrooms = self._load_classrooms()
        if not classrooms:
            return PrerequisiteReport(valid=False, errors=["No available classrooms found"])

        room_types = {room.room_type.value for room in classrooms}
        for course_type in sorted({offering.course_type.value for offering in offerings}):
            required = ROOM_TYPE_REQUIREMENTS.get(course_type, ROOM_TYPE_REQUIREMENTS["theory"])
            if not room_types & required:
                warnings.append(
                    f"No suitable rooms found for {course_type} courses (requires: {' or '.join(sorted(required))})"
                )

        return PrerequisiteReport(valid=True, warnings=warnings)

    def gather_scheduling_data(
        self,
        session_id: str,
        engine: TimeSlotEngine,
        batch_ids: list[str] | None = None,
        department_id: str | None = None,
    ) -> SchedulingData:
        batches = self._load_batches(batch_ids, department_id)
        offerings = self._load_offerings(session_id, batches, department_id)
        classrooms = self._load_classrooms()
        assignments_by_batch = self._fetch_assignments(batches)

        teacher_ids = [
            assignment.instructor_id
            for assignments in assignments_by_batch.values()
            for assignment in assignments
        ]
        names = self.teacher_names.resolve(teacher_ids)

        assignment_map: dict[tuple[str, str], TeacherRef] = {}
        for batch in batches:
            by_course = {assignment.course_id: assignment for assignment in assignments_by_batch.get(batch.id, [])}
            for offering in self._offerings_for(batch, offerings):
                assignment = by_course.get(offering.course_id)
                if assignment is None:
                    continue
                teacher_name = names.get(assignment.instructor_id) or assignment.instructor_name or UNKNOWN_TEACHER
                assignment_map[(batch.id, offering.id)] = TeacherRef(assignment.instructor_id, teacher_name)

        department_names = {batch.department_id: batch.department_name or "Unknown" for batch in batches}

        data = SchedulingData(
            batches=[
                BatchInfo(
                    id=batch.id,
                    name=batch.name,
                    shift=batch.shift.value,
                    semester=batch.current_semester,
                    department_id=batch.department_id,
                    department_name=department_names.get(batch.department_id),
                    student_count=batch.student_count,
                )
                for batch in batches
            ],
            courses=[
                CourseInfo(
                    id=offering.id,
                    course_id=offering.course_id,
                    code=offering.code,
                    name=offering.name,
                    course_type=offering.course_type.value,
                    credits=offering.credit,
                    semester=offering.semester,
                    department_id=offering.department_id,
                    duration=engine.duration_for(offering.course_type.value),
                )
                for offering in offerings
            ],
            classrooms=[
                RoomInfo(
                    id=room.id,
                    room_number=room.room_number,
                    building=room.building_name or None,
                    capacity=room.capacity,
                    room_type=room.room_type.value,
                )
                for room in classrooms
            ],
            assignments=assignment_map,
            department_names=department_names,
        )
        logger.info(
            "Scheduling data gathered | session_id=%s batches=%s courses=%s classrooms=%s assignments=%s",
            session_id,
            len(data.batches),
            len(data.courses),
            len(data.classrooms),
            len(data.assignments),
        )
        return data
