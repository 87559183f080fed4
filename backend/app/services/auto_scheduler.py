from __future__ import annotations

import logging
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.core.exceptions import ResourceNotFoundError, SchedulerError, SchedulingValidationError
from app.models.academic_session import AcademicSession
from app.models.course_schedule import CourseSchedule
from app.models.schedule_proposal import ScheduleProposal
from app.schemas.scheduler import PreferredRooms, ScheduleOptions
from app.services.audit import log_activity
from app.services.course_schedules import CourseScheduleStore
from app.services.directory_clients import TeacherAssignmentDirectory, TeacherDirectory
from app.services.schedule_proposals import ScheduleProposalService
from app.services.scheduling_data import SchedulingData, SchedulingDataGatherer
from app.services.time_slot_engine import (
    ConflictRecord,
    ScheduleEntry,
    Task,
    TimeSlotEngine,
    minutes_to_time,
)

logger = logging.getLogger(__name__)

UNSCHEDULED_REASON = "No available time slot found"
UNSCHEDULED_FINAL_REASON = "No available time slot found after trying all scheduling strategies"
MAX_REBALANCE_MOVES_PER_BATCH = 50
SHIFT_ORDER = ("day", "evening")


@dataclass
class GenerationResult:
    proposal: ScheduleProposal
    stats: dict = field(default_factory=dict)


class AutoScheduler:
    """Greedy timetable generation over batches, offerings and rooms.

    Each run builds its own :class:`TimeSlotEngine`, places lab work before
    theory, retries failures under relaxed rules and stores the outcome as a
    pending proposal. Committed schedules are never touched here.
    """

    def __init__(
        self,
        db: Session,
        assignment_directory: TeacherAssignmentDirectory,
        teacher_directory: TeacherDirectory | None = None,
    ) -> None:
        self.db = db
        self.gatherer = SchedulingDataGatherer(db, assignment_directory, teacher_directory)
        self.schedules = CourseScheduleStore(db)
        self.proposals = ScheduleProposalService(db)

    def generate_schedule(
        self,
        session_id: str,
        generated_by: str,
        options: ScheduleOptions | None = None,
    ) -> GenerationResult:
        options = options or ScheduleOptions()
        if self.db.get(AcademicSession, session_id) is None:
            raise ResourceNotFoundError("Session", session_id)

        engine = TimeSlotEngine(options)

        report = self.gatherer.validate_prerequisites(session_id, options.batch_ids, options.department_id)
        if not report.valid:
            raise SchedulingValidationError(
                "Prerequisites not met for schedule generation",
                errors=report.errors,
                unassigned_courses=report.unassigned_courses,
            )
        engine.warnings.extend(report.warnings)

        data = self.gatherer.gather_scheduling_data(session_id, engine, options.batch_ids, options.department_id)
        if not data.batches:
            raise SchedulerError("No batches found for scheduling")
        if not data.courses:
            raise SchedulerError("No courses found for scheduling")
        if not data.classrooms:
            raise SchedulerError("No classrooms available")

        tasks = self.build_tasks(engine, data, options.preferred_rooms)
        if not tasks:
            raise SchedulerError("No scheduling tasks generated. Ensure courses have teachers assigned.")

        target_batch_ids = [batch.id for batch in data.batches]
        obstacles = self.schedules.active_entries(batch_ids=target_batch_ids)
        obstacles += self.schedules.active_entries(session_id=session_id, exclude_batch_ids=target_batch_ids)
        obstacles += self.proposals.pending_entries(session_id, exclude_batch_ids=target_batch_ids)

        schedule: list[ScheduleEntry] = list(obstacles)
        first_new = len(schedule)
        unscheduled: list[dict] = []
        for shift in SHIFT_ORDER:
            shift_tasks = [task for task in tasks if engine.shift_for_batch(task.batch) == shift]
            if not shift_tasks:
                continue
            leftovers = self._place_shift(engine, shift_tasks, data, schedule, options.allow_alternate_shift)
            for task in leftovers:
                unscheduled.append(self._unscheduled_item(task))
                engine.conflicts.append(
                    {
                        "type": "UNSCHEDULED_FINAL",
                        "batchId": task.batch.id,
                        "batchName": task.batch.name,
                        "courseCode": task.course.code,
                        "courseName": task.course.name,
                        "teacherName": task.teacher.teacher_name,
                        "sessionNumber": task.session_number,
                        "reason": UNSCHEDULED_FINAL_REASON,
                    }
                )
                logger.warning(
                    "Task left unscheduled | batch=%s course=%s session=%s",
                    task.batch.name,
                    task.course.code,
                    task.session_number,
                )

        moves = self.rebalance(engine, data, schedule, first_new)
        new_entries = schedule[first_new:]

        stats = {
            "scheduled": len(new_entries),
            "total_tasks": len(tasks),
            "unscheduled": unscheduled,
            "conflicts": list(engine.conflicts),
            "warnings": list(engine.warnings),
            "room_assignments": engine.room_assignment_summary(new_entries),
            "rebalanced_moves": moves,
            "existing_schedules_considered": len(obstacles),
        }
        metadata = {
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "itemCount": len(new_entries),
            "totalTasks": len(tasks),
            "unscheduledCount": len(unscheduled),
            "conflictsCount": len(engine.conflicts),
            "warningsCount": len(engine.warnings),
            "selectionMode": options.selection_mode,
            "batchIds": options.batch_ids or [],
            "departmentId": options.department_id,
            "algorithm": "greedy_constraint_placement",
            "classDurations": dict(engine.class_durations),
            "workingDays": {shift: list(days) for shift, days in engine.working_days.items()},
            "shiftWindows": {
                shift: {
                    "startTime": minutes_to_time(window.start),
                    "endTime": minutes_to_time(window.end),
                    "breakStart": minutes_to_time(window.break_start) if window.has_break else None,
                    "breakEnd": minutes_to_time(window.break_end) if window.has_break else None,
                }
                for shift, window in engine.shift_windows.items()
            },
            "targetShift": engine.target_shift,
            "groupLabsTogether": engine.group_labs_together,
            "allowAlternateShift": options.allow_alternate_shift,
            "rebalancedMoves": moves,
            "conflicts": engine.conflicts[:10],
            "warnings": engine.warnings[:10],
            "existingSchedulesConsidered": len(obstacles),
        }

        proposal = self.proposals.create_proposal(
            session_id,
            generated_by,
            [entry.to_payload() for entry in new_entries],
            metadata,
        )
        log_activity(
            self.db,
            user_id=generated_by,
            action="schedule.generate",
            entity_type="schedule_proposal",
            entity_id=proposal.id,
            details={
                "session_id": session_id,
                "scheduled": len(new_entries),
                "unscheduled": len(unscheduled),
                "total_tasks": len(tasks),
            },
        )
        self.db.flush()
        return GenerationResult(proposal=proposal, stats=stats)

    def build_tasks(
        self,
        engine: TimeSlotEngine,
        data: SchedulingData,
        preferred_rooms: PreferredRooms | None = None,
    ) -> list[Task]:
        tasks: list[Task] = []
        for batch in data.batches:
            shift = engine.shift_for_batch(batch)
            for course in data.courses_for(batch):
                teacher = data.assignments.get((batch.id, course.id))
                if teacher is None:
                    engine.warnings.append(f"No teacher assigned for {course.code} in batch {batch.name}")
                    continue

                sessions = engine.sessions_per_week(course.course_type, course.credits)
                duration = course.duration
                if shift == "evening" and course.course_type == "theory":
                    sessions = 1
                    duration = engine.duration_for("lab")

                preferred_room_id = None
                if preferred_rooms is not None:
                    preferred_room_id = getattr(preferred_rooms, course.course_type, None)
                    if preferred_room_id is None and course.course_type == "project":
                        preferred_room_id = preferred_rooms.lab

                for session_number in range(1, sessions + 1):
                    tasks.append(
                        Task(
                            batch=batch,
                            course=course,
                            teacher=teacher,
                            session_number=session_number,
                            duration=duration,
                            preferred_room_id=preferred_room_id,
                        )
                    )
        return tasks

    def _place_shift(
        self,
        engine: TimeSlotEngine,
        tasks: list[Task],
        data: SchedulingData,
        schedule: list[ScheduleEntry],
        allow_alternate_shift: bool,
    ) -> list[Task]:
        classrooms = data.classrooms
        failed: list[Task] = []

        labs = sorted((task for task in tasks if task.is_lab), key=lambda task: -task.batch.student_count)
        if engine.group_labs_together and labs:
            by_batch: OrderedDict[str, list[Task]] = OrderedDict()
            for task in labs:
                by_batch.setdefault(task.batch.id, []).append(task)
            remaining: list[Task] = []
            for batch_tasks in by_batch.values():
                placed, leftovers = engine.schedule_lab_block(batch_tasks[0].batch, batch_tasks, classrooms, schedule)
                schedule.extend(placed)
                remaining.extend(leftovers)
            labs = remaining

        for task in labs:
            entry = engine.schedule_task(task, classrooms, schedule)
            if entry is None:
                failed.append(task)
            else:
                schedule.append(entry)

        # Theory goes round-robin so no batch takes every early slot.
        queues: OrderedDict[str, deque[Task]] = OrderedDict()
        for task in sorted((task for task in tasks if not task.is_lab), key=lambda task: task.session_number):
            queues.setdefault(task.batch.id, deque()).append(task)
        while queues:
            for batch_id in list(queues):
                queue = queues[batch_id]
                task = queue.popleft()
                entry = engine.schedule_task(task, classrooms, schedule)
                if entry is None:
                    failed.append(task)
                else:
                    schedule.append(entry)
                if not queue:
                    del queues[batch_id]

        leftovers: list[Task] = []
        for task in failed:
            entry = engine.schedule_task_relaxed(task, classrooms, schedule)
            if entry is None:
                leftovers.append(task)
            else:
                schedule.append(entry)

        if allow_alternate_shift and leftovers:
            still_failing: list[Task] = []
            for task in leftovers:
                entry = engine.schedule_task_alternate_shift(task, classrooms, schedule)
                if entry is None:
                    still_failing.append(task)
                else:
                    schedule.append(entry)
                    engine.warnings.append(
                        f"{task.course.code} scheduled in alternate shift due to limited slots in primary shift"
                    )
            leftovers = still_failing

        logger.info(
            "Shift placement finished | tasks=%s strict_failures=%s unscheduled=%s",
            len(tasks),
            len(failed),
            len(leftovers),
        )
        return leftovers

    @staticmethod
    def _unscheduled_item(task: Task) -> dict:
        return {
            "batch_id": task.batch.id,
            "batch_name": task.batch.name,
            "course_id": task.course.id,
            "course_code": task.course.code,
            "course_name": task.course.name,
            "teacher_name": task.teacher.teacher_name,
            "session_number": task.session_number,
            "reason": UNSCHEDULED_REASON,
        }

    def rebalance(
        self,
        engine: TimeSlotEngine,
        data: SchedulingData,
        schedule: list[ScheduleEntry],
        first_new: int,
    ) -> int:
        """Even out each batch's new classes across its working days.

        Moves one entry at a time from the most loaded day to the least loaded
        one while they differ by more than one class. Every move keeps the
        entry's room, teacher and length and passes the same availability
        checks as placement. Lab entries are left alone when labs are grouped.
        """
        moves = 0
        for batch in data.batches:
            shift = engine.shift_for_batch(batch)
            days = list(engine.working_days_for(shift))
            if len(days) < 2:
                continue
            for _ in range(MAX_REBALANCE_MOVES_PER_BATCH):
                load = {day: 0 for day in days}
                for entry in schedule[first_new:]:
                    if entry.batch_id == batch.id and entry.day in load:
                        load[entry.day] += 1
                heaviest = max(days, key=lambda day: load[day])
                lightest = min(days, key=lambda day: load[day])
                if load[heaviest] - load[lightest] <= 1:
                    break
                if not self._move_one(engine, schedule, first_new, batch.id, shift, heaviest, lightest):
                    break
                moves += 1
        if moves:
            logger.info("Rebalance finished | moves=%s", moves)
        return moves

    @staticmethod
    def _move_one(
        engine: TimeSlotEngine,
        schedule: list[ScheduleEntry],
        first_new: int,
        batch_id: str,
        shift: str,
        from_day: str,
        to_day: str,
    ) -> bool:
        for index in range(first_new, len(schedule)):
            entry = schedule[index]
            if entry.batch_id != batch_id or entry.day != from_day or entry.batch_shift != shift:
                continue
            # Grouped lab blocks stay on their day.
            if engine.group_labs_together and entry.class_type == "Lab":
                continue
            if not entry.relaxed and to_day in engine.course_days(batch_id, entry.session_course_id, schedule):
                continue
            duration = entry.end_minutes - entry.start_minutes
            for window in engine.dynamic_time_slots(shift, batch_id, to_day, duration, schedule, ignore=entry):
                check = engine.check_availability(
                    to_day,
                    window,
                    batch_id,
                    entry.teacher_id,
                    entry.classroom_id,
                    schedule,
                    ignore=entry,
                )
                if check.available:
                    schedule[index] = engine.move_entry(entry, to_day, window)
                    logger.debug(
                        "Entry moved | batch=%s course=%s from=%s to=%s start=%s",
                        batch_id,
                        entry.course_code,
                        from_day,
                        to_day,
                        window.start_time,
                    )
                    return True
        return False

    def check_existing_conflicts(self, batch_ids: list[str], session_id: str | None = None) -> list[ConflictRecord]:
        entries = self.schedules.active_entries(batch_ids=batch_ids, session_id=session_id)
        return TimeSlotEngine().detect_conflicts(entries)

    def close_schedules_for_batches(self, batch_ids: list[str]) -> dict:
        count = self.schedules.close_by_batch_ids(batch_ids)
        return {"success": True, "message": f"Closed {count} schedules for {len(batch_ids)} batches", "count": count}

    def close_schedules_for_session(self, session_id: str) -> dict:
        count = self.schedules.close_by_session(session_id)
        return {"success": True, "message": f"Closed {count} schedules for session", "count": count}

    def reopen_schedules_for_batches(self, batch_ids: list[str]) -> dict:
        count = self.schedules.reopen_by_batch_ids(batch_ids)
        return {"success": True, "message": f"Reopened {count} schedules for {len(batch_ids)} batches", "count": count}

    def get_schedule_status_summary(
        self,
        batch_ids: list[str] | None = None,
        session_id: str | None = None,
    ) -> dict[str, int]:
        return self.schedules.status_summary(batch_ids=batch_ids, session_id=session_id)

    def get_active_schedules(
        self,
        batch_ids: list[str] | None = None,
        session_id: str | None = None,
    ) -> list[CourseSchedule]:
        return self.schedules.get_active(batch_ids=batch_ids, session_id=session_id)
