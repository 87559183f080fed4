from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from typing import Iterable

from app.core.config import get_settings
from app.schemas.scheduler import ALL_DAYS, ScheduleOptions, ShiftTimeConfig, parse_time_to_minutes

logger = logging.getLogger(__name__)

DEFAULT_WORKING_DAYS: dict[str, tuple[str, ...]] = {
    "day": ("Saturday", "Sunday", "Monday", "Tuesday", "Wednesday", "Thursday"),
    "evening": ALL_DAYS,
}

ROOM_TYPE_REQUIREMENTS: dict[str, frozenset[str]] = {
    "theory": frozenset({"Lecture Hall", "Seminar Room", "Conference Room"}),
    "lab": frozenset({"Laboratory", "Computer Lab"}),
    "project": frozenset({"Laboratory", "Computer Lab", "Seminar Room"}),
}

LAB_COURSE_TYPES = frozenset({"lab", "project"})

BATCH_CONFLICT = "batch_conflict"
TEACHER_CONFLICT = "teacher_conflict"
ROOM_CONFLICT = "room_conflict"


def minutes_to_time(value: int) -> str:
    hours = value // 60
    minutes = value % 60
    return f"{hours:02d}:{minutes:02d}"


def other_shift(shift: str) -> str:
    return "evening" if shift == "day" else "day"


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    return start_a < end_b and start_b < end_a


@dataclass(frozen=True)
class ShiftWindow:
    start: int
    end: int
    break_start: int | None = None
    break_end: int | None = None

    @property
    def has_break(self) -> bool:
        return self.break_start is not None and self.break_end is not None

    def hits_break(self, start: int, end: int) -> bool:
        return self.has_break and overlaps(start, end, self.break_start, self.break_end)


DEFAULT_SHIFT_WINDOWS: dict[str, ShiftWindow] = {
    "day": ShiftWindow(start=8 * 60, end=15 * 60, break_start=12 * 60, break_end=13 * 60),
    "evening": ShiftWindow(start=15 * 60 + 30, end=21 * 60),
}


@dataclass(frozen=True)
class SlotWindow:
    start: int
    end: int

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start)

    @property
    def end_time(self) -> str:
        return minutes_to_time(self.end)


@dataclass(frozen=True)
class BatchInfo:
    id: str
    name: str
    shift: str
    semester: int
    department_id: str | None
    department_name: str | None
    student_count: int


@dataclass(frozen=True)
class CourseInfo:
    id: str
    course_id: str
    code: str
    name: str
    course_type: str
    credits: float
    semester: int
    department_id: str | None
    duration: int

    @property
    def is_lab(self) -> bool:
        return self.course_type in LAB_COURSE_TYPES


@dataclass(frozen=True)
class RoomInfo:
    id: str
    room_number: str
    building: str | None
    capacity: int
    room_type: str

    @property
    def display_name(self) -> str:
        if self.building:
            return f"{self.room_number} ({self.building})"
        return self.room_number


@dataclass(frozen=True)
class TeacherRef:
    teacher_id: str
    teacher_name: str


@dataclass(frozen=True)
class Task:
    """One weekly class session that still needs a day, a window and a room."""

    batch: BatchInfo
    course: CourseInfo
    teacher: TeacherRef
    session_number: int
    duration: int
    preferred_room_id: str | None = None

    @property
    def course_type(self) -> str:
        return self.course.course_type

    @property
    def is_lab(self) -> bool:
        return self.course.is_lab


@dataclass
class ScheduleEntry:
    session_course_id: str
    batch_id: str
    classroom_id: str | None
    teacher_id: str | None
    day: str
    start_time: str
    end_time: str
    class_type: str = "Lecture"
    session_id: str | None = None
    batch_name: str | None = None
    batch_shift: str | None = None
    course_code: str | None = None
    course_name: str | None = None
    teacher_name: str | None = None
    room_name: str | None = None
    relaxed: bool = False
    source: str = "generated"

    @property
    def start_minutes(self) -> int:
        return parse_time_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return parse_time_to_minutes(self.end_time)

    @property
    def category(self) -> str:
        return "lab" if self.class_type == "Lab" else "theory"

    def to_payload(self) -> dict:
        return {
            "sessionId": self.session_id,
            "sessionCourseId": self.session_course_id,
            "batchId": self.batch_id,
            "classroomId": self.classroom_id,
            "teacherId": self.teacher_id,
            "daysOfWeek": [self.day],
            "startTime": self.start_time,
            "endTime": self.end_time,
            "classType": self.class_type,
            "isRecurring": True,
            "status": "active",
            "batchName": self.batch_name,
            "batchShift": self.batch_shift,
            "courseCode": self.course_code,
            "courseName": self.course_name,
            "teacherName": self.teacher_name,
            "roomName": self.room_name,
            "relaxed": self.relaxed,
        }

    @classmethod
    def expand_payload(cls, payload: dict, source: str) -> list["ScheduleEntry"]:
        """Turn a stored wire entry into one entry per listed day."""
        entries: list[ScheduleEntry] = []
        for day in payload.get("daysOfWeek") or []:
            entries.append(
                cls(
                    session_course_id=str(payload.get("sessionCourseId")),
                    batch_id=str(payload.get("batchId")),
                    classroom_id=payload.get("classroomId"),
                    teacher_id=payload.get("teacherId"),
                    day=day,
                    start_time=payload["startTime"],
                    end_time=payload["endTime"],
                    class_type=payload.get("classType") or "Lecture",
                    session_id=payload.get("sessionId"),
                    batch_name=payload.get("batchName"),
                    batch_shift=payload.get("batchShift"),
                    course_code=payload.get("courseCode"),
                    course_name=payload.get("courseName"),
                    teacher_name=payload.get("teacherName"),
                    room_name=payload.get("roomName"),
                    relaxed=bool(payload.get("relaxed", False)),
                    source=source,
                )
            )
        return entries


@dataclass(frozen=True)
class PlacementPolicy:
    relax_room_type: bool = False
    allow_same_day: bool = False
    use_alternate_shift: bool = False
    spread_days: bool = True

    @property
    def is_strict(self) -> bool:
        return not (self.relax_room_type or self.allow_same_day or self.use_alternate_shift)


STRICT_POLICY = PlacementPolicy()
RELAXED_POLICY = PlacementPolicy(relax_room_type=True, allow_same_day=True, spread_days=False)
ALTERNATE_SHIFT_POLICY = PlacementPolicy(
    relax_room_type=True,
    allow_same_day=True,
    use_alternate_shift=True,
    spread_days=False,
)


@dataclass(frozen=True)
class SlotCheck:
    available: bool
    reason: str | None = None
    blocking_entry: ScheduleEntry | None = None


@dataclass(frozen=True)
class ConflictRecord:
    type: str
    day: str
    entries: tuple[ScheduleEntry, ...]

    def to_payload(self) -> dict:
        return {
            "type": self.type,
            "day": self.day,
            "entries": [entry.to_payload() for entry in self.entries],
        }


@dataclass
class _EngineState:
    conflicts: list[dict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    room_assignments: dict[str, dict[str, list[str]]] = field(default_factory=dict)
    home_rooms: dict[str, dict[str, str]] = field(default_factory=dict)


def room_category(course_type: str) -> str:
    return "lab" if course_type in LAB_COURSE_TYPES else "theory"


class TimeSlotEngine:
    """Time-slot arithmetic, room matching and availability checks for one run.

    Instances are cheap and hold per-run state (warnings, conflicts); build a
    fresh one for each generation and call ``configure`` before placing.
    """

    def __init__(self, options: ScheduleOptions | None = None) -> None:
        self.configure(options)

    def configure(self, options: ScheduleOptions | None = None) -> None:
        options = options or ScheduleOptions()
        base = options.class_duration_minutes or get_settings().default_class_duration_minutes
        self.class_durations = {"theory": base, "lab": base * 2, "project": base * 2}
        if options.class_durations is not None:
            for course_type, minutes in options.class_durations.model_dump().items():
                if minutes:
                    self.class_durations[course_type] = minutes

        self.working_days = self._resolve_working_days(options.working_days, options.off_days)
        self.shift_windows = {
            "day": self._resolve_shift_window("day", options.custom_time_slots.day if options.custom_time_slots else None),
            "evening": self._resolve_shift_window(
                "evening", options.custom_time_slots.evening if options.custom_time_slots else None
            ),
        }
        self.target_shift = options.target_shift
        self.group_labs_together = options.group_labs_together

        self._state = _EngineState()

    @property
    def conflicts(self) -> list[dict]:
        return self._state.conflicts

    @property
    def warnings(self) -> list[str]:
        return self._state.warnings

    @property
    def room_assignments(self) -> dict[str, dict[str, list[str]]]:
        return self._state.room_assignments

    @property
    def home_rooms(self) -> dict[str, dict[str, str]]:
        return self._state.home_rooms

    def home_room_for(self, batch_id: str, course_type: str) -> str | None:
        return self._state.home_rooms.get(batch_id, {}).get(room_category(course_type))

    def _remember_home_room(self, task: Task, room_id: str) -> None:
        categories = self._state.home_rooms.setdefault(task.batch.id, {})
        categories.setdefault(room_category(task.course_type), room_id)

    def _is_home_of_other_batch(self, room_id: str, batch_id: str, category: str) -> bool:
        return any(
            categories.get(category) == room_id
            for owner, categories in self._state.home_rooms.items()
            if owner != batch_id
        )

    @staticmethod
    def _resolve_working_days(
        working_days: list[str] | None,
        off_days: list[str] | None,
    ) -> dict[str, tuple[str, ...]]:
        if working_days:
            chosen = tuple(day for day in ALL_DAYS if day in set(working_days))
            return {"day": chosen, "evening": chosen}
        if off_days:
            chosen = tuple(day for day in ALL_DAYS if day not in set(off_days))
            return {"day": chosen, "evening": chosen}
        return dict(DEFAULT_WORKING_DAYS)

    @staticmethod
    def _resolve_shift_window(shift: str, config: ShiftTimeConfig | None) -> ShiftWindow:
        default = DEFAULT_SHIFT_WINDOWS[shift]
        if config is None:
            return default
        start = parse_time_to_minutes(config.start_time) if config.start_time else default.start
        end = parse_time_to_minutes(config.end_time) if config.end_time else default.end
        # A custom window only has the break it declares.
        break_start = break_end = None
        if config.break_start and config.break_end:
            break_start = parse_time_to_minutes(config.break_start)
            break_end = parse_time_to_minutes(config.break_end)
        return ShiftWindow(start=start, end=end, break_start=break_start, break_end=break_end)

    def shift_for_batch(self, batch: BatchInfo) -> str:
        if self.target_shift:
            return self.target_shift
        return batch.shift or "day"

    def working_days_for(self, shift: str) -> tuple[str, ...]:
        return self.working_days.get(shift, DEFAULT_WORKING_DAYS["day"])

    def duration_for(self, course_type: str) -> int:
        return self.class_durations.get(course_type, self.class_durations["theory"])

    def sessions_per_week(self, course_type: str, credits: float | None = None) -> int:
        return 1 if course_type in LAB_COURSE_TYPES else 2

    def generate_time_slots(self, shift: str, duration: int) -> list[SlotWindow]:
        window = self.shift_windows[shift]
        slots: list[SlotWindow] = []
        cursor = window.start
        while cursor + duration <= window.end:
            if window.hits_break(cursor, cursor + duration):
                cursor = max(cursor, window.break_end)
                continue
            slots.append(SlotWindow(cursor, cursor + duration))
            cursor += duration
        return slots

    def dynamic_time_slots(
        self,
        shift: str,
        batch_id: str,
        day: str,
        duration: int,
        schedule: Iterable[ScheduleEntry],
        ignore: ScheduleEntry | None = None,
    ) -> list[SlotWindow]:
        """Candidate windows packed against what the batch already has that day."""
        window = self.shift_windows[shift]
        busy = [
            (entry.start_minutes, entry.end_minutes)
            for entry in schedule
            if entry is not ignore and entry.batch_id == batch_id and entry.day == day
        ]

        raw_starts = {window.start, *(end for _, end in busy)}
        if window.has_break:
            raw_starts.add(window.break_end)

        starts: set[int] = set()
        for start in raw_starts:
            if window.has_break and window.break_start <= start < window.break_end:
                start = window.break_end
            starts.add(start)

        slots: list[SlotWindow] = []
        for start in sorted(starts):
            end = start + duration
            if start < window.start or end > window.end:
                continue
            if window.hits_break(start, end):
                continue
            if any(overlaps(start, end, busy_start, busy_end) for busy_start, busy_end in busy):
                continue
            slots.append(SlotWindow(start, end))
        return slots

    def is_room_suitable(self, room: RoomInfo, course_type: str, student_count: int) -> bool:
        if room.capacity < student_count:
            return False
        required = ROOM_TYPE_REQUIREMENTS.get(course_type, ROOM_TYPE_REQUIREMENTS["theory"])
        return room.room_type in required

    def candidate_rooms(self, task: Task, classrooms: Iterable[RoomInfo], relax_room_type: bool = False) -> list[RoomInfo]:
        """Rooms that fit ``task``, best first.

        Order: the preferred room, then the batch's home room for this
        category, then rooms no other batch has claimed, then tightest fit.
        """
        student_count = task.batch.student_count
        if relax_room_type:
            rooms = [room for room in classrooms if room.capacity >= student_count]
        else:
            rooms = [room for room in classrooms if self.is_room_suitable(room, task.course_type, student_count)]
        category = room_category(task.course_type)
        home = self.home_room_for(task.batch.id, task.course_type)
        return sorted(
            rooms,
            key=lambda room: (
                0 if task.preferred_room_id and room.id == task.preferred_room_id else 1,
                0 if home and room.id == home else 1,
                1 if self._is_home_of_other_batch(room.id, task.batch.id, category) else 0,
                room.capacity - student_count,
                room.room_number,
            ),
        )

    def check_availability(
        self,
        day: str,
        window: SlotWindow,
        batch_id: str,
        teacher_id: str | None,
        room_id: str | None,
        schedule: Iterable[ScheduleEntry],
        ignore: ScheduleEntry | None = None,
    ) -> SlotCheck:
        for entry in schedule:
            if entry is ignore or entry.day != day:
                continue
            if not overlaps(window.start, window.end, entry.start_minutes, entry.end_minutes):
                continue
            if entry.batch_id == batch_id:
                return SlotCheck(False, BATCH_CONFLICT, entry)
            if teacher_id and entry.teacher_id == teacher_id:
                return SlotCheck(False, TEACHER_CONFLICT, entry)
            if room_id and entry.classroom_id == room_id:
                return SlotCheck(False, ROOM_CONFLICT, entry)
        return SlotCheck(True)

    @staticmethod
    def batch_days(batch_id: str, schedule: Iterable[ScheduleEntry]) -> set[str]:
        return {entry.day for entry in schedule if entry.batch_id == batch_id}

    @staticmethod
    def course_days(batch_id: str, session_course_id: str, schedule: Iterable[ScheduleEntry]) -> set[str]:
        return {
            entry.day
            for entry in schedule
            if entry.batch_id == batch_id and entry.session_course_id == session_course_id
        }

    def _candidate_days(
        self,
        task: Task,
        home_shift: str,
        shift: str,
        schedule: list[ScheduleEntry],
        policy: PlacementPolicy,
    ) -> list[str]:
        days = list(self.working_days_for(shift))
        if shift != home_shift:
            # Borrowed windows only on days the batch attends anyway.
            home_days = set(self.working_days_for(home_shift))
            days = [day for day in days if day in home_days]
        if not policy.allow_same_day:
            taken = self.course_days(task.batch.id, task.course.id, schedule)
            days = [day for day in days if day not in taken]
        if policy.spread_days:
            used = self.batch_days(task.batch.id, schedule)
            days = [day for day in days if day not in used] + [day for day in days if day in used]
        return days

    def _find_on_day(
        self,
        task: Task,
        day: str,
        shift: str,
        rooms: list[RoomInfo],
        schedule: list[ScheduleEntry],
    ) -> tuple[SlotWindow, RoomInfo] | None:
        for window in self.dynamic_time_slots(shift, task.batch.id, day, task.duration, schedule):
            for room in rooms:
                check = self.check_availability(day, window, task.batch.id, task.teacher.teacher_id, room.id, schedule)
                if check.available:
                    return window, room
        return None

    def place(
        self,
        task: Task,
        classrooms: list[RoomInfo],
        schedule: list[ScheduleEntry],
        policy: PlacementPolicy = STRICT_POLICY,
    ) -> ScheduleEntry | None:
        """Find the first free (day, window, room) for ``task`` under ``policy``.

        The schedule is not modified; callers append the returned entry.
        """
        home_shift = self.shift_for_batch(task.batch)
        shift = other_shift(home_shift) if policy.use_alternate_shift else home_shift

        rooms = self.candidate_rooms(task, classrooms, relax_room_type=policy.relax_room_type)
        if not rooms:
            if policy.is_strict:
                self.warnings.append(
                    f"No suitable room for {task.course.code} ({task.course_type}) in batch {task.batch.name} "
                    f"with {task.batch.student_count} students"
                )
            return None

        for day in self._candidate_days(task, home_shift, shift, schedule, policy):
            found = self._find_on_day(task, day, shift, rooms, schedule)
            if found is None:
                continue
            window, room = found
            entry = self._build_entry(task, room, day, window, shift, relaxed=not policy.is_strict)
            self._remember_home_room(task, room.id)
            if entry.relaxed:
                self.warnings.append(
                    f"Relaxed placement for {task.course.code} session {task.session_number} in batch "
                    f"{task.batch.name}: {day} {window.start_time}-{window.end_time} in {room.display_name}"
                )
            logger.debug(
                "Task placed | batch=%s course=%s session=%s day=%s start=%s room=%s relaxed=%s",
                task.batch.id,
                task.course.code,
                task.session_number,
                day,
                window.start_time,
                room.id,
                entry.relaxed,
            )
            return entry

        if policy.is_strict:
            self.warnings.append(
                f"Could not place {task.course.code} session {task.session_number} for batch {task.batch.name} "
                "with strict rules"
            )
        return None

    def schedule_task(self, task: Task, classrooms: list[RoomInfo], schedule: list[ScheduleEntry]) -> ScheduleEntry | None:
        return self.place(task, classrooms, schedule, STRICT_POLICY)

    def schedule_task_relaxed(
        self, task: Task, classrooms: list[RoomInfo], schedule: list[ScheduleEntry]
    ) -> ScheduleEntry | None:
        return self.place(task, classrooms, schedule, RELAXED_POLICY)

    def schedule_task_alternate_shift(
        self, task: Task, classrooms: list[RoomInfo], schedule: list[ScheduleEntry]
    ) -> ScheduleEntry | None:
        return self.place(task, classrooms, schedule, ALTERNATE_SHIFT_POLICY)

    def schedule_lab_block(
        self,
        batch: BatchInfo,
        tasks: list[Task],
        classrooms: list[RoomInfo],
        schedule: list[ScheduleEntry],
    ) -> tuple[list[ScheduleEntry], list[Task]]:
        """Try to put all of a batch's lab/project tasks back to back on one day.

        Returns ``(placed, leftovers)``; on failure nothing is placed and every
        task is handed back for individual placement.
        """
        if not tasks:
            return [], []
        shift = self.shift_for_batch(batch)
        for day in self.working_days_for(shift):
            if any(day in self.course_days(batch.id, task.course.id, schedule) for task in tasks):
                continue
            simulated = list(schedule)
            placed: list[ScheduleEntry] = []
            for task in tasks:
                rooms = self.candidate_rooms(task, classrooms)
                found = self._find_on_day(task, day, shift, rooms, simulated)
                if found is None:
                    break
                window, room = found
                entry = self._build_entry(task, room, day, window, shift, relaxed=False)
                placed.append(entry)
                simulated.append(entry)
            else:
                for task, entry in zip(tasks, placed):
                    self._remember_home_room(task, entry.classroom_id)
                logger.debug("Lab block placed | batch=%s day=%s labs=%s", batch.id, day, len(placed))
                return placed, []
        return [], list(tasks)

    def detect_conflicts(self, entries: Iterable[ScheduleEntry]) -> list[ConflictRecord]:
        by_day: dict[str, list[ScheduleEntry]] = defaultdict(list)
        for entry in entries:
            by_day[entry.day].append(entry)

        records: list[ConflictRecord] = []
        for day in sorted(by_day, key=lambda value: ALL_DAYS.index(value) if value in ALL_DAYS else len(ALL_DAYS)):
            day_entries = sorted(by_day[day], key=lambda entry: entry.start_minutes)
            for index, first in enumerate(day_entries):
                for second in day_entries[index + 1 :]:
                    if second.start_minutes >= first.end_minutes:
                        break
                    if first.teacher_id and second.teacher_id and first.teacher_id == second.teacher_id:
                        records.append(ConflictRecord("TEACHER_CONFLICT", day, (first, second)))
                    if first.classroom_id and second.classroom_id and first.classroom_id == second.classroom_id:
                        records.append(ConflictRecord("ROOM_CONFLICT", day, (first, second)))
        return records

    def room_assignment_summary(self, entries: Iterable[ScheduleEntry]) -> dict[str, dict[str, list[str]]]:
        summary: dict[str, dict[str, set[str]]] = defaultdict(lambda: defaultdict(set))
        for entry in entries:
            if entry.classroom_id:
                summary[entry.batch_id][entry.category].add(entry.classroom_id)
        self._state.room_assignments = {
            batch_id: {category: sorted(room_ids) for category, room_ids in categories.items()}
            for batch_id, categories in summary.items()
        }
        return self._state.room_assignments

    def move_entry(self, entry: ScheduleEntry, day: str, window: SlotWindow) -> ScheduleEntry:
        return replace(entry, day=day, start_time=window.start_time, end_time=window.end_time)

    @staticmethod
    def _build_entry(
        task: Task,
        room: RoomInfo,
        day: str,
        window: SlotWindow,
        shift: str,
        relaxed: bool,
    ) -> ScheduleEntry:
        return ScheduleEntry(
            session_course_id=task.course.id,
            batch_id=task.batch.id,
            classroom_id=room.id,
            teacher_id=task.teacher.teacher_id,
            day=day,
            start_time=window.start_time,
            end_time=window.end_time,
            class_type="Lab" if task.is_lab else "Lecture",
            batch_name=task.batch.name,
            batch_shift=shift,
            course_code=task.course.code,
            course_name=task.course.name,
            teacher_name=task.teacher.teacher_name,
            room_name=room.display_name,
            relaxed=relaxed,
        )
