from __future__ import annotations

import re
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

ALL_DAYS = (
    "Saturday",
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
)

DAY_VALUES = set(ALL_DAYS)

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

WeekDay = Literal["Saturday", "Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]
ShiftName = Literal["day", "evening"]


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


class CamelModel(BaseModel):
    """Accepts both snake_case and camelCase keys; serializes camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ShiftTimeConfig(CamelModel):
    start_time: str | None = None
    end_time: str | None = None
    break_start: str | None = None
    break_end: str | None = None

    @field_validator("start_time", "end_time", "break_start", "break_end")
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        if value is None or value == "":
            return None
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_windows(self) -> "ShiftTimeConfig":
        if self.start_time and self.end_time:
            if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
                raise ValueError("endTime must be after startTime")
        if bool(self.break_start) != bool(self.break_end):
            raise ValueError("breakStart and breakEnd must be provided together")
        if self.break_start and self.break_end:
            if parse_time_to_minutes(self.break_end) <= parse_time_to_minutes(self.break_start):
                raise ValueError("breakEnd must be after breakStart")
        return self


class CustomTimeSlots(CamelModel):
    day: ShiftTimeConfig | None = None
    evening: ShiftTimeConfig | None = None


class ClassDurations(CamelModel):
    theory: int | None = Field(default=None, ge=15, le=480)
    lab: int | None = Field(default=None, ge=15, le=480)
    project: int | None = Field(default=None, ge=15, le=480)


class PreferredRooms(CamelModel):
    theory: str | None = None
    lab: str | None = None
    project: str | None = None


class ScheduleOptions(CamelModel):
    batch_ids: list[str] | None = None
    department_id: str | None = None
    selection_mode: Literal["all", "department", "batches"] = "all"
    class_duration_minutes: int | None = Field(default=None, ge=15, le=480)
    class_durations: ClassDurations | None = None
    working_days: list[WeekDay] | None = None
    off_days: list[WeekDay] | None = None
    custom_time_slots: CustomTimeSlots | None = None
    preferred_rooms: PreferredRooms | None = None
    target_shift: ShiftName | None = None
    group_labs_together: bool = False
    allow_alternate_shift: bool = False

    @field_validator("working_days", "off_days")
    @classmethod
    def dedupe_days(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return list(dict.fromkeys(value))


class GenerateScheduleRequest(ScheduleOptions):
    session_id: str = Field(min_length=1, max_length=36)


class ValidateScheduleRequest(CamelModel):
    session_id: str = Field(min_length=1, max_length=36)
    batch_ids: list[str] | None = None
    department_id: str | None = None


class CheckConflictsRequest(CamelModel):
    batch_ids: list[str] = Field(min_length=1)
    session_id: str | None = None


class BatchScheduleRequest(CamelModel):
    batch_ids: list[str] = Field(min_length=1)


class SessionScheduleRequest(CamelModel):
    session_id: str = Field(min_length=1, max_length=36)


class ScheduleEntryOut(CamelModel):
    session_id: str | None = None
    session_course_id: str
    batch_id: str
    classroom_id: str | None = None
    teacher_id: str | None = None
    days_of_week: list[str]
    start_time: str
    end_time: str
    class_type: str = "Lecture"
    is_recurring: bool = True
    status: str = "active"
    batch_name: str | None = None
    batch_shift: str | None = None
    course_code: str | None = None
    course_name: str | None = None
    teacher_name: str | None = None
    room_name: str | None = None
    relaxed: bool = False


class ProposalSummaryOut(CamelModel):
    id: str
    session_id: str
    generated_by: str
    status: str
    metadata: dict = Field(default_factory=dict)
    item_count: int = 0
    created_at: datetime | None = None


class ProposalOut(ProposalSummaryOut):
    schedule_data: list[ScheduleEntryOut] = Field(default_factory=list)


class UnscheduledTaskOut(CamelModel):
    batch_id: str
    batch_name: str
    course_id: str
    course_code: str
    course_name: str
    teacher_name: str | None = None
    session_number: int
    reason: str


class GenerationStatsOut(CamelModel):
    scheduled: int
    total_tasks: int
    unscheduled: list[UnscheduledTaskOut] = Field(default_factory=list)
    conflicts: list[dict] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    room_assignments: dict[str, dict[str, list[str]]] = Field(default_factory=dict)
    rebalanced_moves: int = 0
    existing_schedules_considered: int = 0


class GenerateScheduleResponse(CamelModel):
    proposal: ProposalOut
    stats: GenerationStatsOut


class ValidationReportOut(CamelModel):
    valid: bool
    errors: list = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    unassigned_courses: list[dict] = Field(default_factory=list)


class ConflictRecordOut(CamelModel):
    type: Literal["TEACHER_CONFLICT", "ROOM_CONFLICT"]
    day: str
    entries: list[ScheduleEntryOut]


class ApplyProposalResponse(CamelModel):
    success: bool = True
    schedules_created: int
    previous_schedules_closed: int
    message: str


class StatusTransitionResponse(CamelModel):
    success: bool = True
    message: str
    count: int


class ScheduleStatusSummaryOut(CamelModel):
    active: int = 0
    closed: int = 0
    archived: int = 0


class CourseScheduleOut(CamelModel):
    id: str
    session_id: str | None = None
    batch_id: str
    session_course_id: str
    teacher_id: str | None = None
    classroom_id: str | None = None
    days_of_week: list[str]
    start_time: str
    end_time: str
    class_type: str
    is_recurring: bool
    status: str
    closed_at: datetime | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    @field_validator("class_type", "status", mode="before")
    @classmethod
    def enum_value(cls, value):
        return getattr(value, "value", value)
