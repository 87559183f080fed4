import pytest

from app.schemas.scheduler import ClassDurations, CustomTimeSlots, ScheduleOptions, ShiftTimeConfig
from app.services.time_slot_engine import (
    BatchInfo,
    CourseInfo,
    RoomInfo,
    ScheduleEntry,
    SlotWindow,
    Task,
    TeacherRef,
    TimeSlotEngine,
)


def make_batch(batch_id="b1", shift="day", students=40):
    return BatchInfo(
        id=batch_id,
        name=f"Batch {batch_id}",
        shift=shift,
        semester=1,
        department_id="dept",
        department_name="CSE",
        student_count=students,
    )


def make_course(offering_id="o1", course_type="theory", duration=75):
    return CourseInfo(
        id=offering_id,
        course_id=f"c-{offering_id}",
        code=offering_id.upper(),
        name=f"Course {offering_id}",
        course_type=course_type,
        credits=3,
        semester=1,
        department_id="dept",
        duration=duration,
    )


def make_room(room_id, capacity=60, room_type="Lecture Hall"):
    return RoomInfo(id=room_id, room_number=room_id.upper(), building="Main", capacity=capacity, room_type=room_type)


def make_task(batch, course, teacher_id="t1", session_number=1, preferred_room_id=None):
    return Task(
        batch=batch,
        course=course,
        teacher=TeacherRef(teacher_id, f"Teacher {teacher_id}"),
        session_number=session_number,
        duration=course.duration,
        preferred_room_id=preferred_room_id,
    )


def make_entry(batch_id, day, start, end, teacher_id=None, classroom_id=None, course_id="o9", class_type="Lecture"):
    return ScheduleEntry(
        session_course_id=course_id,
        batch_id=batch_id,
        classroom_id=classroom_id,
        teacher_id=teacher_id,
        day=day,
        start_time=start,
        end_time=end,
        class_type=class_type,
    )


def windows(slots):
    return [(slot.start_time, slot.end_time) for slot in slots]


def test_generate_time_slots_jumps_over_day_break():
    engine = TimeSlotEngine()

    assert windows(engine.generate_time_slots("day", 75)) == [
        ("08:00", "09:15"),
        ("09:15", "10:30"),
        ("10:30", "11:45"),
        ("13:00", "14:15"),
    ]


def test_generate_time_slots_evening_has_no_break():
    engine = TimeSlotEngine()

    assert windows(engine.generate_time_slots("evening", 75)) == [
        ("15:30", "16:45"),
        ("16:45", "18:00"),
        ("18:00", "19:15"),
        ("19:15", "20:30"),
    ]


def test_dynamic_slots_pack_after_existing_batch_classes():
    engine = TimeSlotEngine()
    schedule = [make_entry("b1", "Saturday", "08:00", "09:15")]

    slots = engine.dynamic_time_slots("day", "b1", "Saturday", 75, schedule)

    assert windows(slots) == [("09:15", "10:30"), ("13:00", "14:15")]


def test_dynamic_slots_move_starts_inside_break_to_break_end():
    engine = TimeSlotEngine()
    schedule = [make_entry("b1", "Saturday", "11:15", "12:30")]

    slots = engine.dynamic_time_slots("day", "b1", "Saturday", 75, schedule)

    assert windows(slots) == [("08:00", "09:15"), ("13:00", "14:15")]


def test_dynamic_slots_ignore_other_batches():
    engine = TimeSlotEngine()
    schedule = [make_entry("b2", "Saturday", "08:00", "09:15")]

    slots = engine.dynamic_time_slots("day", "b1", "Saturday", 75, schedule)

    assert windows(slots) == [("08:00", "09:15"), ("13:00", "14:15")]


def test_check_availability_reports_first_conflict_kind():
    engine = TimeSlotEngine()
    schedule = [make_entry("b2", "Saturday", "08:00", "09:15", teacher_id="t1", classroom_id="r1")]
    window = SlotWindow(8 * 60 + 30, 9 * 60 + 45)

    assert engine.check_availability("Saturday", window, "b2", "t9", "r9", schedule).reason == "batch_conflict"
    assert engine.check_availability("Saturday", window, "b1", "t1", "r2", schedule).reason == "teacher_conflict"
    assert engine.check_availability("Saturday", window, "b1", "t2", "r1", schedule).reason == "room_conflict"
    assert engine.check_availability("Sunday", window, "b2", "t1", "r1", schedule).available


def test_check_availability_treats_touching_windows_as_free():
    engine = TimeSlotEngine()
    schedule = [make_entry("b1", "Saturday", "08:00", "09:15", teacher_id="t1", classroom_id="r1")]

    check = engine.check_availability("Saturday", SlotWindow(9 * 60 + 15, 10 * 60 + 30), "b1", "t1", "r1", schedule)

    assert check.available
    assert check.reason is None


def test_candidate_rooms_order_and_relaxation():
    engine = TimeSlotEngine()
    rooms = [
        make_room("a", capacity=100),
        make_room("b", capacity=45),
        make_room("c", capacity=45, room_type="Laboratory"),
        make_room("d", capacity=30),
    ]
    task = make_task(make_batch(students=40), make_course())

    assert [room.id for room in engine.candidate_rooms(task, rooms)] == ["b", "a"]
    assert [room.id for room in engine.candidate_rooms(task, rooms, relax_room_type=True)] == ["b", "c", "a"]

    preferred = make_task(make_batch(students=40), make_course(), preferred_room_id="a")
    assert [room.id for room in engine.candidate_rooms(preferred, rooms)] == ["a", "b"]


def test_batch_keeps_its_home_room_across_sessions():
    engine = TimeSlotEngine()
    batch = make_batch("b1", students=40)
    course = make_course()
    rooms = [make_room("r101", capacity=45), make_room("r102", capacity=60)]
    schedule = [make_entry("b9", "Saturday", "08:00", "09:15", teacher_id="t9", classroom_id="r101")]

    first = engine.schedule_task(make_task(batch, course, session_number=1), rooms, schedule)
    schedule.append(first)
    second = engine.schedule_task(make_task(batch, course, session_number=2), rooms, schedule)

    assert (first.day, first.classroom_id) == ("Saturday", "r102")
    assert (second.day, second.classroom_id) == ("Sunday", "r102")
    assert engine.home_rooms == {"b1": {"theory": "r102"}}


def test_new_batch_prefers_rooms_no_other_batch_holds():
    engine = TimeSlotEngine()
    rooms = [make_room("r101", capacity=45), make_room("r102", capacity=60)]
    first = make_task(make_batch("b1", students=40), make_course("o1"))
    second = make_task(make_batch("b2", students=40), make_course("o2"), teacher_id="t2")

    entry = engine.schedule_task(first, rooms, [])

    assert entry.classroom_id == "r101"
    assert [room.id for room in engine.candidate_rooms(second, rooms)] == ["r102", "r101"]
    assert [room.id for room in engine.candidate_rooms(first, rooms)] == ["r101", "r102"]


def test_room_suitability_by_course_type():
    engine = TimeSlotEngine()

    assert engine.is_room_suitable(make_room("l", room_type="Computer Lab"), "lab", 40)
    assert engine.is_room_suitable(make_room("s", room_type="Seminar Room"), "project", 40)
    assert not engine.is_room_suitable(make_room("s", room_type="Seminar Room"), "lab", 40)
    assert not engine.is_room_suitable(make_room("h", capacity=39), "theory", 40)


@pytest.mark.parametrize(
    ("course_type", "credits", "expected"),
    [("theory", 1, 2), ("theory", 4, 2), ("lab", 1, 1), ("project", 6, 1)],
)
def test_sessions_per_week_depends_on_type_only(course_type, credits, expected):
    assert TimeSlotEngine().sessions_per_week(course_type, credits) == expected


def test_configure_durations():
    engine = TimeSlotEngine()
    assert engine.class_durations == {"theory": 75, "lab": 150, "project": 150}

    engine.configure(ScheduleOptions(class_duration_minutes=60))
    assert engine.class_durations == {"theory": 60, "lab": 120, "project": 120}

    engine.configure(ScheduleOptions(class_duration_minutes=60, class_durations=ClassDurations(lab=90)))
    assert engine.class_durations == {"theory": 60, "lab": 90, "project": 120}


def test_configure_working_days():
    engine = TimeSlotEngine()
    assert "Friday" not in engine.working_days_for("day")
    assert len(engine.working_days_for("evening")) == 7

    engine.configure(ScheduleOptions(off_days=["Friday", "Saturday"]))
    expected = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday")
    assert engine.working_days_for("day") == expected
    assert engine.working_days_for("evening") == expected

    engine.configure(ScheduleOptions(working_days=["Monday", "Sunday"], off_days=["Monday"]))
    assert engine.working_days_for("day") == ("Sunday", "Monday")


def test_configure_custom_window_without_break_has_none():
    options = ScheduleOptions(
        custom_time_slots=CustomTimeSlots(day=ShiftTimeConfig(start_time="09:00", end_time="17:00"))
    )
    engine = TimeSlotEngine(options)

    window = engine.shift_windows["day"]
    assert (window.start, window.end) == (9 * 60, 17 * 60)
    assert not window.has_break
    assert windows(engine.generate_time_slots("day", 120)) == [
        ("09:00", "11:00"),
        ("11:00", "13:00"),
        ("13:00", "15:00"),
        ("15:00", "17:00"),
    ]


def test_configure_custom_window_keeps_its_own_break():
    config = ShiftTimeConfig(start_time="09:00", end_time="17:00", break_start="13:00", break_end="14:00")
    engine = TimeSlotEngine(ScheduleOptions(custom_time_slots=CustomTimeSlots(day=config)))

    window = engine.shift_windows["day"]
    assert (window.break_start, window.break_end) == (13 * 60, 14 * 60)
    assert engine.shift_windows["evening"] == TimeSlotEngine().shift_windows["evening"]


def test_configure_resets_run_state():
    engine = TimeSlotEngine()
    engine.warnings.append("stale")
    engine.conflicts.append({"type": "UNSCHEDULED_FINAL"})
    engine.schedule_task(make_task(make_batch(), make_course()), [make_room("r1")], [])

    engine.configure(ScheduleOptions(target_shift="evening"))

    assert engine.warnings == []
    assert engine.conflicts == []
    assert engine.home_rooms == {}
    assert engine.shift_for_batch(make_batch(shift="day")) == "evening"


def test_strict_placement_spreads_sessions_over_distinct_days():
    engine = TimeSlotEngine()
    batch = make_batch()
    course = make_course()
    rooms = [make_room("r1")]
    schedule = []

    first = engine.schedule_task(make_task(batch, course, session_number=1), rooms, schedule)
    schedule.append(first)
    second = engine.schedule_task(make_task(batch, course, session_number=2), rooms, schedule)

    assert (first.day, first.start_time, first.end_time) == ("Saturday", "08:00", "09:15")
    assert (second.day, second.start_time) == ("Sunday", "08:00")
    assert first.classroom_id == second.classroom_id == "r1"
    assert not first.relaxed and not second.relaxed
    assert first.class_type == "Lecture"
    assert first.room_name == "R1 (Main)"


def test_place_does_not_mutate_schedule():
    engine = TimeSlotEngine()
    schedule = []

    engine.schedule_task(make_task(make_batch(), make_course()), [make_room("r1")], schedule)

    assert schedule == []


def test_relaxed_placement_uses_any_room_with_capacity():
    engine = TimeSlotEngine()
    task = make_task(make_batch(), make_course())
    rooms = [make_room("lab1", room_type="Laboratory")]

    assert engine.schedule_task(task, rooms, []) is None
    assert any("No suitable room" in warning for warning in engine.warnings)

    entry = engine.schedule_task_relaxed(task, rooms, [])

    assert entry is not None
    assert entry.relaxed
    assert entry.classroom_id == "lab1"
    assert any(warning.startswith("Relaxed placement") for warning in engine.warnings)


def test_capacity_is_never_relaxed():
    engine = TimeSlotEngine()
    task = make_task(make_batch(students=40), make_course())
    rooms = [make_room("small", capacity=30)]

    assert engine.schedule_task(task, rooms, []) is None
    assert engine.schedule_task_relaxed(task, rooms, []) is None
    assert engine.schedule_task_alternate_shift(task, rooms, []) is None


def test_alternate_shift_uses_opposite_window():
    engine = TimeSlotEngine()
    task = make_task(make_batch(shift="day"), make_course())

    entry = engine.schedule_task_alternate_shift(task, [make_room("r1")], [])

    assert entry.batch_shift == "evening"
    assert (entry.day, entry.start_time) == ("Saturday", "15:30")
    assert entry.relaxed


def test_alternate_shift_only_uses_days_the_batch_attends():
    engine = TimeSlotEngine()
    batch = make_batch(shift="day")
    task = make_task(batch, make_course())
    attended = engine.working_days_for("day")
    schedule = [make_entry(batch.id, day, "15:30", "21:00") for day in attended]

    assert "Friday" in engine.working_days_for("evening")
    assert engine.schedule_task_alternate_shift(task, [make_room("r1")], schedule) is None

    schedule.pop()
    entry = engine.schedule_task_alternate_shift(task, [make_room("r1")], schedule)
    assert (entry.day, entry.start_time, entry.batch_shift) == (attended[-1], "15:30", "evening")


def test_lab_block_places_labs_back_to_back_on_one_day():
    engine = TimeSlotEngine()
    batch = make_batch()
    tasks = [
        make_task(batch, make_course("l1", "lab", duration=100), teacher_id="t1"),
        make_task(batch, make_course("l2", "lab", duration=100), teacher_id="t2"),
    ]
    rooms = [make_room("lab1", room_type="Laboratory")]

    placed, leftovers = engine.schedule_lab_block(batch, tasks, rooms, [])

    assert leftovers == []
    assert [(entry.day, entry.start_time, entry.end_time) for entry in placed] == [
        ("Saturday", "08:00", "09:40"),
        ("Saturday", "09:40", "11:20"),
    ]
    assert all(entry.class_type == "Lab" for entry in placed)


def test_lab_block_hands_back_everything_when_one_day_is_too_short():
    engine = TimeSlotEngine()
    batch = make_batch()
    tasks = [
        make_task(batch, make_course("l1", "lab", duration=150)),
        make_task(batch, make_course("l2", "lab", duration=150)),
    ]
    schedule = []

    placed, leftovers = engine.schedule_lab_block(batch, tasks, [make_room("lab1", room_type="Laboratory")], schedule)

    assert placed == []
    assert leftovers == tasks
    assert schedule == []


def test_detect_conflicts_reports_double_booked_teacher_once():
    engine = TimeSlotEngine()
    entries = [
        make_entry("b1", "Monday", "09:00", "10:15", teacher_id="t1", classroom_id="r1"),
        make_entry("b2", "Monday", "09:00", "10:15", teacher_id="t1", classroom_id="r2"),
        make_entry("b3", "Monday", "10:15", "11:30", teacher_id="t1", classroom_id="r1"),
    ]

    records = engine.detect_conflicts(entries)

    assert [(record.type, record.day) for record in records] == [("TEACHER_CONFLICT", "Monday")]
    assert {entry.batch_id for entry in records[0].entries} == {"b1", "b2"}


def test_detect_conflicts_room_and_missing_ids():
    engine = TimeSlotEngine()
    entries = [
        make_entry("b1", "Tuesday", "09:00", "10:15", classroom_id="r1"),
        make_entry("b2", "Tuesday", "09:30", "10:45", classroom_id="r1"),
        make_entry("b3", "Tuesday", "09:30", "10:45"),
    ]

    records = engine.detect_conflicts(entries)

    assert [record.type for record in records] == ["ROOM_CONFLICT"]
    assert records[0].to_payload()["entries"][0]["daysOfWeek"] == ["Tuesday"]


def test_room_assignment_summary_groups_by_category():
    engine = TimeSlotEngine()
    entries = [
        make_entry("b1", "Saturday", "08:00", "09:15", classroom_id="r1"),
        make_entry("b1", "Sunday", "08:00", "09:15", classroom_id="r1"),
        make_entry("b1", "Monday", "08:00", "10:30", classroom_id="lab1", class_type="Lab"),
    ]

    assert engine.room_assignment_summary(entries) == {"b1": {"theory": ["r1"], "lab": ["lab1"]}}
    assert engine.room_assignments == {"b1": {"theory": ["r1"], "lab": ["lab1"]}}


def test_expand_payload_yields_one_entry_per_day():
    payload = make_entry("b1", "Monday", "09:00", "10:15", teacher_id="t1", classroom_id="r1").to_payload()
    payload["daysOfWeek"] = ["Monday", "Wednesday"]

    entries = ScheduleEntry.expand_payload(payload, source="pending")

    assert [entry.day for entry in entries] == ["Monday", "Wednesday"]
    assert all(entry.source == "pending" for entry in entries)
    assert payload["isRecurring"] is True
    assert payload["status"] == "active"
