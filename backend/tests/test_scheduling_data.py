import pytest

from app.core.exceptions import ResourceNotFoundError
from app.models import CourseType, RoomType, Teacher
from app.services.scheduling_data import UNASSIGNED_MESSAGE, UNKNOWN_TEACHER, SchedulingDataGatherer
from app.services.teacher_names import TeacherNameCache
from app.services.time_slot_engine import TimeSlotEngine


def _gatherer(db_session, assignment_directory, teacher_directory=None):
    return SchedulingDataGatherer(db_session, assignment_directory, teacher_directory)


def test_prerequisites_pass_when_everything_is_assigned(seed, db_session, assignment_directory):
    session = seed.session()
    batch = seed.batch("CSE-1A")
    offering = seed.offering(session, "CSE101")
    seed.classroom("101")
    assignment_directory.assign(batch, offering, "t-1", "Dr Rahman")

    report = _gatherer(db_session, assignment_directory).validate_prerequisites(session.id)

    assert report.valid
    assert report.errors == []
    assert report.warnings == []


def test_prerequisites_report_unassigned_courses(seed, db_session, assignment_directory):
    session = seed.session()
    batch = seed.batch("CSE-1A")
    assigned = seed.offering(session, "CSE101")
    seed.offering(session, "CSE102")
    seed.classroom("101")
    assignment_directory.assign(batch, assigned, "t-1")

    gatherer = _gatherer(db_session, assignment_directory)
    first = gatherer.validate_prerequisites(session.id)
    second = gatherer.validate_prerequisites(session.id)

    assert not first.valid
    assert first.to_dict() == second.to_dict()
    assert first.errors[0]["message"] == UNASSIGNED_MESSAGE
    assert [item["courseCode"] for item in first.unassigned_courses] == ["CSE102"]
    assert first.unassigned_courses[0]["batchName"] == "CSE-1A"
    assert first.unassigned_courses[0]["semester"] == 1


def test_prerequisites_without_matching_batches(seed, db_session, assignment_directory):
    session = seed.session()
    seed.batch("CSE-1A")

    report = _gatherer(db_session, assignment_directory).validate_prerequisites(session.id, department_id="dept-eee")

    assert not report.valid
    assert report.errors == ["No active batches found for the selected criteria"]
    assert assignment_directory.calls == []


def test_prerequisites_skip_inactive_batches_given_by_id(seed, db_session, assignment_directory):
    session = seed.session()
    batch = seed.batch("CSE-1A", active=False)

    report = _gatherer(db_session, assignment_directory).validate_prerequisites(session.id, batch_ids=[batch.id])

    assert report.errors == ["No active batches found for the selected criteria"]


def test_prerequisites_unknown_batch_id_is_not_found(seed, db_session, assignment_directory):
    session = seed.session()

    with pytest.raises(ResourceNotFoundError):
        _gatherer(db_session, assignment_directory).validate_prerequisites(session.id, batch_ids=["missing"])


def test_prerequisites_without_offerings_for_semester(seed, db_session, assignment_directory):
    session = seed.session()
    seed.batch("CSE-3A", semester=3)
    seed.offering(session, "CSE101", semester=1)

    report = _gatherer(db_session, assignment_directory).validate_prerequisites(session.id)

    assert report.errors == ["No session courses found for the selected batches' semesters"]


def test_prerequisites_ignore_rooms_under_maintenance(seed, db_session, assignment_directory):
    session = seed.session()
    batch = seed.batch("CSE-1A")
    offering = seed.offering(session, "CSE101")
    seed.classroom("101", is_under_maintenance=True)
    seed.classroom("102", is_active=False)
    assignment_directory.assign(batch, offering, "t-1")

    report = _gatherer(db_session, assignment_directory).validate_prerequisites(session.id)

    assert report.errors == ["No available classrooms found"]


def test_prerequisites_warn_about_missing_room_types(seed, db_session, assignment_directory):
    session = seed.session()
    batch = seed.batch("CSE-1A")
    offering = seed.offering(session, "CSE111", course_type=CourseType.lab)
    seed.classroom("101", room_type=RoomType.lecture_hall)
    assignment_directory.assign(batch, offering, "t-1")

    report = _gatherer(db_session, assignment_directory).validate_prerequisites(session.id)

    assert report.valid
    assert len(report.warnings) == 1
    assert report.warnings[0].startswith("No suitable rooms found for lab courses")


def test_repeated_validation_gives_the_same_report(seed, db_session, assignment_directory):
    session = seed.session()
    batch = seed.batch("CSE-1A")
    lab = seed.offering(session, "CSE111", course_type=CourseType.lab)
    theory = seed.offering(session, "CSE101")
    seed.classroom("101", room_type=RoomType.lecture_hall)
    assignment_directory.assign(batch, lab, "t-1")
    assignment_directory.assign(batch, theory, "t-2")
    gatherer = _gatherer(db_session, assignment_directory)

    reports = [gatherer.validate_prerequisites(session.id).to_dict() for _ in range(3)]

    assert reports[0]["valid"] is True
    assert len(reports[0]["warnings"]) == 1
    assert reports[0] == reports[1] == reports[2]
    assert len(assignment_directory.calls) == 3


def test_gather_resolves_teacher_names_through_every_tier(seed, db_session, assignment_directory, teacher_directory):
    session = seed.session()
    batch = seed.batch("CSE-1A", students=35)
    local = seed.offering(session, "CSE101")
    remote = seed.offering(session, "CSE102")
    hinted = seed.offering(session, "CSE103")
    unknown = seed.offering(session, "CSE104")
    seed.classroom("101", building="Block A")
    seed.teacher("t-local", "Dr Local")
    teacher_directory.add("t-remote", "Dr Remote", "remote@example.edu")
    assignment_directory.assign(batch, local, "t-local")
    assignment_directory.assign(batch, remote, "t-remote")
    assignment_directory.assign(batch, hinted, "t-hinted", "Dr Hinted")
    assignment_directory.assign(batch, unknown, "t-unknown")

    data = _gatherer(db_session, assignment_directory, teacher_directory).gather_scheduling_data(
        session.id, TimeSlotEngine()
    )

    names = {course_id: ref.teacher_name for (_, course_id), ref in data.assignments.items()}
    assert names == {
        local.id: "Dr Local",
        remote.id: "Dr Remote",
        hinted.id: "Dr Hinted",
        unknown.id: UNKNOWN_TEACHER,
    }
    assert db_session.get(Teacher, "t-remote").email == "remote@example.edu"
    assert data.batches[0].student_count == 35
    assert data.classrooms[0].display_name == "101 (Block A)"
    assert {course.duration for course in data.courses} == {75}


def test_gather_matches_courses_to_batch_semester(seed, db_session, assignment_directory):
    session = seed.session()
    first = seed.batch("CSE-1A", semester=1)
    third = seed.batch("CSE-3A", semester=3)
    seed.offering(session, "CSE101", semester=1)
    seed.offering(session, "CSE301", semester=3, course_type=CourseType.lab)
    seed.classroom("101")

    engine = TimeSlotEngine()
    data = _gatherer(db_session, assignment_directory).gather_scheduling_data(session.id, engine)

    by_name = {batch.name: batch for batch in data.batches}
    assert [course.code for course in data.courses_for(by_name[first.name])] == ["CSE101"]
    assert [course.code for course in data.courses_for(by_name[third.name])] == ["CSE301"]
    assert data.courses_for(by_name[third.name])[0].duration == 150
    assert sorted(call[1] for call in assignment_directory.calls) == [1, 3]
    assert data.assignments == {}


def test_teacher_name_cache_reads_remote_once(db_session, teacher_directory):
    teacher_directory.add("t-1", "Dr One")
    cache = TeacherNameCache(db_session, teacher_directory)

    assert cache.get("t-1") == "Dr One"
    assert cache.get("t-1") == "Dr One"
    assert cache.resolve(["t-1", "t-2", ""]) == {"t-1": "Dr One"}
    assert teacher_directory.calls == [["t-1"], ["t-2"]]


def test_teacher_name_cache_updates_local_mirror(seed, db_session, teacher_directory):
    seed.teacher("t-1", "Old Name")
    teacher_directory.add("t-2", "Dr Two")
    cache = TeacherNameCache(db_session, teacher_directory)

    assert cache.resolve(["t-1", "t-2"]) == {"t-1": "Old Name", "t-2": "Dr Two"}
    assert teacher_directory.calls == [["t-2"]]
    assert db_session.get(Teacher, "t-2").full_name == "Dr Two"


def test_teacher_name_cache_without_directory(db_session):
    assert TeacherNameCache(db_session).get("nobody") is None
