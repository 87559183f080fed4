import os

# The app module builds its engine at import time; point it at an in-memory database first.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")

from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_assignment_directory, get_db, get_teacher_directory
from app.db.base import Base
from app.main import app
from app.models import (
    AcademicSession,
    Batch,
    ClassType,
    Classroom,
    CourseOffering,
    CourseSchedule,
    CourseType,
    RoomType,
    ScheduleStatus,
    Shift,
    Teacher,
)
from app.services.directory_clients import (
    InstructorAssignment,
    TeacherAssignmentDirectory,
    TeacherDirectory,
    TeacherRecord,
)


class FakeAssignmentDirectory(TeacherAssignmentDirectory):
    def __init__(self) -> None:
        self.assignments: dict[str, list[InstructorAssignment]] = {}
        self.calls: list[tuple[str, int]] = []

    def assign(self, batch, offering, instructor_id, instructor_name=None):
        self.assignments.setdefault(batch.id, []).append(
            InstructorAssignment(course_id=offering.course_id, instructor_id=instructor_id, instructor_name=instructor_name)
        )

    def get_assignments(self, batch_id, semester):
        self.calls.append((batch_id, semester))
        return list(self.assignments.get(batch_id, []))


class FakeTeacherDirectory(TeacherDirectory):
    def __init__(self) -> None:
        self.teachers: dict[str, TeacherRecord] = {}
        self.calls: list[list[str]] = []

    def add(self, teacher_id, full_name, email=None):
        self.teachers[teacher_id] = TeacherRecord(id=teacher_id, full_name=full_name, email=email)

    def get_teachers_by_ids(self, teacher_ids):
        self.calls.append(list(teacher_ids))
        return [self.teachers[teacher_id] for teacher_id in teacher_ids if teacher_id in self.teachers]


class Seeder:
    def __init__(self, db):
        self.db = db

    def _save(self, row):
        self.db.add(row)
        self.db.commit()
        return row

    def session(self, name="Spring 2026", start=date(2026, 1, 10), end=date(2026, 6, 30)):
        return self._save(AcademicSession(name=name, start_date=start, end_date=end))

    def batch(self, name, *, shift=Shift.day, semester=1, department_id="dept-cse", students=40, active=True):
        return self._save(
            Batch(
                name=name,
                shift=shift,
                current_semester=semester,
                department_id=department_id,
                department_name="CSE",
                current_students=students,
                is_active=active,
            )
        )

    def offering(self, session, code, *, course_type=CourseType.theory, semester=1, department_id="dept-cse"):
        return self._save(
            CourseOffering(
                session_id=session.id,
                course_id=f"course-{code.lower()}",
                code=code,
                name=f"{code} Course",
                credit=3,
                course_type=course_type,
                semester=semester,
                department_id=department_id,
            )
        )

    def classroom(self, room_number, *, capacity=60, room_type=RoomType.lecture_hall, building="Main", **extra):
        return self._save(
            Classroom(
                room_number=room_number,
                building_name=building,
                capacity=capacity,
                room_type=room_type,
                facilities=[],
                **extra,
            )
        )

    def teacher(self, teacher_id, full_name):
        return self._save(Teacher(id=teacher_id, full_name=full_name))

    def committed(
        self,
        session,
        batch,
        offering,
        *,
        days,
        start,
        end,
        teacher_id=None,
        classroom_id=None,
        status=ScheduleStatus.active,
    ):
        return self._save(
            CourseSchedule(
                session_id=session.id,
                batch_id=batch.id,
                session_course_id=offering.id,
                teacher_id=teacher_id,
                classroom_id=classroom_id,
                days_of_week=list(days),
                start_time=start,
                end_time=end,
                class_type=ClassType.lecture,
                start_date=session.start_date,
                end_date=session.end_date,
                status=status,
            )
        )


@pytest.fixture()
def testing_engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db_session(testing_engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=testing_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def seed(db_session):
    return Seeder(db_session)


@pytest.fixture()
def assignment_directory():
    return FakeAssignmentDirectory()


@pytest.fixture()
def teacher_directory():
    return FakeTeacherDirectory()


@pytest.fixture()
def client(testing_engine, assignment_directory, teacher_directory):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=testing_engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_assignment_directory] = lambda: assignment_directory
    app.dependency_overrides[get_teacher_directory] = lambda: teacher_directory

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
