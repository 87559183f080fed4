from collections.abc import Generator

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from app.db.session import SessionLocal
from app.services.auto_scheduler import AutoScheduler
from app.services.directory_clients import (
    TeacherAssignmentDirectory,
    TeacherDirectory,
    build_assignment_directory,
    build_teacher_directory,
)
from app.services.schedule_proposals import ScheduleProposalService

SYSTEM_ACTOR = "system"


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_actor_id(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str:
    if x_user_id is None or not x_user_id.strip():
        return SYSTEM_ACTOR
    return x_user_id.strip()[:36]


def get_assignment_directory() -> TeacherAssignmentDirectory:
    return build_assignment_directory()


def get_teacher_directory() -> TeacherDirectory:
    return build_teacher_directory()


def get_auto_scheduler(
    db: Session = Depends(get_db),
    assignment_directory: TeacherAssignmentDirectory = Depends(get_assignment_directory),
    teacher_directory: TeacherDirectory = Depends(get_teacher_directory),
) -> AutoScheduler:
    return AutoScheduler(db, assignment_directory, teacher_directory)


def get_proposal_service(db: Session = Depends(get_db)) -> ScheduleProposalService:
    return ScheduleProposalService(db)
