from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.teacher import Teacher
from app.services.directory_clients import TeacherDirectory

logger = logging.getLogger(__name__)


class TeacherNameCache:
    """Read-through teacher name lookup.

    Tiers are consulted in order: the in-memory map, the local ``teachers``
    table, then the remote teacher directory. Remote hits are written back to
    both lower tiers so later lookups stay local.
    """

    def __init__(self, db: Session, directory: TeacherDirectory | None = None) -> None:
        self.db = db
        self.directory = directory
        self._names: dict[str, str] = {}

    def get(self, teacher_id: str) -> str | None:
        return self.resolve([teacher_id]).get(teacher_id)

    def resolve(self, teacher_ids: Iterable[str]) -> dict[str, str]:
        wanted = [teacher_id for teacher_id in dict.fromkeys(teacher_ids) if teacher_id]

        missing = [teacher_id for teacher_id in wanted if teacher_id not in self._names]
        if missing:
            rows = self.db.execute(select(Teacher).where(Teacher.id.in_(missing))).scalars().all()
            for row in rows:
                self._names[row.id] = row.full_name

        missing = [teacher_id for teacher_id in wanted if teacher_id not in self._names]
        if missing and self.directory is not None:
            records = self.directory.get_teachers_by_ids(missing)
            for record in records:
                self._names[record.id] = record.full_name
                local = self.db.get(Teacher, record.id)
                if local is None:
                    self.db.add(Teacher(id=record.id, full_name=record.full_name, email=record.email))
                else:
                    local.full_name = record.full_name
            if records:
                self.db.flush()
                logger.debug("Teacher names cached from directory | requested=%s found=%s", len(missing), len(records))

        return {teacher_id: self._names[teacher_id] for teacher_id in wanted if teacher_id in self._names}
