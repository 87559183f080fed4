import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base

DEFAULT_BATCH_HEADCOUNT = 40


class Shift(str, Enum):
    day = "day"
    evening = "evening"


class Batch(Base):
    __tablename__ = "batches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    shift: Mapped[Shift] = mapped_column(SAEnum(Shift, name="batch_shift"), nullable=False, default=Shift.day)
    current_semester: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    department_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    department_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    max_students: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_students: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    @property
    def student_count(self) -> int:
        return self.current_students or self.max_students or DEFAULT_BATCH_HEADCOUNT
