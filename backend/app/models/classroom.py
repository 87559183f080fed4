import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class RoomType(str, Enum):
    lecture_hall = "Lecture Hall"
    laboratory = "Laboratory"
    seminar_room = "Seminar Room"
    computer_lab = "Computer Lab"
    conference_room = "Conference Room"
    virtual = "Virtual"
    other = "Other"


class Classroom(Base):
    __tablename__ = "classrooms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    room_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    building_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    floor: Mapped[int | None] = mapped_column(Integer, nullable=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    # Stored by value so the labels stay readable in JSON payloads.
    room_type: Mapped[RoomType] = mapped_column(
        SAEnum(RoomType, name="classroom_type", values_callable=lambda items: [item.value for item in items]),
        nullable=False,
        default=RoomType.lecture_hall,
    )
    facilities: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    department_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_under_maintenance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
