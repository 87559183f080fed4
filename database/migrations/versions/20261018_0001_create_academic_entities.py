"""create academic entities used by the scheduler

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


batch_shift = sa.Enum("day", "evening", name="batch_shift")
course_offering_type = sa.Enum("theory", "lab", "project", name="course_offering_type")
classroom_type = sa.Enum(
    "Lecture Hall",
    "Laboratory",
    "Seminar Room",
    "Computer Lab",
    "Conference Room",
    "Virtual",
    "Other",
    name="classroom_type",
)


def upgrade() -> None:
    op.create_table(
        "academic_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "batches",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("shift", batch_shift, nullable=False, server_default="day"),
        sa.Column("current_semester", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("department_id", sa.String(length=36), nullable=False),
        sa.Column("department_name", sa.String(length=100), nullable=True),
        sa.Column("max_students", sa.Integer(), nullable=True),
        sa.Column("current_students", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_batches_department_id", "batches", ["department_id"])
    op.create_index("ix_batches_is_active", "batches", ["is_active"])

    op.create_table(
        "course_offerings",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("course_id", sa.String(length=36), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("credit", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("course_type", course_offering_type, nullable=False, server_default="theory"),
        sa.Column("semester", sa.Integer(), nullable=False),
        sa.Column("department_id", sa.String(length=36), nullable=False),
        sa.Column("department_name", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_course_offerings_session_id", "course_offerings", ["session_id"])
    op.create_index("ix_course_offerings_course_id", "course_offerings", ["course_id"])
    op.create_index("ix_course_offerings_department_id", "course_offerings", ["department_id"])

    op.create_table(
        "classrooms",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("room_number", sa.String(length=50), nullable=False),
        sa.Column("building_name", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("floor", sa.Integer(), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("room_type", classroom_type, nullable=False, server_default="Lecture Hall"),
        sa.Column("facilities", sa.JSON(), nullable=False),
        sa.Column("department_id", sa.String(length=36), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_under_maintenance", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_classrooms_room_number", "classrooms", ["room_number"])

    op.create_table(
        "teachers",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("teachers")
    op.drop_index("ix_classrooms_room_number", table_name="classrooms")
    op.drop_table("classrooms")
    op.drop_index("ix_course_offerings_department_id", table_name="course_offerings")
    op.drop_index("ix_course_offerings_course_id", table_name="course_offerings")
    op.drop_index("ix_course_offerings_session_id", table_name="course_offerings")
    op.drop_table("course_offerings")
    op.drop_index("ix_batches_is_active", table_name="batches")
    op.drop_index("ix_batches_department_id", table_name="batches")
    op.drop_table("batches")
    op.drop_table("academic_sessions")

    bind = op.get_bind()
    classroom_type.drop(bind, checkfirst=True)
    course_offering_type.drop(bind, checkfirst=True)
    batch_shift.drop(bind, checkfirst=True)
