"""create committed schedules, proposals and activity logs

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261018_0002"
down_revision = "20261018_0001"
branch_labels = None
depends_on = None


class_type = sa.Enum("Lecture", "Tutorial", "Lab", "Seminar", "Workshop", "Other", name="class_type")
schedule_status = sa.Enum("active", "closed", "archived", name="schedule_status")
proposal_status = sa.Enum("pending", "approved", "rejected", name="proposal_status")


def upgrade() -> None:
    op.create_table(
        "course_schedules",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=True),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("session_course_id", sa.String(length=36), nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=True),
        sa.Column("classroom_id", sa.String(length=36), nullable=True),
        sa.Column("building", sa.String(length=200), nullable=True),
        sa.Column("days_of_week", sa.JSON(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("class_type", class_type, nullable=False, server_default="Lecture"),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("status", schedule_status, nullable=False, server_default="active"),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_course_schedules_session_id", "course_schedules", ["session_id"])
    op.create_index("ix_course_schedules_batch_id", "course_schedules", ["batch_id"])
    op.create_index("ix_course_schedules_teacher_id", "course_schedules", ["teacher_id"])
    op.create_index("ix_course_schedules_classroom_id", "course_schedules", ["classroom_id"])
    op.create_index("ix_course_schedules_status", "course_schedules", ["status"])

    op.create_table(
        "schedule_proposals",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("generated_by", sa.String(length=36), nullable=False),
        sa.Column("status", proposal_status, nullable=False, server_default="pending"),
        sa.Column("schedule_data", sa.JSON(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_schedule_proposals_session_id", "schedule_proposals", ["session_id"])
    op.create_index("ix_schedule_proposals_status", "schedule_proposals", ["status"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_entity_id", "activity_logs", ["entity_id"])


def downgrade() -> None:
    op.drop_index("ix_activity_logs_entity_id", table_name="activity_logs")
    op.drop_index("ix_activity_logs_action", table_name="activity_logs")
    op.drop_index("ix_activity_logs_user_id", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_index("ix_schedule_proposals_status", table_name="schedule_proposals")
    op.drop_index("ix_schedule_proposals_session_id", table_name="schedule_proposals")
    op.drop_table("schedule_proposals")
    for name in (
        "ix_course_schedules_status",
        "ix_course_schedules_classroom_id",
        "ix_course_schedules_teacher_id",
        "ix_course_schedules_batch_id",
        "ix_course_schedules_session_id",
    ):
        op.drop_index(name, table_name="course_schedules")
    op.drop_table("course_schedules")

    bind = op.get_bind()
    proposal_status.drop(bind, checkfirst=True)
    schedule_status.drop(bind, checkfirst=True)
    class_type.drop(bind, checkfirst=True)
