"""create semester schedules, teacher preferences and proposal cache

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None

semester_schedule_status_enum = sa.Enum("DRAFT", "PUBLISHED", "ARCHIVED", name="semester_schedule_status")


def upgrade() -> None:
    op.create_table(
        "teacher_preferences",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("max_load_per_day", sa.Integer(), nullable=True),
        sa.Column("max_load_per_week", sa.Integer(), nullable=True),
        sa.Column("unavailable", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_teacher_preferences_teacher_id", "teacher_preferences", ["teacher_id"], unique=True)

    op.create_table(
        "semester_schedules",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("term_id", sa.String(length=36), nullable=False),
        sa.Column("class_id", sa.String(length=36), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("status", semester_schedule_status_enum, nullable=False),
        sa.Column("meta", sa.JSON(), nullable=False),
        sa.Column("created_by_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("term_id", "class_id", "version", name="uq_semester_schedules_term_class_version"),
    )
    op.create_index("ix_semester_schedules_term_class", "semester_schedules", ["term_id", "class_id"])

    op.create_table(
        "semester_schedule_slots",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "semester_schedule_id",
            sa.String(length=36),
            sa.ForeignKey("semester_schedules.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("time_slot", sa.Integer(), nullable=False),
        sa.Column("subject_id", sa.String(length=36), nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("room", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "semester_schedule_id",
            "day_of_week",
            "time_slot",
            name="uq_semester_schedule_slots_cell",
        ),
    )
    op.create_index(
        "ix_semester_schedule_slots_teacher",
        "semester_schedule_slots",
        ["teacher_id", "day_of_week", "time_slot"],
    )

    op.create_table(
        "schedule_proposals",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("term_id", sa.String(length=36), nullable=False),
        sa.Column("class_id", sa.String(length=36), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_schedule_proposals_expires_at", "schedule_proposals", ["expires_at"])


def downgrade() -> None:
    op.drop_index("ix_schedule_proposals_expires_at", table_name="schedule_proposals")
    op.drop_table("schedule_proposals")
    op.drop_index("ix_semester_schedule_slots_teacher", table_name="semester_schedule_slots")
    op.drop_table("semester_schedule_slots")
    op.drop_index("ix_semester_schedules_term_class", table_name="semester_schedules")
    op.drop_table("semester_schedules")
    semester_schedule_status_enum.drop(op.get_bind(), checkfirst=True)
    op.drop_index("ix_teacher_preferences_teacher_id", table_name="teacher_preferences")
    op.drop_table("teacher_preferences")
