"""create staffing schema

Revision ID: 20261017_0001
Revises: None
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


user_role_enum = postgresql.ENUM("head_of_faculty", "chair_head", "coc", "instructor", name="user_role", create_type=False)
course_status_enum = postgresql.ENUM(
    "draft", "assigned", "active", "completed", "archived", name="course_status", create_type=False
)
semester_enum = postgresql.ENUM(
    "Regular 1", "Regular 2", "Summer", "Extension 1", "Extension 2", name="semester", create_type=False
)
program_enum = postgresql.ENUM("Regular", "Common", "Extension", "Summer", name="program", create_type=False)
lab_division_enum = postgresql.ENUM("Yes", "No", name="lab_division", create_type=False)
complaint_status_enum = postgresql.ENUM("Pending", "Resolved", "Rejected", name="complaint_status", create_type=False)

ENUMS = (
    user_role_enum,
    course_status_enum,
    semester_enum,
    program_enum,
    lab_division_enum,
    complaint_status_enum,
)


def upgrade() -> None:
    bind = op.get_bind()
    # Shared by several tables, so created once up front.
    for enum in ENUMS:
        enum.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column("chair", sa.String(length=100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "positions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("exemption_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_positions_name", "positions", ["name"], unique=True)

    op.create_table(
        "instructors",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True, unique=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("chair", sa.String(length=100), nullable=True),
        sa.Column("location", sa.String(length=200), nullable=True),
        sa.Column("position_id", sa.String(length=36), sa.ForeignKey("positions.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_instructors_email", "instructors", ["email"], unique=True)
    op.create_index("ix_instructors_chair", "instructors", ["chair"])

    op.create_table(
        "instructor_commitments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "instructor_id",
            sa.String(length=36),
            sa.ForeignKey("instructors.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("semester", semester_enum, nullable=False),
        sa.Column("program", program_enum, nullable=False),
        sa.Column("hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("instructor_id", "year", "semester", "program", name="uq_instructor_commitment_period"),
    )
    op.create_index("ix_instructor_commitments_instructor_id", "instructor_commitments", ["instructor_id"])

    op.create_table(
        "courses",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("department", sa.String(length=200), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("chair", sa.String(length=100), nullable=True),
        sa.Column("location", sa.String(length=200), nullable=True),
        sa.Column("curriculum_year", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("curriculum_semester", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("credit_hour", sa.Float(), nullable=False, server_default="3"),
        sa.Column("lecture_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("lab_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("tutorial_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", course_status_enum, nullable=False, server_default="draft"),
        sa.Column("assigned_to", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_courses_code", "courses", ["code"], unique=True)
    op.create_index("ix_courses_chair", "courses", ["chair"])
    op.create_index("ix_courses_status", "courses", ["status"])
    op.create_index("ix_courses_assigned_to", "courses", ["assigned_to"])

    op.create_table(
        "preference_forms",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("chair", sa.String(length=100), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("semester", semester_enum, nullable=False),
        sa.Column("program", program_enum, nullable=False),
        sa.Column("max_preferences", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("submission_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("submission_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("all_instructors", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("instructor_ids", sa.JSON(), nullable=False),
        sa.Column("courses", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("chair", "year", "semester", "program", name="uq_preference_form_chair_period"),
    )
    op.create_index("ix_preference_forms_chair", "preference_forms", ["chair"])

    op.create_table(
        "preferences",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "instructor_id",
            sa.String(length=36),
            sa.ForeignKey("instructors.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "form_id",
            sa.String(length=36),
            sa.ForeignKey("preference_forms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("semester", semester_enum, nullable=False),
        sa.Column("program", program_enum, nullable=False),
        sa.Column("rankings", sa.JSON(), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("instructor_id", "form_id", name="uq_preference_instructor_form"),
    )
    op.create_index("ix_preferences_instructor_id", "preferences", ["instructor_id"])
    op.create_index("ix_preferences_form_id", "preferences", ["form_id"])

    op.create_table(
        "assignments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("semester", semester_enum, nullable=False),
        sa.Column("program", program_enum, nullable=False),
        sa.Column("assigned_by", sa.String(length=100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("year", "semester", "program", "assigned_by", name="uq_assignment_scope"),
    )

    op.create_table(
        "sub_assignments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "assignment_id",
            sa.String(length=36),
            sa.ForeignKey("assignments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("semester", semester_enum, nullable=False),
        sa.Column("program", program_enum, nullable=False),
        sa.Column("assigned_by", sa.String(length=100), nullable=False),
        sa.Column("instructor_id", sa.String(length=36), sa.ForeignKey("instructors.id"), nullable=False),
        sa.Column("course_id", sa.String(length=36), sa.ForeignKey("courses.id"), nullable=False),
        sa.Column("section", sa.String(length=20), nullable=False),
        sa.Column("lab_division", lab_division_enum, nullable=False, server_default="No"),
        sa.Column("workload_hours", sa.Float(), nullable=False),
        sa.Column("preference_rank", sa.Integer(), nullable=True),
        sa.Column("assignment_reason", sa.Text(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "year",
            "semester",
            "program",
            "instructor_id",
            "course_id",
            "section",
            name="uq_sub_assignment_period_tuple",
        ),
    )
    op.create_index("ix_sub_assignments_assignment_id", "sub_assignments", ["assignment_id"])
    op.create_index("ix_sub_assignments_instructor_id", "sub_assignments", ["instructor_id"])
    op.create_index("ix_sub_assignments_course_id", "sub_assignments", ["course_id"])
    op.create_index("ix_sub_assignments_scope", "sub_assignments", ["year", "semester", "program", "assigned_by"])
    op.create_index("ix_sub_assignments_slot", "sub_assignments", ["year", "semester", "program", "course_id", "section"])

    op.create_table(
        "complaints",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("assignment_id", sa.String(length=36), nullable=False),
        sa.Column("sub_assignment_id", sa.String(length=36), nullable=False),
        sa.Column("submitted_by", sa.String(length=36), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", complaint_status_enum, nullable=False, server_default="Pending"),
        sa.Column("resolve_note", sa.Text(), nullable=True),
        sa.Column("resolved_by", sa.String(length=36), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_complaints_assignment_id", "complaints", ["assignment_id"])
    op.create_index("ix_complaints_sub_assignment_id", "complaints", ["sub_assignment_id"])
    op.create_index("ix_complaints_submitted_by", "complaints", ["submitted_by"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("actor_role", sa.String(length=50), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_entity", "activity_logs", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_table("complaints")
    op.drop_table("sub_assignments")
    op.drop_table("assignments")
    op.drop_table("preferences")
    op.drop_table("preference_forms")
    op.drop_table("courses")
    op.drop_table("instructor_commitments")
    op.drop_table("instructors")
    op.drop_table("positions")
    op.drop_table("users")
    bind = op.get_bind()
    for enum in reversed(ENUMS):
        enum.drop(bind, checkfirst=True)
