import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.period import Program, Semester, enum_values


class LabDivision(str, Enum):
    yes = "Yes"
    no = "No"


class Assignment(Base):
    """Aggregate grouping the sub-assignments one operator made for one period."""

    __tablename__ = "assignments"
    __table_args__ = (
        UniqueConstraint("year", "semester", "program", "assigned_by", name="uq_assignment_scope"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    semester: Mapped[Semester] = mapped_column(SAEnum(Semester, name="semester", values_callable=enum_values), nullable=False)
    program: Mapped[Program] = mapped_column(SAEnum(Program, name="program", values_callable=enum_values), nullable=False)
    assigned_by: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    sub_assignments: Mapped[list["SubAssignment"]] = relationship(
        back_populates="assignment",
        order_by="SubAssignment.position",
        cascade="all, delete-orphan",
    )


class SubAssignment(Base):
    """One instructor-course-section binding.

    Stored as its own row with the period columns copied from the aggregate so
    edits and deletes touch a single record and the uniqueness rule can be
    enforced by the database.
    """

    __tablename__ = "sub_assignments"
    __table_args__ = (
        UniqueConstraint(
            "year",
            "semester",
            "program",
            "instructor_id",
            "course_id",
            "section",
            name="uq_sub_assignment_period_tuple",
        ),
        Index("ix_sub_assignments_scope", "year", "semester", "program", "assigned_by"),
        Index("ix_sub_assignments_slot", "year", "semester", "program", "course_id", "section"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    assignment_id: Mapped[str] = mapped_column(ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    semester: Mapped[Semester] = mapped_column(SAEnum(Semester, name="semester", values_callable=enum_values), nullable=False)
    program: Mapped[Program] = mapped_column(SAEnum(Program, name="program", values_callable=enum_values), nullable=False)
    assigned_by: Mapped[str] = mapped_column(String(100), nullable=False)
    instructor_id: Mapped[str] = mapped_column(ForeignKey("instructors.id"), nullable=False, index=True)
    course_id: Mapped[str] = mapped_column(ForeignKey("courses.id"), nullable=False, index=True)
    section: Mapped[str] = mapped_column(String(20), nullable=False)
    lab_division: Mapped[LabDivision] = mapped_column(
        SAEnum(LabDivision, name="lab_division", values_callable=enum_values),
        nullable=False,
        default=LabDivision.no,
    )
    workload_hours: Mapped[float] = mapped_column(Float, nullable=False)
    preference_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assignment_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    assignment: Mapped[Assignment] = relationship(back_populates="sub_assignments")
