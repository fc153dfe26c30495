import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum as SAEnum, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.period import Program, Semester, enum_values
from app.models.position import Position


class Instructor(Base):
    __tablename__ = "instructors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str | None] = mapped_column(String(36), unique=True, nullable=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    chair: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    position_id: Mapped[str | None] = mapped_column(ForeignKey("positions.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    position: Mapped[Position | None] = relationship(lazy="joined")
    commitments: Mapped[list["InstructorCommitment"]] = relationship(
        back_populates="instructor",
        order_by="InstructorCommitment.created_at",
        cascade="all, delete-orphan",
    )


class InstructorCommitment(Base):
    """Committed teaching hours of one instructor in one period.

    Written only by the assignment store. `version` is bumped on every write so
    concurrent writers can detect that they lost a race.
    """

    __tablename__ = "instructor_commitments"
    __table_args__ = (
        UniqueConstraint("instructor_id", "year", "semester", "program", name="uq_instructor_commitment_period"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    instructor_id: Mapped[str] = mapped_column(ForeignKey("instructors.id", ondelete="CASCADE"), nullable=False, index=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    semester: Mapped[Semester] = mapped_column(SAEnum(Semester, name="semester", values_callable=enum_values), nullable=False)
    program: Mapped[Program] = mapped_column(SAEnum(Program, name="program", values_callable=enum_values), nullable=False)
    hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    instructor: Mapped[Instructor] = relationship(back_populates="commitments")
