import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class CourseStatus(str, Enum):
    draft = "draft"
    assigned = "assigned"
    active = "active"
    completed = "completed"
    archived = "archived"


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    department: Mapped[str | None] = mapped_column(String(200), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    chair: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    # Curriculum placement, unrelated to the assignment period.
    curriculum_year: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    curriculum_semester: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    credit_hour: Mapped[float] = mapped_column(Float, nullable=False, default=3.0)
    lecture_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    lab_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    tutorial_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[CourseStatus] = mapped_column(
        SAEnum(CourseStatus, name="course_status"),
        nullable=False,
        default=CourseStatus.draft,
        index=True,
    )
    assigned_to: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
