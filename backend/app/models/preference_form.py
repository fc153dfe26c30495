import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.period import Program, Semester, enum_values


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class PreferenceForm(Base):
    """A chair's call for preferences: which courses may be ranked, by whom and until when."""

    __tablename__ = "preference_forms"
    __table_args__ = (
        UniqueConstraint("chair", "year", "semester", "program", name="uq_preference_form_chair_period"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    chair: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    semester: Mapped[Semester] = mapped_column(SAEnum(Semester, name="semester", values_callable=enum_values), nullable=False)
    program: Mapped[Program] = mapped_column(SAEnum(Program, name="program", values_callable=enum_values), nullable=False)
    max_preferences: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    submission_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    submission_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    all_instructors: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Instructor ids invited when all_instructors is off.
    instructor_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    # [{"course_id": str, "section": str, "sections": int, "lab_division": "Yes" | "No"}]
    courses: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    def is_open(self, now: datetime) -> bool:
        return as_utc(self.submission_start) <= as_utc(now) <= as_utc(self.submission_end)

    def course_ids(self) -> set[str]:
        return {item["course_id"] for item in self.courses or []}

    def invites(self, instructor_id: str) -> bool:
        return self.all_instructors or instructor_id in (self.instructor_ids or [])
