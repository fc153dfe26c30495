import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.period import Program, Semester, enum_values


class Preference(Base):
    __tablename__ = "preferences"
    __table_args__ = (
        UniqueConstraint("instructor_id", "form_id", name="uq_preference_instructor_form"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    instructor_id: Mapped[str] = mapped_column(ForeignKey("instructors.id", ondelete="CASCADE"), nullable=False, index=True)
    form_id: Mapped[str] = mapped_column(ForeignKey("preference_forms.id", ondelete="CASCADE"), nullable=False, index=True)
    # Copied from the form so that the matcher can look submissions up by period.
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    semester: Mapped[Semester] = mapped_column(SAEnum(Semester, name="semester", values_callable=enum_values), nullable=False)
    program: Mapped[Program] = mapped_column(SAEnum(Program, name="program", values_callable=enum_values), nullable=False)
    # [{"course_id": str, "rank": int}] ordered by rank, ranks compacted to 1..n.
    rankings: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
