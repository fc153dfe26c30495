import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.period import enum_values


class ComplaintStatus(str, Enum):
    pending = "Pending"
    resolved = "Resolved"
    rejected = "Rejected"


class Complaint(Base):
    __tablename__ = "complaints"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # Plain references: a complaint outlives the sub-assignment it annotates.
    assignment_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    sub_assignment_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    submitted_by: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ComplaintStatus] = mapped_column(
        SAEnum(ComplaintStatus, name="complaint_status", values_callable=enum_values),
        nullable=False,
        default=ComplaintStatus.pending,
    )
    resolve_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
