from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from app.models.complaint import ComplaintStatus


class ComplaintCreate(BaseModel):
    assignmentId: str = Field(min_length=1, max_length=36)
    subAssignmentId: str = Field(min_length=1, max_length=36)
    reason: str = Field(min_length=1, max_length=4000)

    @field_validator("reason")
    @classmethod
    def normalize_reason(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("reason cannot be empty")
        return trimmed


class ComplaintResolve(BaseModel):
    status: Literal["Resolved", "Rejected"]
    resolveNote: str | None = Field(default=None, max_length=4000)


class ComplaintOut(BaseModel):
    id: str
    assignmentId: str
    subAssignmentId: str
    submittedBy: str
    reason: str
    status: ComplaintStatus
    resolveNote: str | None = None
    resolvedBy: str | None = None
    resolvedAt: datetime | None = None
    submittedAt: datetime | None = None
