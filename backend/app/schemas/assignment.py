from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field, field_validator, model_validator

from app.models.assignment import LabDivision
from app.models.period import Program, Semester
from app.schemas.period import PeriodPayload


def _normalize_section(value: str) -> str:
    section = value.strip()
    if not section:
        raise ValueError("section cannot be empty")
    return section


SectionName = Annotated[str, Field(min_length=1, max_length=20), AfterValidator(_normalize_section)]


class ManualAssignmentRequest(PeriodPayload):
    instructorId: str = Field(min_length=1, max_length=36)
    courseId: str = Field(min_length=1, max_length=36)
    section: SectionName
    labDivision: LabDivision = LabDivision.no
    workload: float | None = Field(default=None, ge=0, le=200)
    assignedBy: str = Field(min_length=1, max_length=100)
    assignmentReason: str | None = Field(default=None, max_length=1000)


class BulkManualRow(BaseModel):
    instructorId: str = Field(min_length=1, max_length=36)
    courseId: str = Field(min_length=1, max_length=36)
    section: SectionName
    labDivision: LabDivision = LabDivision.no
    workload: float | None = Field(default=None, ge=0, le=200)
    assignmentReason: str | None = Field(default=None, max_length=1000)


class BulkManualRequest(BaseModel):
    assignments: list[BulkManualRow] = Field(min_length=1, max_length=500)
    year: int = Field(ge=1900, le=3000)
    semester: Semester | None = None
    # Fixed by the route for /common/manual and /extension/manual.
    program: Program | None = None
    assignedBy: str = Field(min_length=1, max_length=100)


class SlotPayload(BaseModel):
    courseId: str = Field(min_length=1, max_length=36)
    section: SectionName
    labDivision: LabDivision = LabDivision.no


class AutoAssignmentRequest(BaseModel):
    year: int = Field(ge=1900, le=3000)
    semester: Semester | None = None
    assignedBy: str = Field(min_length=1, max_length=100)
    instructors: list[str] = Field(min_length=1, max_length=1000)
    courses: list[SlotPayload] = Field(min_length=1, max_length=1000)

    @field_validator("instructors")
    @classmethod
    def validate_instructors(cls, value: list[str]) -> list[str]:
        cleaned = [item.strip() for item in value if item.strip()]
        if not cleaned:
            raise ValueError("At least one instructor id is required")
        return cleaned


class SubAssignmentUpdate(BaseModel):
    instructorId: str | None = Field(default=None, min_length=1, max_length=36)
    courseId: str | None = Field(default=None, min_length=1, max_length=36)
    section: str | None = Field(default=None, min_length=1, max_length=20)
    labDivision: LabDivision | None = None
    workload: float | None = Field(default=None, ge=0, le=200)
    assignmentReason: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def validate_not_empty(self) -> "SubAssignmentUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class SubAssignmentOut(BaseModel):
    id: str
    assignmentId: str
    instructorId: str
    instructorName: str | None = None
    courseId: str
    courseCode: str | None = None
    courseName: str | None = None
    section: str
    labDivision: LabDivision
    workloadHours: float
    preferenceRank: int | None = None
    assignmentReason: str
    year: int
    semester: Semester
    program: Program
    assignedBy: str


class AssignmentOut(BaseModel):
    id: str
    year: int
    semester: Semester
    program: Program
    assignedBy: str
    createdAt: datetime | None = None
    subAssignments: list[SubAssignmentOut]


class ErrorItemOut(BaseModel):
    kind: str
    message: str
    details: dict = Field(default_factory=dict)


class RowResultOut(BaseModel):
    index: int
    status: str
    instructorId: str
    courseId: str
    section: str
    subAssignment: SubAssignmentOut | None = None
    error: ErrorItemOut | None = None


class BulkAssignmentResponse(BaseModel):
    results: list[RowResultOut]
    assigned: int
    failed: int


class UnfilledSlotOut(BaseModel):
    courseId: str
    section: str
    labDivision: LabDivision
    reason: str
    rejections: dict[str, int] = Field(default_factory=dict)


class AutoAssignmentResponse(BaseModel):
    year: int
    semester: Semester
    program: Program
    assignedBy: str
    assigned: list[SubAssignmentOut]
    unfilled: list[UnfilledSlotOut]
    unknownInstructors: list[str] = Field(default_factory=list)


class DeletedSubAssignmentOut(BaseModel):
    id: str
    assignmentId: str
    instructorId: str
    courseId: str
    section: str
    workloadHours: float


class DeleteSubAssignmentResponse(BaseModel):
    deleted: DeletedSubAssignmentOut
    aggregatePruned: bool
