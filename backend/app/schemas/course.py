from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.course import CourseStatus


class CourseBase(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=200)
    department: str | None = Field(default=None, max_length=200)
    category: str | None = Field(default=None, max_length=100)
    chair: str | None = Field(default=None, max_length=100)
    location: str | None = Field(default=None, max_length=200)
    curriculum_year: int = Field(default=1, ge=1, le=7)
    curriculum_semester: int = Field(default=1, ge=1, le=3)
    credit_hour: float = Field(default=3.0, ge=0, le=40)
    lecture_hours: float = Field(default=0.0, ge=0, le=40)
    lab_hours: float = Field(default=0.0, ge=0, le=40)
    tutorial_hours: float = Field(default=0.0, ge=0, le=40)


class CourseCreate(CourseBase):
    @model_validator(mode="after")
    def validate_hour_breakdown(self) -> "CourseCreate":
        if self.lecture_hours + self.lab_hours + self.tutorial_hours <= 0:
            raise ValueError("A course needs at least one lecture, lab or tutorial hour")
        return self


class CourseUpdate(BaseModel):
    # status and assigned_to move only through the lifecycle endpoints.
    code: str | None = Field(default=None, min_length=1, max_length=50)
    name: str | None = Field(default=None, min_length=1, max_length=200)
    department: str | None = Field(default=None, max_length=200)
    category: str | None = Field(default=None, max_length=100)
    chair: str | None = Field(default=None, max_length=100)
    location: str | None = Field(default=None, max_length=200)
    curriculum_year: int | None = Field(default=None, ge=1, le=7)
    curriculum_semester: int | None = Field(default=None, ge=1, le=3)
    credit_hour: float | None = Field(default=None, ge=0, le=40)
    lecture_hours: float | None = Field(default=None, ge=0, le=40)
    lab_hours: float | None = Field(default=None, ge=0, le=40)
    tutorial_hours: float | None = Field(default=None, ge=0, le=40)

    model_config = {"extra": "forbid"}

    @field_validator(
        "code",
        "name",
        "curriculum_year",
        "curriculum_semester",
        "credit_hour",
        "lecture_hours",
        "lab_hours",
        "tutorial_hours",
    )
    @classmethod
    def reject_null(cls, value, info):
        # Omit a field to keep it; only the descriptive fields may be cleared.
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


class CourseOut(CourseBase):
    id: str
    status: CourseStatus
    assigned_to: str | None = None

    model_config = {"from_attributes": True}


class CourseStatusUpdates(BaseModel):
    status: CourseStatus


class CourseBulkUpdate(BaseModel):
    courseIds: list[str] = Field(min_length=1, max_length=500)
    updates: CourseStatusUpdates
    actionBy: str | None = Field(default=None, max_length=100)


class CourseAssignRequest(BaseModel):
    courseIds: list[str] = Field(min_length=1, max_length=500)
    chair: str = Field(min_length=1, max_length=100)


class CourseUnassignRequest(BaseModel):
    courseIds: list[str] = Field(min_length=1, max_length=500)


class TransitionErrorOut(BaseModel):
    kind: str
    message: str


class CourseTransitionItem(BaseModel):
    courseId: str
    status: str
    fromStatus: CourseStatus | None = None
    toStatus: CourseStatus | None = None
    changed: bool = False
    error: TransitionErrorOut | None = None


class CourseTransitionResponse(BaseModel):
    results: list[CourseTransitionItem]
    succeeded: int
    failed: int
