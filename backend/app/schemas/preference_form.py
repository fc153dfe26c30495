from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.assignment import LabDivision
from app.models.period import Program, Semester
from app.models.preference_form import as_utc
from app.schemas.assignment import SectionName
from app.schemas.period import PeriodPayload


class FormCourse(BaseModel):
    courseId: str = Field(min_length=1, max_length=36)
    section: SectionName = "A"
    sections: int = Field(default=1, ge=1, le=20)
    labDivision: LabDivision = LabDivision.no


def _check_courses(courses: list[FormCourse]) -> list[FormCourse]:
    ids = [item.courseId for item in courses]
    if len(set(ids)) != len(ids):
        raise ValueError("each course may be listed only once")
    return courses


class PreferenceFormCreate(PeriodPayload):
    chair: str = Field(min_length=1, max_length=100)
    maxPreferences: int = Field(default=5, ge=1, le=200)
    submissionStart: datetime
    submissionEnd: datetime
    courses: list[FormCourse] = Field(min_length=1, max_length=500)
    instructors: list[str] = Field(default_factory=list, max_length=1000)
    allInstructors: bool = False

    @field_validator("submissionStart", "submissionEnd")
    @classmethod
    def normalize_timezone(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("courses")
    @classmethod
    def validate_courses(cls, value: list[FormCourse]) -> list[FormCourse]:
        return _check_courses(value)

    @model_validator(mode="after")
    def validate_form(self) -> "PreferenceFormCreate":
        if self.submissionEnd <= self.submissionStart:
            raise ValueError("submissionEnd must be after submissionStart")
        if not self.allInstructors and not self.instructors:
            raise ValueError("list the invited instructors or set allInstructors")
        return self


class PreferenceFormUpdate(BaseModel):
    # Chair and period identify the form and cannot change.
    maxPreferences: int | None = Field(default=None, ge=1, le=200)
    submissionStart: datetime | None = None
    submissionEnd: datetime | None = None
    courses: list[FormCourse] | None = Field(default=None, min_length=1, max_length=500)
    instructors: list[str] | None = Field(default=None, max_length=1000)
    allInstructors: bool | None = None

    model_config = {"extra": "forbid"}

    @field_validator("maxPreferences", "submissionStart", "submissionEnd", "courses", "instructors", "allInstructors")
    @classmethod
    def reject_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        if isinstance(value, datetime):
            return as_utc(value)
        if info.field_name == "courses":
            return _check_courses(value)
        return value


class PreferenceFormOut(BaseModel):
    id: str
    chair: str
    year: int
    semester: Semester
    program: Program
    maxPreferences: int
    submissionStart: datetime
    submissionEnd: datetime
    isOpen: bool
    allInstructors: bool
    instructors: list[str]
    courses: list[FormCourse]
    createdAt: datetime | None = None
    updatedAt: datetime | None = None
