from datetime import datetime

from pydantic import BaseModel, Field

from app.models.period import Program, Semester


class PreferenceEntry(BaseModel):
    courseId: str = Field(min_length=1, max_length=36)
    # Range and uniqueness are checked by the service so they surface as PreferenceConflict.
    rank: int


class PreferenceSubmit(BaseModel):
    formId: str = Field(min_length=1, max_length=36)
    instructorId: str = Field(min_length=1, max_length=36)
    preferences: list[PreferenceEntry] = Field(max_length=200)


class RankedCourseOut(BaseModel):
    courseId: str
    rank: int


class PreferenceOut(BaseModel):
    id: str
    formId: str
    instructorId: str
    year: int
    semester: Semester
    program: Program
    preferences: list[RankedCourseOut]
    submittedAt: datetime | None = None
    updatedAt: datetime | None = None
