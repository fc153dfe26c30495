from pydantic import BaseModel, Field, model_validator

from app.models.period import PROGRAM_SEMESTERS, Program, Semester


def resolve_semester(program: Program, semester: Semester | None) -> Semester:
    """Fill in the Summer semester and reject program/semester mismatches."""
    if semester is None:
        if program == Program.summer:
            return Semester.summer
        raise ValueError(f"semester is required for the {program.value} program")
    allowed = PROGRAM_SEMESTERS[program]
    if semester not in allowed:
        choices = ", ".join(sorted(item.value for item in allowed))
        raise ValueError(f"semester {semester.value} does not belong to the {program.value} program (use {choices})")
    return semester


class PeriodPayload(BaseModel):
    year: int = Field(ge=1900, le=3000)
    semester: Semester | None = None
    program: Program

    @model_validator(mode="after")
    def validate_period(self) -> "PeriodPayload":
        self.semester = resolve_semester(self.program, self.semester)
        return self
