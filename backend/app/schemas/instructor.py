from pydantic import BaseModel, EmailStr, Field, field_validator

from app.models.period import Program, Semester


class InstructorBase(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    chair: str | None = Field(default=None, max_length=100)
    location: str | None = Field(default=None, max_length=200)
    position_id: str | None = Field(default=None, max_length=36)
    user_id: str | None = Field(default=None, max_length=36)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class InstructorCreate(InstructorBase):
    pass


class InstructorUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    email: EmailStr | None = None
    chair: str | None = Field(default=None, max_length=100)
    location: str | None = Field(default=None, max_length=200)
    position_id: str | None = Field(default=None, max_length=36)
    user_id: str | None = Field(default=None, max_length=36)


class CommitmentOut(BaseModel):
    year: int
    semester: Semester
    program: Program
    hours: float

    model_config = {"from_attributes": True}


class InstructorOut(InstructorBase):
    id: str
    position_name: str | None = None
    exemption_hours: float = 0.0
    # Maintained by the assignment store; never accepted on input.
    commitments: list[CommitmentOut] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class CapacityOut(BaseModel):
    instructor_id: str
    year: int
    semester: Semester
    program: Program
    base_hours: float
    exemption_hours: float
    capacity: float
    committed: float
    remaining: float
