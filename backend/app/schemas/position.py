from pydantic import BaseModel, Field


class PositionBase(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    exemption_hours: float = Field(default=0.0, ge=0, le=200)


class PositionCreate(PositionBase):
    pass


class PositionUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    exemption_hours: float | None = Field(default=None, ge=0, le=200)


class PositionOut(PositionBase):
    id: str

    model_config = {"from_attributes": True}
