from datetime import datetime

from pydantic import BaseModel, Field


class ActivityLogOut(BaseModel):
    id: str
    user_id: str | None = None
    # Role at the time of the action, not the account's current role.
    actor_role: str | None = None
    action: str
    entity_type: str | None = None
    entity_id: str | None = None
    details: dict = Field(default_factory=dict)
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
