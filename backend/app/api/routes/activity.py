from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_roles
from app.models.user import User, UserRole
from app.schemas.activity import ActivityLogOut
from app.services.audit import MAX_ACTIVITY_ROWS, recent_activity

router = APIRouter()


@router.get("/activity/logs", response_model=list[ActivityLogOut])
def list_activity_logs(
    entity_type: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    action: str | None = Query(default=None, description="Action name or prefix such as 'assignment.'"),
    limit: int = Query(default=MAX_ACTIVITY_ROWS, ge=1, le=MAX_ACTIVITY_ROWS),
    current_user: User = Depends(require_roles(UserRole.head_of_faculty, UserRole.chair_head, UserRole.coc)),
    db: Session = Depends(get_db),
) -> list[ActivityLogOut]:
    return recent_activity(db, entity_type=entity_type, entity_id=entity_id, action_prefix=action, limit=limit)
