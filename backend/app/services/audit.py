from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.activity_log import ActivityLog
from app.models.user import User

MAX_ACTIVITY_ROWS = 500


def log_activity(
    db: Session,
    *,
    user: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict | None = None,
) -> ActivityLog:
    """Stage an audit row in the caller's transaction; the caller commits.

    The actor's role is copied onto the row so the trail still reads correctly
    after the account changes role.
    """
    record = ActivityLog(
        user_id=user.id if user is not None else None,
        actor_role=user.role.value if user is not None else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    db.add(record)
    return record


def recent_activity(
    db: Session,
    *,
    entity_type: str | None = None,
    entity_id: str | None = None,
    action_prefix: str | None = None,
    limit: int = MAX_ACTIVITY_ROWS,
) -> list[ActivityLog]:
    statement = select(ActivityLog)
    if entity_type:
        statement = statement.where(ActivityLog.entity_type == entity_type)
    if entity_id:
        statement = statement.where(ActivityLog.entity_id == entity_id)
    if action_prefix:
        # "assignment." matches assignment.created, assignment.updated and so on.
        statement = statement.where(ActivityLog.action.startswith(action_prefix, autoescape=True))
    statement = statement.order_by(ActivityLog.created_at.desc(), ActivityLog.id)
    return list(db.execute(statement.limit(min(max(limit, 1), MAX_ACTIVITY_ROWS))).scalars())
