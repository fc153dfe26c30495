from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_roles
from app.models.instructor import Instructor
from app.models.position import Position
from app.models.user import User, UserRole
from app.schemas.position import PositionCreate, PositionOut, PositionUpdate
from app.services.audit import log_activity

router = APIRouter()


@router.get("/", response_model=list[PositionOut])
def list_positions(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> list[PositionOut]:
    return list(db.execute(select(Position).order_by(Position.name)).scalars())


@router.post("/", response_model=PositionOut, status_code=status.HTTP_201_CREATED)
def create_position(
    payload: PositionCreate,
    current_user: User = Depends(require_roles(UserRole.head_of_faculty)),
    db: Session = Depends(get_db),
) -> PositionOut:
    existing = db.execute(select(Position).where(Position.name == payload.name)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Position name already exists")
    position = Position(**payload.model_dump())
    db.add(position)
    db.flush()
    log_activity(db, user=current_user, action="position.created", entity_type="position", entity_id=position.id)
    db.commit()
    db.refresh(position)
    return position


@router.put("/{position_id}", response_model=PositionOut)
def update_position(
    position_id: str,
    payload: PositionUpdate,
    current_user: User = Depends(require_roles(UserRole.head_of_faculty)),
    db: Session = Depends(get_db),
) -> PositionOut:
    position = db.get(Position, position_id)
    if position is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Position not found")

    data = payload.model_dump(exclude_unset=True)
    if "name" in data:
        clash = db.execute(
            select(Position).where(Position.name == data["name"], Position.id != position_id)
        ).scalar_one_or_none()
        if clash:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Position name already exists")
    for key, value in data.items():
        setattr(position, key, value)
    log_activity(
        db,
        user=current_user,
        action="position.updated",
        entity_type="position",
        entity_id=position.id,
        details={"fields": sorted(data)},
    )
    db.commit()
    db.refresh(position)
    return position


@router.delete("/{position_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_position(
    position_id: str,
    current_user: User = Depends(require_roles(UserRole.head_of_faculty)),
    db: Session = Depends(get_db),
) -> None:
    position = db.get(Position, position_id)
    if position is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Position not found")
    in_use = db.execute(select(Instructor.id).where(Instructor.position_id == position_id).limit(1)).first()
    if in_use:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Position is still held by instructors")
    db.delete(position)
    log_activity(db, user=current_user, action="position.deleted", entity_type="position", entity_id=position_id)
    db.commit()
