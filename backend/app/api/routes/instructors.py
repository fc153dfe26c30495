from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_assignment_policy, get_current_user, get_db, require_roles
from app.models.instructor import Instructor
from app.models.period import Program, Semester
from app.models.position import Position
from app.models.user import User, UserRole
from app.schemas.instructor import CapacityOut, CommitmentOut, InstructorCreate, InstructorOut, InstructorUpdate
from app.schemas.period import resolve_semester
from app.services.audit import log_activity
from app.services.policy import AssignmentPolicy, Period
from app.services.workload import WorkloadCapacityResolver

router = APIRouter()

STAFF_EDITORS = (UserRole.head_of_faculty, UserRole.chair_head, UserRole.coc)


def instructor_out(instructor: Instructor) -> InstructorOut:
    position = instructor.position
    return InstructorOut(
        id=instructor.id,
        name=instructor.name,
        email=instructor.email,
        chair=instructor.chair,
        location=instructor.location,
        position_id=instructor.position_id,
        user_id=instructor.user_id,
        position_name=position.name if position is not None else None,
        exemption_hours=position.exemption_hours if position is not None else 0.0,
        commitments=[CommitmentOut.model_validate(item) for item in instructor.commitments],
    )


def _ensure_position(db: Session, position_id: str | None) -> None:
    if position_id is not None and db.get(Position, position_id) is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown position_id")


def _email_taken(db: Session, email: str, exclude_id: str | None = None) -> bool:
    statement = select(Instructor.id).where(Instructor.email == email)
    if exclude_id is not None:
        statement = statement.where(Instructor.id != exclude_id)
    return db.execute(statement.limit(1)).first() is not None


@router.get("/", response_model=list[InstructorOut])
def list_instructors(
    chair: str | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[InstructorOut]:
    statement = select(Instructor).order_by(Instructor.name)
    if chair:
        statement = statement.where(Instructor.chair == chair)
    return [instructor_out(item) for item in db.execute(statement).unique().scalars()]


@router.get("/{instructor_id}", response_model=InstructorOut)
def get_instructor(
    instructor_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> InstructorOut:
    instructor = db.get(Instructor, instructor_id)
    if instructor is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Instructor not found")
    return instructor_out(instructor)


@router.post("/", response_model=InstructorOut, status_code=status.HTTP_201_CREATED)
def create_instructor(
    payload: InstructorCreate,
    current_user: User = Depends(require_roles(*STAFF_EDITORS)),
    db: Session = Depends(get_db),
) -> InstructorOut:
    if _email_taken(db, payload.email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Instructor email already exists")
    _ensure_position(db, payload.position_id)

    instructor = Instructor(**payload.model_dump())
    db.add(instructor)
    db.flush()
    log_activity(db, user=current_user, action="instructor.created", entity_type="instructor", entity_id=instructor.id)
    db.commit()
    db.refresh(instructor)
    return instructor_out(instructor)


@router.put("/{instructor_id}", response_model=InstructorOut)
def update_instructor(
    instructor_id: str,
    payload: InstructorUpdate,
    current_user: User = Depends(require_roles(*STAFF_EDITORS)),
    db: Session = Depends(get_db),
) -> InstructorOut:
    instructor = db.get(Instructor, instructor_id)
    if instructor is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Instructor not found")

    data = payload.model_dump(exclude_unset=True)
    if "email" in data:
        data["email"] = data["email"].strip().lower()
        if _email_taken(db, data["email"], exclude_id=instructor_id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Instructor email already exists")
    if "position_id" in data:
        _ensure_position(db, data["position_id"])

    for key, value in data.items():
        setattr(instructor, key, value)
    log_activity(
        db,
        user=current_user,
        action="instructor.updated",
        entity_type="instructor",
        entity_id=instructor.id,
        details={"fields": sorted(data)},
    )
    db.commit()
    db.refresh(instructor)
    return instructor_out(instructor)


@router.get("/{instructor_id}/capacity", response_model=CapacityOut)
def get_instructor_capacity(
    instructor_id: str,
    year: int = Query(ge=1900, le=3000),
    program: Program = Query(),
    semester: Semester | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    policy: AssignmentPolicy = Depends(get_assignment_policy),
    db: Session = Depends(get_db),
) -> CapacityOut:
    try:
        semester = resolve_semester(program, semester)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    snapshot = WorkloadCapacityResolver(db, policy).snapshot(
        instructor_id, Period(year=year, semester=semester, program=program)
    )
    return CapacityOut(**snapshot.as_dict())
