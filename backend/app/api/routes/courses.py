import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_roles
from app.models.assignment import SubAssignment
from app.models.course import Course, CourseStatus
from app.models.user import User, UserRole
from app.schemas.course import (
    CourseAssignRequest,
    CourseBulkUpdate,
    CourseCreate,
    CourseOut,
    CourseTransitionItem,
    CourseTransitionResponse,
    CourseUnassignRequest,
    CourseUpdate,
    TransitionErrorOut,
)
from app.services.audit import log_activity
from app.services.course_lifecycle import CourseLifecycle, TransitionResult

router = APIRouter()
logger = logging.getLogger(__name__)

LIFECYCLE_ROLES = (UserRole.head_of_faculty, UserRole.chair_head, UserRole.coc)
HOUR_FIELDS = ("lecture_hours", "lab_hours", "tutorial_hours")


def is_staffed(db: Session, course_id: str) -> bool:
    return db.execute(select(SubAssignment.id).where(SubAssignment.course_id == course_id).limit(1)).first() is not None


def transition_response(results: list[TransitionResult]) -> CourseTransitionResponse:
    items: list[CourseTransitionItem] = []
    for result in results:
        if result.error is not None:
            items.append(
                CourseTransitionItem(
                    courseId=result.course_id,
                    status="failed",
                    fromStatus=result.from_status,
                    toStatus=result.to_status,
                    error=TransitionErrorOut(kind=result.error.kind, message=result.error.message),
                )
            )
        else:
            items.append(
                CourseTransitionItem(
                    courseId=result.course_id,
                    status="transitioned" if result.changed else "unchanged",
                    fromStatus=result.from_status,
                    toStatus=result.to_status,
                    changed=result.changed,
                )
            )
    failed = sum(1 for item in items if item.error is not None)
    return CourseTransitionResponse(results=items, succeeded=len(items) - failed, failed=failed)


@router.get("/", response_model=list[CourseOut])
def list_courses(
    status_filter: CourseStatus | None = Query(default=None, alias="status"),
    chair: str | None = Query(default=None),
    assigned_to: str | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[CourseOut]:
    statement = select(Course).order_by(Course.code)
    if status_filter is not None:
        statement = statement.where(Course.status == status_filter)
    if chair:
        statement = statement.where(Course.chair == chair)
    if assigned_to:
        statement = statement.where(Course.assigned_to == assigned_to)
    return list(db.execute(statement).scalars())


@router.get("/{course_id}", response_model=CourseOut)
def get_course(course_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> CourseOut:
    course = db.get(Course, course_id)
    if course is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")
    return course


@router.post("/", response_model=CourseOut, status_code=status.HTTP_201_CREATED)
def create_course(
    payload: CourseCreate,
    current_user: User = Depends(require_roles(UserRole.head_of_faculty)),
    db: Session = Depends(get_db),
) -> CourseOut:
    existing = db.execute(select(Course).where(Course.code == payload.code)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Course code already exists")
    course = Course(**payload.model_dump(), status=CourseStatus.draft)
    db.add(course)
    db.flush()
    log_activity(db, user=current_user, action="course.created", entity_type="course", entity_id=course.id)
    db.commit()
    db.refresh(course)
    return course


@router.put("/{course_id}", response_model=CourseOut)
def update_course(
    course_id: str,
    payload: CourseUpdate,
    current_user: User = Depends(require_roles(*LIFECYCLE_ROLES)),
    db: Session = Depends(get_db),
) -> CourseOut:
    course = db.get(Course, course_id)
    if course is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")

    data = payload.model_dump(exclude_unset=True)
    if "code" in data:
        existing = db.execute(select(Course).where(Course.code == data["code"], Course.id != course_id)).scalar_one_or_none()
        if existing:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Course code already exists")

    changed_hours = sorted(key for key in HOUR_FIELDS if key in data and data[key] != getattr(course, key))
    if changed_hours and is_staffed(db, course_id):
        # Recorded workloads were computed from the current hours.
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Course has instructor assignments; cannot change {', '.join(changed_hours)}",
        )

    hours = [data.get(key, getattr(course, key)) for key in HOUR_FIELDS]
    if sum(hours) <= 0:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="A course needs at least one lecture, lab or tutorial hour",
        )

    for key, value in data.items():
        setattr(course, key, value)
    log_activity(
        db,
        user=current_user,
        action="course.updated",
        entity_type="course",
        entity_id=course.id,
        details={"fields": sorted(data)},
    )
    db.commit()
    db.refresh(course)
    return course


@router.delete("/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_course(
    course_id: str,
    current_user: User = Depends(require_roles(UserRole.head_of_faculty)),
    db: Session = Depends(get_db),
) -> None:
    course = db.get(Course, course_id)
    if course is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")
    if is_staffed(db, course_id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Course has instructor assignments")
    db.delete(course)
    log_activity(db, user=current_user, action="course.deleted", entity_type="course", entity_id=course_id)
    db.commit()


@router.post("/bulk-update", response_model=CourseTransitionResponse)
def bulk_update_courses(
    payload: CourseBulkUpdate,
    current_user: User = Depends(require_roles(*LIFECYCLE_ROLES)),
    db: Session = Depends(get_db),
) -> CourseTransitionResponse:
    if payload.actionBy:
        logger.info("Bulk course update to %s requested for %s", payload.updates.status.value, payload.actionBy)
    results = CourseLifecycle(db).bulk_transition(payload.courseIds, payload.updates.status, actor=current_user)
    return transition_response(results)


@router.post("/assign", response_model=CourseTransitionResponse)
def assign_courses_to_chair(
    payload: CourseAssignRequest,
    current_user: User = Depends(require_roles(UserRole.head_of_faculty)),
    db: Session = Depends(get_db),
) -> CourseTransitionResponse:
    results = CourseLifecycle(db).bulk_transition(
        payload.courseIds,
        CourseStatus.assigned,
        actor=current_user,
        assigned_to=payload.chair.strip(),
    )
    return transition_response(results)


@router.post("/unassign", response_model=CourseTransitionResponse)
def unassign_courses(
    payload: CourseUnassignRequest,
    current_user: User = Depends(require_roles(UserRole.head_of_faculty)),
    db: Session = Depends(get_db),
) -> CourseTransitionResponse:
    results = CourseLifecycle(db).bulk_transition(payload.courseIds, CourseStatus.draft, actor=current_user)
    return transition_response(results)
