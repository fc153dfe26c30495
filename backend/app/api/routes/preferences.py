from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_roles
from app.models.instructor import Instructor
from app.models.period import Program, Semester
from app.models.preference import Preference
from app.models.user import User, UserRole
from app.schemas.period import resolve_semester
from app.schemas.preference import PreferenceOut, PreferenceSubmit, RankedCourseOut
from app.services.audit import log_activity
from app.services.preferences import submit_preferences

router = APIRouter()


def preference_out(preference: Preference) -> PreferenceOut:
    return PreferenceOut(
        id=preference.id,
        formId=preference.form_id,
        instructorId=preference.instructor_id,
        year=preference.year,
        semester=preference.semester,
        program=preference.program,
        preferences=[RankedCourseOut(courseId=item["course_id"], rank=item["rank"]) for item in preference.rankings],
        submittedAt=preference.submitted_at,
        updatedAt=preference.updated_at,
    )


def _own_instructor_id(db: Session, user: User) -> str | None:
    return db.execute(select(Instructor.id).where(Instructor.user_id == user.id)).scalar_one_or_none()


@router.put("/", response_model=PreferenceOut)
def submit(
    payload: PreferenceSubmit,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PreferenceOut:
    if current_user.role == UserRole.instructor and _own_instructor_id(db, current_user) != payload.instructorId:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Instructors can only submit their own preferences")

    preference = submit_preferences(
        db,
        form_id=payload.formId,
        instructor_id=payload.instructorId,
        entries=[(item.courseId, item.rank) for item in payload.preferences],
        actor=current_user,
    )
    return preference_out(preference)


@router.get("/", response_model=list[PreferenceOut])
def list_preferences(
    year: int | None = Query(default=None),
    semester: Semester | None = Query(default=None),
    program: Program | None = Query(default=None),
    instructor_id: str | None = Query(default=None, alias="instructorId"),
    form_id: str | None = Query(default=None, alias="formId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[PreferenceOut]:
    if program is not None and semester is not None:
        try:
            resolve_semester(program, semester)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    statement = select(Preference).order_by(Preference.year.desc(), Preference.submitted_at)
    if current_user.role == UserRole.instructor:
        instructor_id = _own_instructor_id(db, current_user)
        if instructor_id is None:
            return []
    if instructor_id is not None:
        statement = statement.where(Preference.instructor_id == instructor_id)
    if form_id is not None:
        statement = statement.where(Preference.form_id == form_id)
    if year is not None:
        statement = statement.where(Preference.year == year)
    if semester is not None:
        statement = statement.where(Preference.semester == semester)
    if program is not None:
        statement = statement.where(Preference.program == program)
    return [preference_out(item) for item in db.execute(statement).scalars()]


@router.delete("/{preference_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_preference(
    preference_id: str,
    current_user: User = Depends(require_roles(UserRole.chair_head, UserRole.coc)),
    db: Session = Depends(get_db),
) -> None:
    preference = db.get(Preference, preference_id)
    if preference is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Preference not found")
    log_activity(
        db,
        user=current_user,
        action="preference.deleted",
        entity_type="preference",
        entity_id=preference_id,
        details={"instructor_id": preference.instructor_id},
    )
    db.delete(preference)
    db.commit()
