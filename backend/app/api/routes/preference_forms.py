import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_roles
from app.core.exceptions import ResourceNotFoundError
from app.models.course import Course
from app.models.instructor import Instructor
from app.models.period import Program, Semester
from app.models.preference import Preference
from app.models.preference_form import PreferenceForm, as_utc
from app.models.user import User, UserRole
from app.schemas.preference_form import FormCourse, PreferenceFormCreate, PreferenceFormOut, PreferenceFormUpdate
from app.services.audit import log_activity

router = APIRouter()
logger = logging.getLogger(__name__)

FORM_ROLES = (UserRole.head_of_faculty, UserRole.chair_head, UserRole.coc)


def form_out(form: PreferenceForm, now: datetime | None = None) -> PreferenceFormOut:
    return PreferenceFormOut(
        id=form.id,
        chair=form.chair,
        year=form.year,
        semester=form.semester,
        program=form.program,
        maxPreferences=form.max_preferences,
        submissionStart=as_utc(form.submission_start),
        submissionEnd=as_utc(form.submission_end),
        isOpen=form.is_open(now or datetime.now(timezone.utc)),
        allInstructors=form.all_instructors,
        instructors=list(form.instructor_ids or []),
        courses=[
            FormCourse(
                courseId=item["course_id"],
                section=item["section"],
                sections=item["sections"],
                labDivision=item["lab_division"],
            )
            for item in form.courses or []
        ],
        createdAt=form.created_at,
        updatedAt=form.updated_at,
    )


def _stored_courses(db: Session, courses: list[FormCourse]) -> list[dict]:
    wanted = {item.courseId for item in courses}
    found = set(db.execute(select(Course.id).where(Course.id.in_(wanted))).scalars())
    missing = sorted(wanted - found)
    if missing:
        raise ResourceNotFoundError("Course", ", ".join(missing))
    return [
        {
            "course_id": item.courseId,
            "section": item.section,
            "sections": item.sections,
            "lab_division": item.labDivision.value,
        }
        for item in courses
    ]


def _stored_instructors(db: Session, instructor_ids: list[str]) -> list[str]:
    unique = list(dict.fromkeys(instructor_ids))
    found = set(db.execute(select(Instructor.id).where(Instructor.id.in_(unique))).scalars())
    missing = [instructor_id for instructor_id in unique if instructor_id not in found]
    if missing:
        raise ResourceNotFoundError("Instructor", ", ".join(missing))
    return unique


def _check_chair_scope(user: User, chair: str) -> None:
    if user.role == UserRole.chair_head and user.chair != chair:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Chair heads manage only their own chair's forms")


def _get_form(db: Session, form_id: str) -> PreferenceForm:
    form = db.get(PreferenceForm, form_id)
    if form is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Preference form not found")
    return form


@router.post("/", response_model=PreferenceFormOut, status_code=status.HTTP_201_CREATED)
def create_form(
    payload: PreferenceFormCreate,
    current_user: User = Depends(require_roles(*FORM_ROLES)),
    db: Session = Depends(get_db),
) -> PreferenceFormOut:
    _check_chair_scope(current_user, payload.chair)
    existing = db.execute(
        select(PreferenceForm.id).where(
            PreferenceForm.chair == payload.chair,
            PreferenceForm.year == payload.year,
            PreferenceForm.semester == payload.semester,
            PreferenceForm.program == payload.program,
        )
    ).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A preference form already exists for this chair and period",
        )

    form = PreferenceForm(
        chair=payload.chair,
        year=payload.year,
        semester=payload.semester,
        program=payload.program,
        max_preferences=payload.maxPreferences,
        submission_start=payload.submissionStart,
        submission_end=payload.submissionEnd,
        all_instructors=payload.allInstructors,
        instructor_ids=_stored_instructors(db, payload.instructors),
        courses=_stored_courses(db, payload.courses),
    )
    db.add(form)
    db.flush()
    log_activity(
        db,
        user=current_user,
        action="preference_form.created",
        entity_type="preference_form",
        entity_id=form.id,
        details={"chair": form.chair, "year": form.year, "semester": form.semester.value, "courses": len(form.courses)},
    )
    db.commit()
    db.refresh(form)
    logger.info("Opened %s preference form %s for %s %s", form.chair, form.id, form.year, form.semester.value)
    return form_out(form)


@router.get("/", response_model=list[PreferenceFormOut])
def list_forms(
    chair: str | None = Query(default=None),
    year: int | None = Query(default=None),
    semester: Semester | None = Query(default=None),
    program: Program | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[PreferenceFormOut]:
    statement = select(PreferenceForm).order_by(PreferenceForm.year.desc(), PreferenceForm.created_at.desc())
    if chair is not None:
        statement = statement.where(PreferenceForm.chair == chair)
    if year is not None:
        statement = statement.where(PreferenceForm.year == year)
    if semester is not None:
        statement = statement.where(PreferenceForm.semester == semester)
    if program is not None:
        statement = statement.where(PreferenceForm.program == program)
    return [form_out(form) for form in db.execute(statement).scalars()]


@router.get("/active", response_model=list[PreferenceFormOut])
def list_active_forms(
    chair: str | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[PreferenceFormOut]:
    """Forms whose submission window is open now, limited for instructors to forms they were invited to."""
    now = datetime.now(timezone.utc)
    statement = select(PreferenceForm).order_by(PreferenceForm.submission_end)
    if chair is not None:
        statement = statement.where(PreferenceForm.chair == chair)
    forms = [form for form in db.execute(statement).scalars() if form.is_open(now)]
    if current_user.role == UserRole.instructor:
        own = db.execute(select(Instructor.id).where(Instructor.user_id == current_user.id)).scalar_one_or_none()
        forms = [form for form in forms if own is not None and form.invites(own)]
    return [form_out(form, now) for form in forms]


@router.get("/{form_id}", response_model=PreferenceFormOut)
def get_form(
    form_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PreferenceFormOut:
    return form_out(_get_form(db, form_id))


@router.put("/{form_id}", response_model=PreferenceFormOut)
def update_form(
    form_id: str,
    payload: PreferenceFormUpdate,
    current_user: User = Depends(require_roles(*FORM_ROLES)),
    db: Session = Depends(get_db),
) -> PreferenceFormOut:
    form = _get_form(db, form_id)
    _check_chair_scope(current_user, form.chair)

    data = payload.model_dump(exclude_unset=True)
    start = as_utc(data.get("submissionStart", form.submission_start))
    end = as_utc(data.get("submissionEnd", form.submission_end))
    if end <= start:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="submissionEnd must be after submissionStart",
        )
    all_instructors = data.get("allInstructors", form.all_instructors)
    if not all_instructors and not data.get("instructors", form.instructor_ids):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="list the invited instructors or set allInstructors",
        )

    if "maxPreferences" in data:
        form.max_preferences = data["maxPreferences"]
    if "submissionStart" in data:
        form.submission_start = data["submissionStart"]
    if "submissionEnd" in data:
        form.submission_end = data["submissionEnd"]
    if "allInstructors" in data:
        form.all_instructors = data["allInstructors"]
    if "instructors" in data:
        form.instructor_ids = _stored_instructors(db, payload.instructors)
    if "courses" in data:
        form.courses = _stored_courses(db, payload.courses)

    log_activity(
        db,
        user=current_user,
        action="preference_form.updated",
        entity_type="preference_form",
        entity_id=form.id,
        details={"fields": sorted(data)},
    )
    db.commit()
    db.refresh(form)
    return form_out(form)


@router.delete("/{form_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_form(
    form_id: str,
    current_user: User = Depends(require_roles(*FORM_ROLES)),
    db: Session = Depends(get_db),
) -> None:
    form = _get_form(db, form_id)
    _check_chair_scope(current_user, form.chair)
    answered = db.execute(select(Preference.id).where(Preference.form_id == form_id).limit(1)).first()
    if answered:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Preference form has submissions")
    db.delete(form)
    log_activity(db, user=current_user, action="preference_form.deleted", entity_type="preference_form", entity_id=form_id)
    db.commit()
