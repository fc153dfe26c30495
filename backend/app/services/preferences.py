from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import PreferenceConflictError, ResourceNotFoundError
from app.models.course import Course
from app.models.instructor import Instructor
from app.models.preference import Preference
from app.models.preference_form import PreferenceForm, as_utc
from app.models.user import User
from app.services.audit import log_activity
from app.services.policy import Period

logger = logging.getLogger(__name__)


def compact_rankings(entries: Sequence[tuple[str, int]]) -> list[dict]:
    """Validate submitted (course_id, rank) pairs and renumber ranks 1..n.

    Relative order is preserved, so gaps such as 1, 3, 7 become 1, 2, 3.
    """
    if not entries:
        raise PreferenceConflictError("A preference submission needs at least one course")

    problems: list[str] = []
    ranks = [rank for _, rank in entries]
    course_ids = [course_id for course_id, _ in entries]
    if any(rank < 1 for rank in ranks):
        problems.append("ranks must start at 1")
    if len(set(ranks)) != len(ranks):
        problems.append("ranks must be unique")
    if len(set(course_ids)) != len(course_ids):
        problems.append("each course may be ranked only once")
    if problems:
        raise PreferenceConflictError(
            "Invalid preference submission: " + "; ".join(problems),
            details={"problems": problems},
        )

    ordered = sorted(entries, key=lambda item: item[1])
    return [{"course_id": course_id, "rank": index} for index, (course_id, _) in enumerate(ordered, start=1)]


def check_form_rules(form: PreferenceForm, instructor_id: str, rankings: Sequence[dict], now: datetime) -> None:
    """Raise PreferenceConflictError when the form does not accept this submission."""
    details = {"form_id": form.id, "chair": form.chair}
    if not form.is_open(now):
        raise PreferenceConflictError(
            f"The {form.chair} preference form is not accepting submissions",
            details={
                **details,
                "submission_start": as_utc(form.submission_start).isoformat(),
                "submission_end": as_utc(form.submission_end).isoformat(),
            },
        )
    if not form.invites(instructor_id):
        raise PreferenceConflictError(
            f"Instructor {instructor_id} is not invited to the {form.chair} preference form",
            details={**details, "instructor_id": instructor_id},
        )
    if len(rankings) > form.max_preferences:
        raise PreferenceConflictError(
            f"At most {form.max_preferences} courses may be ranked on this form",
            details={**details, "max_preferences": form.max_preferences, "submitted": len(rankings)},
        )
    offered = form.course_ids()
    outside = [item["course_id"] for item in rankings if item["course_id"] not in offered]
    if outside:
        raise PreferenceConflictError(
            "Only courses listed on the preference form may be ranked",
            details={**details, "courses": outside},
        )


def submit_preferences(
    db: Session,
    *,
    form_id: str,
    instructor_id: str,
    entries: Sequence[tuple[str, int]],
    actor: User | None = None,
    now: datetime | None = None,
) -> Preference:
    form = db.get(PreferenceForm, form_id)
    if form is None:
        raise ResourceNotFoundError("PreferenceForm", form_id)
    if db.get(Instructor, instructor_id) is None:
        raise ResourceNotFoundError("Instructor", instructor_id)
    rankings = compact_rankings(entries)
    check_form_rules(form, instructor_id, rankings, now or datetime.now(timezone.utc))

    wanted = {item["course_id"] for item in rankings}
    found = set(db.execute(select(Course.id).where(Course.id.in_(wanted))).scalars())
    missing = sorted(wanted - found)
    if missing:
        raise ResourceNotFoundError("Course", ", ".join(missing))

    period = Period(year=form.year, semester=form.semester, program=form.program)
    preference = db.execute(
        select(Preference).where(Preference.instructor_id == instructor_id, Preference.form_id == form.id)
    ).scalar_one_or_none()
    if preference is None:
        preference = Preference(
            instructor_id=instructor_id,
            form_id=form.id,
            year=period.year,
            semester=period.semester,
            program=period.program,
            rankings=rankings,
        )
        db.add(preference)
        action = "preference.submitted"
    else:
        # Replace the whole list; a resubmission never merges with the old one.
        preference.rankings = rankings
        action = "preference.resubmitted"

    db.flush()
    log_activity(
        db,
        user=actor,
        action=action,
        entity_type="preference",
        entity_id=preference.id,
        details={"instructor_id": instructor_id, "form_id": form.id, **period.as_dict(), "courses": len(rankings)},
    )
    db.commit()
    db.refresh(preference)
    logger.info("Stored %s ranked courses for instructor %s in %s", len(rankings), instructor_id, period.key())
    return preference
