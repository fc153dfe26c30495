from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.exceptions import AppError, InvalidStatusTransitionError, ResourceNotFoundError
from app.models.course import Course, CourseStatus
from app.models.user import User, UserRole
from app.services.audit import log_activity

logger = logging.getLogger(__name__)

_CHAIR_TRANSITIONS: dict[CourseStatus, frozenset[CourseStatus]] = {
    CourseStatus.assigned: frozenset({CourseStatus.active}),
    CourseStatus.active: frozenset({CourseStatus.assigned, CourseStatus.completed}),
}

# role -> current status -> statuses that role may move a course to
TRANSITIONS: dict[UserRole, dict[CourseStatus, frozenset[CourseStatus]]] = {
    UserRole.head_of_faculty: {
        CourseStatus.draft: frozenset({CourseStatus.assigned}),
        CourseStatus.assigned: frozenset({CourseStatus.draft, CourseStatus.archived}),
        CourseStatus.active: frozenset(
            {CourseStatus.assigned, CourseStatus.archived, CourseStatus.draft, CourseStatus.completed}
        ),
        CourseStatus.completed: frozenset({CourseStatus.archived}),
        CourseStatus.archived: frozenset({CourseStatus.draft}),
    },
    UserRole.chair_head: _CHAIR_TRANSITIONS,
    UserRole.coc: _CHAIR_TRANSITIONS,
    UserRole.instructor: {},
}

CLEARS_ASSIGNMENT = frozenset({CourseStatus.archived, CourseStatus.draft})


def allowed_targets(role: UserRole, current: CourseStatus) -> frozenset[CourseStatus]:
    return TRANSITIONS.get(role, {}).get(current, frozenset())


def can_transition(role: UserRole, current: CourseStatus, target: CourseStatus) -> bool:
    return target == current or target in allowed_targets(role, current)


@dataclass
class TransitionResult:
    course_id: str
    from_status: CourseStatus | None = None
    to_status: CourseStatus | None = None
    changed: bool = False
    error: AppError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CourseLifecycle:
    def __init__(self, db: Session) -> None:
        self.db = db

    def transition(
        self,
        course_id: str,
        target: CourseStatus,
        *,
        actor: User,
        assigned_to: str | None = None,
    ) -> TransitionResult:
        """Move one course to `target` and commit.

        The write is conditioned on the status that was checked, so a
        concurrent transition of the same course turns into an
        InvalidStatusTransition instead of silently overwriting it.
        """
        course = self.db.get(Course, course_id)
        if course is None:
            raise ResourceNotFoundError("Course", course_id)
        self.db.refresh(course)
        current = course.status

        if target == current and (assigned_to is None or assigned_to == course.assigned_to):
            return TransitionResult(course_id=course_id, from_status=current, to_status=target, changed=False)

        if target != current and target not in allowed_targets(actor.role, current):
            raise InvalidStatusTransitionError(
                f"Role {actor.role.value} cannot move course {course.code} from {current.value} to {target.value}",
                details={
                    "course_id": course_id,
                    "from": current.value,
                    "to": target.value,
                    "allowed": sorted(status.value for status in allowed_targets(actor.role, current)),
                },
            )

        values: dict = {"status": target}
        if target in CLEARS_ASSIGNMENT:
            values["assigned_to"] = None
        elif assigned_to is not None:
            values["assigned_to"] = assigned_to

        result = self.db.execute(
            update(Course)
            .where(Course.id == course_id, Course.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise InvalidStatusTransitionError(
                f"Course {course.code} changed status while the transition was being applied",
                details={"course_id": course_id, "from": current.value, "to": target.value},
            )
        log_activity(
            self.db,
            user=actor,
            action="course.transition",
            entity_type="course",
            entity_id=course_id,
            details={"from": current.value, "to": target.value, "assigned_to": values.get("assigned_to")},
        )
        self.db.commit()
        self.db.expire(course)
        logger.info("Course %s moved from %s to %s by %s", course.code, current.value, target.value, actor.email)
        return TransitionResult(course_id=course_id, from_status=current, to_status=target, changed=True)

    def bulk_transition(
        self,
        course_ids: Sequence[str],
        target: CourseStatus,
        *,
        actor: User,
        assigned_to: str | None = None,
    ) -> list[TransitionResult]:
        """Each course commits or fails independently of the others."""
        results: list[TransitionResult] = []
        for course_id in dict.fromkeys(course_ids):
            try:
                results.append(self.transition(course_id, target, actor=actor, assigned_to=assigned_to))
            except (InvalidStatusTransitionError, ResourceNotFoundError) as exc:
                results.append(TransitionResult(course_id=course_id, to_status=target, error=exc))
        return results
