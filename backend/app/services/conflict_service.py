from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import (
    CapacityExceededError,
    CourseNotAssignableError,
    DuplicateAssignmentError,
    ResourceNotFoundError,
)
from app.models.assignment import LabDivision, SubAssignment
from app.models.course import Course, CourseStatus
from app.models.instructor import Instructor
from app.services.policy import AssignmentPolicy, Period
from app.services.workload import WorkloadCapacityResolver, workload_for_course


# Float sums of fractional hours should not fail a check by rounding noise.
CAPACITY_EPSILON = 1e-6


@dataclass(frozen=True)
class Candidate:
    instructor_id: str
    course_id: str
    section: str
    period: Period
    lab_division: LabDivision = LabDivision.no
    workload_override: float | None = None


@dataclass(frozen=True)
class AcceptedCandidate:
    candidate: Candidate
    instructor: Instructor
    course: Course
    workload_hours: float
    remaining_before: float


class ConflictValidator:
    """Gatekeeper run against the current committed state before every write."""

    def __init__(
        self,
        db: Session,
        policy: AssignmentPolicy,
        resolver: WorkloadCapacityResolver | None = None,
    ) -> None:
        self.db = db
        self.policy = policy
        self.resolver = resolver or WorkloadCapacityResolver(db, policy)

    def validate(
        self,
        candidate: Candidate,
        *,
        exclude_sub_id: str | None = None,
        require_assignable: bool = True,
    ) -> AcceptedCandidate:
        instructor = self.db.get(Instructor, candidate.instructor_id)
        if instructor is None:
            raise ResourceNotFoundError("Instructor", candidate.instructor_id)
        course = self.db.get(Course, candidate.course_id)
        if course is None:
            raise ResourceNotFoundError("Course", candidate.course_id)

        if require_assignable and course.status != CourseStatus.active:
            raise CourseNotAssignableError(
                f"Course {course.code} is {course.status.value}; only active courses accept assignments",
                details={"course_id": course.id, "status": course.status.value},
            )

        if self.is_duplicate(candidate, exclude_sub_id=exclude_sub_id):
            raise DuplicateAssignmentError(
                f"{instructor.name} is already assigned to {course.code} section {candidate.section} in this period",
                details={
                    "instructor_id": instructor.id,
                    "course_id": course.id,
                    "section": candidate.section,
                    **candidate.period.as_dict(),
                },
            )

        if candidate.workload_override is not None:
            workload = round(candidate.workload_override, self.policy.workload.round_digits)
        else:
            workload = workload_for_course(course, candidate.lab_division, self.policy.workload)

        remaining = self.resolver.remaining(instructor, candidate.period, exclude_sub_id=exclude_sub_id)
        # A full instructor takes nothing more, not even a zero-hour override.
        if remaining <= CAPACITY_EPSILON or remaining + CAPACITY_EPSILON < workload:
            raise CapacityExceededError(
                f"{instructor.name} has {remaining:g}h remaining; {course.code} needs {workload:g}h",
                details={
                    "instructor_id": instructor.id,
                    "course_id": course.id,
                    "remaining": remaining,
                    "required": workload,
                },
            )

        return AcceptedCandidate(
            candidate=candidate,
            instructor=instructor,
            course=course,
            workload_hours=workload,
            remaining_before=remaining,
        )

    def is_duplicate(self, candidate: Candidate, *, exclude_sub_id: str | None = None) -> bool:
        statement = select(SubAssignment.id).where(
            SubAssignment.year == candidate.period.year,
            SubAssignment.semester == candidate.period.semester,
            SubAssignment.program == candidate.period.program,
            SubAssignment.instructor_id == candidate.instructor_id,
            SubAssignment.course_id == candidate.course_id,
            SubAssignment.section == candidate.section,
        )
        if exclude_sub_id is not None:
            statement = statement.where(SubAssignment.id != exclude_sub_id)
        return self.db.execute(statement.limit(1)).first() is not None

    def slot_filled(self, course_id: str, section: str, period: Period) -> bool:
        statement = select(SubAssignment.id).where(
            SubAssignment.year == period.year,
            SubAssignment.semester == period.semester,
            SubAssignment.program == period.program,
            SubAssignment.course_id == course_id,
            SubAssignment.section == section,
        )
        return self.db.execute(statement.limit(1)).first() is not None
