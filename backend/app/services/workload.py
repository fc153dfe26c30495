from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.exceptions import ResourceNotFoundError
from app.models.assignment import LabDivision, SubAssignment
from app.models.course import Course
from app.models.instructor import Instructor
from app.services.policy import AssignmentPolicy, Period, WorkloadPolicy


def is_lab_divided(lab_division: LabDivision | str | bool | None) -> bool:
    if isinstance(lab_division, bool):
        return lab_division
    if isinstance(lab_division, LabDivision):
        return lab_division == LabDivision.yes
    return (lab_division or "").strip().lower() in {"yes", "y", "true"}


def course_load_hours(
    *,
    lecture_hours: float,
    lab_hours: float,
    tutorial_hours: float,
    lab_division: LabDivision | str | bool | None,
    policy: WorkloadPolicy,
) -> float:
    lab_weight = policy.lab_factor * (policy.lab_division_multiplier if is_lab_divided(lab_division) else 1.0)
    hours = (
        (lecture_hours or 0) * policy.lecture_factor
        + (tutorial_hours or 0) * policy.tutorial_factor
        + (lab_hours or 0) * lab_weight
    )
    return round(hours, policy.round_digits)


def workload_for_course(course: Course, lab_division: LabDivision | str | bool | None, policy: WorkloadPolicy) -> float:
    return course_load_hours(
        lecture_hours=course.lecture_hours,
        lab_hours=course.lab_hours,
        tutorial_hours=course.tutorial_hours,
        lab_division=lab_division,
        policy=policy,
    )


@dataclass(frozen=True)
class CapacitySnapshot:
    instructor_id: str
    period: Period
    base_hours: float
    exemption_hours: float
    committed_hours: float

    @property
    def capacity(self) -> float:
        return self.base_hours - self.exemption_hours

    @property
    def remaining(self) -> float:
        return round(self.capacity - self.committed_hours, 4)

    def as_dict(self) -> dict:
        return {
            "instructor_id": self.instructor_id,
            **self.period.as_dict(),
            "base_hours": self.base_hours,
            "exemption_hours": self.exemption_hours,
            "capacity": self.capacity,
            "committed": round(self.committed_hours, 4),
            "remaining": self.remaining,
        }


class WorkloadCapacityResolver:
    """Read-only view of how many hours an instructor can still take on."""

    def __init__(self, db: Session, policy: AssignmentPolicy) -> None:
        self.db = db
        self.policy = policy

    def committed_hours(self, instructor_id: str, period: Period, *, exclude_sub_id: str | None = None) -> float:
        statement = select(func.coalesce(func.sum(SubAssignment.workload_hours), 0.0)).where(
            SubAssignment.instructor_id == instructor_id,
            SubAssignment.year == period.year,
            SubAssignment.semester == period.semester,
            SubAssignment.program == period.program,
        )
        if exclude_sub_id is not None:
            statement = statement.where(SubAssignment.id != exclude_sub_id)
        return float(self.db.execute(statement).scalar_one())

    def snapshot(self, instructor: Instructor | str, period: Period, *, exclude_sub_id: str | None = None) -> CapacitySnapshot:
        if isinstance(instructor, str):
            record = self.db.get(Instructor, instructor)
            if record is None:
                raise ResourceNotFoundError("Instructor", instructor)
            instructor = record
        exemption = float(instructor.position.exemption_hours) if instructor.position is not None else 0.0
        return CapacitySnapshot(
            instructor_id=instructor.id,
            period=period,
            base_hours=self.policy.base_hours(period.program),
            exemption_hours=exemption,
            committed_hours=self.committed_hours(instructor.id, period, exclude_sub_id=exclude_sub_id),
        )

    def remaining(self, instructor: Instructor | str, period: Period, *, exclude_sub_id: str | None = None) -> float:
        return self.snapshot(instructor, period, exclude_sub_id=exclude_sub_id).remaining
