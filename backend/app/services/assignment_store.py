from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, InvalidRequestError
from sqlalchemy.orm import Session, selectinload

from app.core.exceptions import (
    AssignmentRuleError,
    DuplicateAssignmentError,
    ResourceNotFoundError,
    TransientConflictError,
)
from app.models.assignment import Assignment, LabDivision, SubAssignment
from app.models.instructor import InstructorCommitment
from app.models.period import Program, Semester
from app.models.user import User
from app.services.audit import log_activity
from app.services.conflict_service import Candidate, ConflictValidator
from app.services.locking import KeyedLockRegistry, get_lock_registry, instructor_key, slot_key
from app.services.policy import AssignmentPolicy, Period

logger = logging.getLogger(__name__)

ZERO_HOURS = 1e-6


class StaleCommitmentError(Exception):
    """The commitment row changed between read and conditional write."""


@dataclass(frozen=True)
class SubAssignmentChanges:
    instructor_id: str | None = None
    course_id: str | None = None
    section: str | None = None
    lab_division: LabDivision | None = None
    workload: float | None = None
    assignment_reason: str | None = None


def period_of(record: Assignment | SubAssignment) -> Period:
    return Period(year=record.year, semester=record.semester, program=record.program)


class AssignmentStore:
    """Persistence for assignment aggregates and their sub-assignments.

    Every write validates against the latest committed state while holding the
    per-instructor and per-slot locks, and commits on its own.
    """

    def __init__(
        self,
        db: Session,
        policy: AssignmentPolicy,
        *,
        validator: ConflictValidator | None = None,
        locks: KeyedLockRegistry | None = None,
    ) -> None:
        self.db = db
        self.policy = policy
        self.validator = validator or ConflictValidator(db, policy)
        self.locks = locks or get_lock_registry()

    # -- writes ---------------------------------------------------------------

    def add_sub_assignment(
        self,
        candidate: Candidate,
        *,
        assigned_by: str,
        actor: User | None = None,
        preference_rank: int | None = None,
        reason: str | None = None,
        require_open_slot: bool = False,
    ) -> SubAssignment:
        period = candidate.period
        keys = (
            instructor_key(candidate.instructor_id, period),
            slot_key(candidate.course_id, candidate.section, period),
        )
        for attempt in range(1, self.policy.commit_retries + 1):
            with self.locks.hold(*keys):
                try:
                    if require_open_slot and self.validator.slot_filled(candidate.course_id, candidate.section, period):
                        raise DuplicateAssignmentError(
                            f"Section {candidate.section} of course {candidate.course_id} is already staffed",
                            details={"course_id": candidate.course_id, "section": candidate.section, "slot_filled": True},
                        )
                    accepted = self.validator.validate(candidate)
                    aggregate = self._get_or_create_aggregate(period, assigned_by)
                    sub = SubAssignment(
                        assignment_id=aggregate.id,
                        year=period.year,
                        semester=period.semester,
                        program=period.program,
                        assigned_by=aggregate.assigned_by,
                        instructor_id=candidate.instructor_id,
                        course_id=candidate.course_id,
                        section=candidate.section,
                        lab_division=candidate.lab_division,
                        workload_hours=accepted.workload_hours,
                        preference_rank=preference_rank,
                        assignment_reason=reason,
                        position=self._next_position(aggregate.id),
                    )
                    self.db.add(sub)
                    self.db.flush()
                    self._apply_commitment(candidate.instructor_id, period, accepted.workload_hours)
                    log_activity(
                        self.db,
                        user=actor,
                        action="assignment.created",
                        entity_type="sub_assignment",
                        entity_id=sub.id,
                        details={
                            "assignment_id": aggregate.id,
                            "instructor_id": sub.instructor_id,
                            "course_id": sub.course_id,
                            "section": sub.section,
                            "workload_hours": sub.workload_hours,
                        },
                    )
                    self.db.commit()
                except (AssignmentRuleError, ResourceNotFoundError):
                    self.db.rollback()
                    raise
                except (StaleCommitmentError, IntegrityError) as exc:
                    self.db.rollback()
                    logger.warning(
                        "Concurrent write on %s (attempt %s/%s): %s",
                        ", ".join(keys),
                        attempt,
                        self.policy.commit_retries,
                        type(exc).__name__,
                    )
                    continue
            self.db.refresh(sub)
            logger.info(
                "Assigned instructor %s to course %s section %s (%sh) for %s",
                sub.instructor_id,
                sub.course_id,
                sub.section,
                sub.workload_hours,
                period.key(),
            )
            return sub
        raise TransientConflictError(
            "Could not commit the assignment because of concurrent updates; retry the request",
            details={"keys": list(keys)},
        )

    def edit_sub_assignment(
        self,
        parent_id: str,
        sub_id: str,
        changes: SubAssignmentChanges,
        *,
        actor: User | None = None,
    ) -> SubAssignment:
        for attempt in range(1, self.policy.commit_retries + 1):
            sub = self.get_sub_assignment(parent_id, sub_id)
            period = period_of(sub)
            new_instructor_id = changes.instructor_id or sub.instructor_id
            new_course_id = changes.course_id or sub.course_id
            new_section = changes.section or sub.section
            new_lab_division = changes.lab_division or sub.lab_division
            keys = (
                instructor_key(sub.instructor_id, period),
                instructor_key(new_instructor_id, period),
                slot_key(sub.course_id, sub.section, period),
                slot_key(new_course_id, new_section, period),
            )
            with self.locks.hold(*keys):
                try:
                    self._reload(sub, sub_id)
                    old_instructor_id = sub.instructor_id
                    old_hours = sub.workload_hours
                    course_changed = new_course_id != sub.course_id
                    recompute = course_changed or new_lab_division != sub.lab_division
                    override = changes.workload
                    if override is None and not recompute:
                        override = old_hours
                    candidate = Candidate(
                        instructor_id=new_instructor_id,
                        course_id=new_course_id,
                        section=new_section,
                        period=period,
                        lab_division=new_lab_division,
                        workload_override=override,
                    )
                    accepted = self.validator.validate(
                        candidate,
                        exclude_sub_id=sub.id,
                        require_assignable=course_changed,
                    )
                    sub.instructor_id = new_instructor_id
                    sub.course_id = new_course_id
                    sub.section = new_section
                    sub.lab_division = new_lab_division
                    sub.workload_hours = accepted.workload_hours
                    if changes.assignment_reason is not None:
                        sub.assignment_reason = changes.assignment_reason
                    self.db.flush()

                    if old_instructor_id == new_instructor_id:
                        delta = accepted.workload_hours - old_hours
                        if abs(delta) > ZERO_HOURS:
                            self._apply_commitment(new_instructor_id, period, delta)
                    else:
                        self._apply_commitment(old_instructor_id, period, -old_hours)
                        self._apply_commitment(new_instructor_id, period, accepted.workload_hours)

                    log_activity(
                        self.db,
                        user=actor,
                        action="assignment.updated",
                        entity_type="sub_assignment",
                        entity_id=sub.id,
                        details={
                            "assignment_id": parent_id,
                            "old_instructor_id": old_instructor_id,
                            "instructor_id": new_instructor_id,
                            "old_workload_hours": old_hours,
                            "workload_hours": accepted.workload_hours,
                        },
                    )
                    self.db.commit()
                except (AssignmentRuleError, ResourceNotFoundError):
                    self.db.rollback()
                    raise
                except (StaleCommitmentError, IntegrityError) as exc:
                    self.db.rollback()
                    logger.warning("Concurrent edit of sub-assignment %s (attempt %s): %s", sub_id, attempt, type(exc).__name__)
                    continue
            self.db.refresh(sub)
            return sub
        raise TransientConflictError(
            "Could not update the sub-assignment because of concurrent updates; retry the request",
            details={"assignment_id": parent_id, "sub_assignment_id": sub_id},
        )

    def delete_sub_assignment(self, parent_id: str, sub_id: str, *, actor: User | None = None) -> dict:
        for attempt in range(1, self.policy.commit_retries + 1):
            sub = self.get_sub_assignment(parent_id, sub_id)
            period = period_of(sub)
            keys = (
                instructor_key(sub.instructor_id, period),
                slot_key(sub.course_id, sub.section, period),
            )
            with self.locks.hold(*keys):
                try:
                    self._reload(sub, sub_id)
                    removed = {
                        "id": sub.id,
                        "assignment_id": sub.assignment_id,
                        "instructor_id": sub.instructor_id,
                        "course_id": sub.course_id,
                        "section": sub.section,
                        "workload_hours": sub.workload_hours,
                    }
                    aggregate = sub.assignment
                    self.db.delete(sub)
                    self.db.flush()
                    self._apply_commitment(removed["instructor_id"], period, -removed["workload_hours"])

                    siblings = self.db.execute(
                        select(func.count(SubAssignment.id)).where(SubAssignment.assignment_id == aggregate.id)
                    ).scalar_one()
                    pruned = siblings == 0
                    if pruned:
                        self.db.expire(aggregate, ["sub_assignments"])
                        self.db.delete(aggregate)
                    log_activity(
                        self.db,
                        user=actor,
                        action="assignment.deleted",
                        entity_type="sub_assignment",
                        entity_id=sub_id,
                        details={**removed, "aggregate_pruned": pruned},
                    )
                    self.db.commit()
                except ResourceNotFoundError:
                    self.db.rollback()
                    raise
                except (StaleCommitmentError, IntegrityError) as exc:
                    self.db.rollback()
                    logger.warning("Concurrent delete of sub-assignment %s (attempt %s): %s", sub_id, attempt, type(exc).__name__)
                    continue
            return {"deleted": removed, "aggregate_pruned": pruned}
        raise TransientConflictError(
            "Could not delete the sub-assignment because of concurrent updates; retry the request",
            details={"assignment_id": parent_id, "sub_assignment_id": sub_id},
        )

    # -- reads ----------------------------------------------------------------

    def get_aggregate(self, parent_id: str) -> Assignment:
        aggregate = self.db.get(Assignment, parent_id)
        if aggregate is None:
            raise ResourceNotFoundError("Assignment", parent_id)
        return aggregate

    def get_sub_assignment(self, parent_id: str, sub_id: str) -> SubAssignment:
        self.get_aggregate(parent_id)
        sub = self.db.get(SubAssignment, sub_id)
        if sub is None or sub.assignment_id != parent_id:
            raise ResourceNotFoundError("SubAssignment", sub_id)
        return sub

    def list_aggregates(
        self,
        *,
        year: int | None = None,
        semester: Semester | None = None,
        program: Program | None = None,
        assigned_by: Iterable[str] | None = None,
    ) -> list[Assignment]:
        statement = select(Assignment).options(selectinload(Assignment.sub_assignments))
        if year is not None:
            statement = statement.where(Assignment.year == year)
        if semester is not None:
            statement = statement.where(Assignment.semester == semester)
        if program is not None:
            statement = statement.where(Assignment.program == program)
        if assigned_by is not None:
            statement = statement.where(Assignment.assigned_by.in_(list(assigned_by)))
        statement = statement.order_by(Assignment.year.desc(), Assignment.created_at)
        return list(self.db.execute(statement).scalars())

    def sub_assignments_for_instructor(self, instructor_id: str) -> list[SubAssignment]:
        statement = (
            select(SubAssignment)
            .where(SubAssignment.instructor_id == instructor_id)
            .order_by(SubAssignment.year.desc(), SubAssignment.semester, SubAssignment.position)
        )
        return list(self.db.execute(statement).scalars())

    def commitment_hours(self, instructor_id: str, period: Period) -> float:
        row = self._commitment_row(instructor_id, period)
        return row.hours if row is not None else 0.0

    # -- internals ------------------------------------------------------------

    def _get_or_create_aggregate(self, period: Period, assigned_by: str) -> Assignment:
        aggregate = self.db.execute(
            select(Assignment).where(
                Assignment.year == period.year,
                Assignment.semester == period.semester,
                Assignment.program == period.program,
                Assignment.assigned_by == assigned_by,
            )
        ).scalar_one_or_none()
        if aggregate is None:
            aggregate = Assignment(
                year=period.year,
                semester=period.semester,
                program=period.program,
                assigned_by=assigned_by,
            )
            self.db.add(aggregate)
            self.db.flush()
        return aggregate

    def _next_position(self, aggregate_id: str) -> int:
        current = self.db.execute(
            select(func.max(SubAssignment.position)).where(SubAssignment.assignment_id == aggregate_id)
        ).scalar_one()
        return 0 if current is None else current + 1

    def _reload(self, sub: SubAssignment, sub_id: str) -> None:
        # The row may have been deleted between the lookup and taking the locks.
        try:
            self.db.refresh(sub)
        except InvalidRequestError as exc:
            raise ResourceNotFoundError("SubAssignment", sub_id) from exc

    def _commitment_row(self,instructor_id: str, period: Period) -> InstructorCommitment | None:
        return self.db.execute(
            select(InstructorCommitment)
            .where(
                InstructorCommitment.instructor_id == instructor_id,
                InstructorCommitment.year == period.year,
                InstructorCommitment.semester == period.semester,
                InstructorCommitment.program == period.program,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _apply_commitment(self, instructor_id: str, period: Period, delta: float) -> None:
        row = self._commitment_row(instructor_id, period)
        if row is None:
            if delta <= ZERO_HOURS:
                return
            self.db.add(
                InstructorCommitment(
                    instructor_id=instructor_id,
                    year=period.year,
                    semester=period.semester,
                    program=period.program,
                    hours=round(delta, 4),
                    version=1,
                )
            )
            self.db.flush()
            return

        new_hours = round(row.hours + delta, 4)
        guard = (InstructorCommitment.id == row.id, InstructorCommitment.version == row.version)
        if new_hours <= ZERO_HOURS:
            result = self.db.execute(
                delete(InstructorCommitment).where(*guard).execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise StaleCommitmentError(row.id)
            self.db.expunge(row)
            return

        result = self.db.execute(
            update(InstructorCommitment)
            .where(*guard)
            .values(hours=new_hours, version=row.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleCommitmentError(row.id)
        self.db.expire(row)
