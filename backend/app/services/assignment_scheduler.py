from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import (
    AppError,
    AssignmentRuleError,
    ResourceNotFoundError,
    TransientConflictError,
)
from app.models.assignment import SubAssignment
from app.models.course import Course, CourseStatus
from app.models.instructor import Instructor
from app.models.user import User
from app.services.assignment_store import AssignmentStore
from app.services.conflict_service import Candidate
from app.services.policy import AssignmentPolicy, Period
from app.services.preference_matcher import PreferenceMatcher, Slot

logger = logging.getLogger(__name__)

RECOVERABLE_ERRORS = (AssignmentRuleError, ResourceNotFoundError, TransientConflictError)


@dataclass
class RowResult:
    index: int
    candidate: Candidate
    sub_assignment: SubAssignment | None = None
    error: AppError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class UnfilledSlot:
    slot: Slot
    reason: str
    rejections: dict[str, int] = field(default_factory=dict)


@dataclass
class AutomaticAssignmentResult:
    period: Period
    assigned_by: str
    assignments: list[SubAssignment] = field(default_factory=list)
    unfilled: list[UnfilledSlot] = field(default_factory=list)
    unknown_instructors: list[str] = field(default_factory=list)


def _preference_reason(rank: int | None, remaining: float) -> str:
    if rank is None:
        return f"No submitted preference for this course; chosen by remaining capacity ({remaining:g}h available)."
    return f"Listed this course as preference #{rank}; {remaining:g}h of capacity remained before assignment."


class AssignmentScheduler:
    """Manual, bulk-manual and automatic assignment on top of the store."""

    def __init__(
        self,
        db: Session,
        policy: AssignmentPolicy,
        *,
        store: AssignmentStore | None = None,
        matcher: PreferenceMatcher | None = None,
    ) -> None:
        self.db = db
        self.policy = policy
        self.store = store or AssignmentStore(db, policy)
        self.matcher = matcher or PreferenceMatcher(db, policy, self.store.validator.resolver)

    def assign_manual(
        self,
        candidate: Candidate,
        *,
        assigned_by: str,
        actor: User | None = None,
        reason: str | None = None,
    ) -> SubAssignment:
        rank = self.matcher.rank_for(candidate.instructor_id, candidate.course_id, candidate.period)
        return self.store.add_sub_assignment(
            candidate,
            assigned_by=assigned_by,
            actor=actor,
            preference_rank=rank,
            reason=reason or "Manual assignment.",
        )

    def assign_bulk(
        self,
        rows: Sequence[Candidate],
        *,
        assigned_by: str,
        actor: User | None = None,
        reasons: Sequence[str | None] | None = None,
    ) -> list[RowResult]:
        """Best effort: each row commits or fails on its own, in input order."""
        results: list[RowResult] = []
        for index, candidate in enumerate(rows):
            reason = reasons[index] if reasons is not None and index < len(reasons) else None
            result = RowResult(index=index, candidate=candidate)
            try:
                result.sub_assignment = self.assign_manual(candidate, assigned_by=assigned_by, actor=actor, reason=reason)
            except RECOVERABLE_ERRORS as exc:
                logger.debug("Bulk row %s rejected: %s", index, exc.kind)
                result.error = exc
            results.append(result)
        return results

    def assign_automatic(
        self,
        period: Period,
        *,
        assigned_by: str,
        instructor_ids: Sequence[str],
        slots: Sequence[Slot],
        actor: User | None = None,
    ) -> AutomaticAssignmentResult:
        result = AutomaticAssignmentResult(period=period, assigned_by=assigned_by)

        requested = list(dict.fromkeys(instructor_ids))
        known = set(self.db.execute(select(Instructor.id).where(Instructor.id.in_(requested))).scalars())
        instructors = [instructor_id for instructor_id in requested if instructor_id in known]
        result.unknown_instructors = [instructor_id for instructor_id in requested if instructor_id not in known]

        open_slots = self._open_slots(slots, period, result)
        if not open_slots or not instructors:
            result.unfilled.extend(UnfilledSlot(slot=slot, reason="no_eligible_instructor") for slot in open_slots)
            return result

        ordered, remaining = self.matcher.rank_candidates(instructors, open_slots, period)
        filled: set[int] = set()
        taken_elsewhere: set[int] = set()
        rejections: dict[int, Counter] = {slot.index: Counter() for slot in open_slots}

        for pair in ordered:
            slot = pair.slot
            if slot.index in filled or slot.index in taken_elsewhere:
                continue
            candidate = Candidate(
                instructor_id=pair.instructor_id,
                course_id=slot.course_id,
                section=slot.section,
                period=period,
                lab_division=slot.lab_division,
            )
            try:
                sub = self.store.add_sub_assignment(
                    candidate,
                    assigned_by=assigned_by,
                    actor=actor,
                    preference_rank=pair.rank,
                    reason=_preference_reason(pair.rank, remaining[pair.instructor_id]),
                    require_open_slot=True,
                )
            except RECOVERABLE_ERRORS as exc:
                if exc.details.get("slot_filled"):
                    taken_elsewhere.add(slot.index)
                else:
                    rejections[slot.index][exc.kind] += 1
                logger.debug(
                    "Candidate %s for course %s section %s rejected: %s",
                    pair.instructor_id,
                    slot.course_id,
                    slot.section,
                    exc.kind,
                )
                continue
            filled.add(slot.index)
            remaining[pair.instructor_id] = remaining[pair.instructor_id] - sub.workload_hours
            result.assignments.append(sub)

        for slot in open_slots:
            if slot.index in filled:
                continue
            if slot.index in taken_elsewhere:
                result.unfilled.append(UnfilledSlot(slot=slot, reason="already_filled"))
            else:
                result.unfilled.append(
                    UnfilledSlot(slot=slot, reason="no_eligible_instructor", rejections=dict(rejections[slot.index]))
                )

        logger.info(
            "Automatic assignment for %s by %s: %s assigned, %s unfilled",
            period.key(),
            assigned_by,
            len(result.assignments),
            len(result.unfilled),
        )
        return result

    def _open_slots(self, slots: Sequence[Slot], period: Period, result: AutomaticAssignmentResult) -> list[Slot]:
        seen: set[tuple[str, str]] = set()
        unique: list[Slot] = []
        for slot in slots:
            key = (slot.course_id, slot.section)
            if key in seen:
                continue
            seen.add(key)
            unique.append(Slot(course_id=slot.course_id, section=slot.section, lab_division=slot.lab_division, index=len(unique)))

        course_ids = {slot.course_id for slot in unique}
        courses = {
            course.id: course
            for course in self.db.execute(select(Course).where(Course.id.in_(course_ids))).scalars()
        }

        open_slots: list[Slot] = []
        for slot in unique:
            course = courses.get(slot.course_id)
            if course is None:
                result.unfilled.append(UnfilledSlot(slot=slot, reason=ResourceNotFoundError.kind))
            elif course.status != CourseStatus.active:
                result.unfilled.append(UnfilledSlot(slot=slot, reason="CourseNotAssignable"))
            elif self.store.validator.slot_filled(slot.course_id, slot.section, period):
                result.unfilled.append(UnfilledSlot(slot=slot, reason="already_filled"))
            else:
                open_slots.append(slot)
        return open_slots
