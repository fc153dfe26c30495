from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.assignment import LabDivision
from app.models.preference import Preference
from app.services.policy import AssignmentPolicy, Period
from app.services.workload import WorkloadCapacityResolver

# Pairs without a submitted preference sort after every ranked pair.
NO_PREFERENCE = math.inf


@dataclass(frozen=True)
class Slot:
    """One (course, section) unit of work waiting for an instructor."""

    course_id: str
    section: str
    lab_division: LabDivision = LabDivision.no
    index: int = 0


@dataclass(frozen=True)
class CandidatePair:
    instructor_id: str
    slot: Slot
    rank: int | None
    remaining: float
    instructor_index: int

    @property
    def sort_key(self) -> tuple[float, float, int, int]:
        rank = NO_PREFERENCE if self.rank is None else float(self.rank)
        return (rank, -self.remaining, self.slot.index, self.instructor_index)


def order_candidates(
    instructor_ids: Sequence[str],
    slots: Sequence[Slot],
    rankings: Mapping[str, Mapping[str, int]],
    remaining: Mapping[str, float],
) -> list[CandidatePair]:
    """Priority order over every (instructor, slot) pair.

    Ascending preference rank first, then more remaining capacity, then the
    order the slots and instructors were supplied in. The result is a list of
    attempts, not an assignment: later pairs must still be validated against
    the state produced by earlier commits.
    """
    pairs: list[CandidatePair] = []
    for slot in slots:
        for instructor_index, instructor_id in enumerate(instructor_ids):
            pairs.append(
                CandidatePair(
                    instructor_id=instructor_id,
                    slot=slot,
                    rank=rankings.get(instructor_id, {}).get(slot.course_id),
                    remaining=remaining.get(instructor_id, 0.0),
                    instructor_index=instructor_index,
                )
            )
    pairs.sort(key=lambda pair: pair.sort_key)
    return pairs


class PreferenceMatcher:
    def __init__(
        self,
        db: Session,
        policy: AssignmentPolicy,
        resolver: WorkloadCapacityResolver | None = None,
    ) -> None:
        self.db = db
        self.policy = policy
        self.resolver = resolver or WorkloadCapacityResolver(db, policy)

    def load_rankings(self, instructor_ids: Sequence[str], period: Period) -> dict[str, dict[str, int]]:
        if not instructor_ids:
            return {}
        statement = select(Preference).where(
            Preference.instructor_id.in_(list(instructor_ids)),
            Preference.year == period.year,
            Preference.semester == period.semester,
            Preference.program == period.program,
        )
        rankings: dict[str, dict[str, int]] = {}
        for preference in self.db.execute(statement).scalars():
            # An instructor may answer several chairs' forms; the best rank per course wins.
            ranks = rankings.setdefault(preference.instructor_id, {})
            for item in preference.rankings or []:
                rank = int(item["rank"])
                if rank < ranks.get(item["course_id"], rank + 1):
                    ranks[item["course_id"]] = rank
        return rankings

    def rank_for(self, instructor_id: str, course_id: str, period: Period) -> int | None:
        return self.load_rankings([instructor_id], period).get(instructor_id, {}).get(course_id)

    def rank_candidates(
        self,
        instructor_ids: Sequence[str],
        slots: Sequence[Slot],
        period: Period,
    ) -> tuple[list[CandidatePair], dict[str, float]]:
        rankings = self.load_rankings(instructor_ids, period)
        remaining = {instructor_id: self.resolver.remaining(instructor_id, period) for instructor_id in instructor_ids}
        return order_candidates(instructor_ids, slots, rankings, remaining), remaining
