from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from app.core.config import Settings
from app.core.exceptions import ConfigurationError
from app.models.period import Program, Semester


@dataclass(frozen=True)
class Period:
    year: int
    semester: Semester
    program: Program

    def key(self) -> str:
        return f"{self.year}|{self.semester.value}|{self.program.value}"

    def as_dict(self) -> dict:
        return {"year": self.year, "semester": self.semester.value, "program": self.program.value}


@dataclass(frozen=True)
class WorkloadPolicy:
    """Hour weights used to turn a course breakdown into taught hours.

    hours = lecture * lecture_factor
          + tutorial * tutorial_factor
          + lab * lab_factor * (lab_division_multiplier if divided else 1)
    """

    lecture_factor: float = 1.0
    tutorial_factor: float = 1.0
    lab_factor: float = 1.0
    lab_division_multiplier: float = 2.0
    round_digits: int = 2


@dataclass(frozen=True)
class AssignmentPolicy:
    """Request-scoped engine configuration.

    Built once per request and passed explicitly into every engine call.
    """

    period_base_hours: Mapping[str, float] = field(
        default_factory=lambda: MappingProxyType({program.value: 12.0 for program in Program})
    )
    workload: WorkloadPolicy = field(default_factory=WorkloadPolicy)
    commit_retries: int = 3
    coc_chairs: tuple[str, ...] = ()

    def base_hours(self, program: Program) -> float:
        try:
            return float(self.period_base_hours[program.value])
        except KeyError as exc:
            raise ConfigurationError(f"No base teaching hours configured for program {program.value}") from exc


def policy_from_settings(settings: Settings) -> AssignmentPolicy:
    return AssignmentPolicy(
        period_base_hours=MappingProxyType(dict(settings.period_base_hours)),
        workload=WorkloadPolicy(
            lecture_factor=settings.workload_lecture_factor,
            tutorial_factor=settings.workload_tutorial_factor,
            lab_factor=settings.workload_lab_factor,
            lab_division_multiplier=settings.workload_lab_division_multiplier,
            round_digits=settings.workload_round_digits,
        ),
        commit_retries=max(1, settings.assignment_commit_retries),
        coc_chairs=tuple(settings.coc_chairs),
    )
