from enum import Enum


class Semester(str, Enum):
    regular_1 = "Regular 1"
    regular_2 = "Regular 2"
    summer = "Summer"
    extension_1 = "Extension 1"
    extension_2 = "Extension 2"


class Program(str, Enum):
    regular = "Regular"
    common = "Common"
    extension = "Extension"
    summer = "Summer"


PROGRAM_SEMESTERS: dict[Program, frozenset[Semester]] = {
    Program.regular: frozenset({Semester.regular_1, Semester.regular_2}),
    Program.common: frozenset({Semester.regular_1, Semester.regular_2}),
    Program.extension: frozenset({Semester.extension_1, Semester.extension_2}),
    Program.summer: frozenset({Semester.summer}),
}


def enum_values(enum_cls: type[Enum]) -> list[str]:
    """Persist enum values rather than member names."""
    return [item.value for item in enum_cls]
