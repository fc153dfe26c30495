from sqlalchemy import func, select

from app.models.assignment import LabDivision, SubAssignment
from app.models.course import CourseStatus
from app.services.assignment_scheduler import AssignmentScheduler
from app.services.conflict_service import Candidate
from app.services.preference_matcher import Slot
from app.services.workload import WorkloadCapacityResolver


def _sub_count(db) -> int:
    return db.execute(select(func.count(SubAssignment.id))).scalar_one()


def test_automatic_assignment_without_lab_division(db_session, seed, policy, period):
    instructor = seed.instructor()
    course = seed.course(lecture=3, lab=2)
    seed.preferences(instructor, [course])

    result = AssignmentScheduler(db_session, policy).assign_automatic(
        period,
        assigned_by="Software",
        instructor_ids=[instructor.id],
        slots=[Slot(course_id=course.id, section="A")],
    )

    assert result.unfilled == []
    [sub] = result.assignments
    assert sub.workload_hours == 5
    assert sub.preference_rank == 1
    assert "preference #1" in sub.assignment_reason
    assert WorkloadCapacityResolver(db_session, policy).remaining(instructor.id, period) == 7


def test_automatic_assignment_with_lab_division(db_session, seed, policy, period):
    instructor = seed.instructor()
    course = seed.course(lecture=3, lab=2)

    result = AssignmentScheduler(db_session, policy).assign_automatic(
        period,
        assigned_by="Software",
        instructor_ids=[instructor.id],
        slots=[Slot(course_id=course.id, section="A", lab_division=LabDivision.yes)],
    )

    [sub] = result.assignments
    assert sub.workload_hours == 7
    assert sub.preference_rank is None
    assert WorkloadCapacityResolver(db_session, policy).remaining(instructor.id, period) == 5


def test_over_capacity_slot_stays_unfilled_without_changes(db_session, seed, policy, period):
    instructor = seed.instructor()
    heavy = seed.course(lecture=11)
    light = seed.course(lecture=3)
    scheduler = AssignmentScheduler(db_session, policy)
    scheduler.assign_manual(
        Candidate(instructor_id=instructor.id, course_id=heavy.id, section="A", period=period),
        assigned_by="Software",
    )
    before = _sub_count(db_session)

    result = scheduler.assign_automatic(
        period,
        assigned_by="Software",
        instructor_ids=[instructor.id],
        slots=[Slot(course_id=light.id, section="A")],
    )

    assert result.assignments == []
    [unfilled] = result.unfilled
    assert unfilled.reason == "no_eligible_instructor"
    assert unfilled.rejections == {"CapacityExceeded": 1}
    assert _sub_count(db_session) == before
    assert WorkloadCapacityResolver(db_session, policy).remaining(instructor.id, period) == 1


def test_top_ranked_instructor_wins_contested_slot(db_session, seed, policy, period):
    first = seed.instructor()
    second = seed.instructor()
    contested = seed.course(lecture=4)
    fallback = seed.course(lecture=4)
    seed.preferences(first, [contested])
    seed.preferences(second, [fallback, contested])

    result = AssignmentScheduler(db_session, policy).assign_automatic(
        period,
        assigned_by="Software",
        # Second instructor is listed first so input order cannot decide the tie.
        instructor_ids=[second.id, first.id],
        slots=[Slot(course_id=contested.id, section="A"), Slot(course_id=fallback.id, section="A")],
    )

    owners = {sub.course_id: sub.instructor_id for sub in result.assignments}
    assert owners == {contested.id: first.id, fallback.id: second.id}
    assert result.unfilled == []


def test_equal_preferences_prefer_more_remaining_capacity(db_session, seed, policy, period):
    busy = seed.instructor()
    free = seed.instructor()
    warmup = seed.course(lecture=6)
    course = seed.course(lecture=3)
    seed.preferences(busy, [course])
    seed.preferences(free, [course])
    scheduler = AssignmentScheduler(db_session, policy)
    scheduler.assign_manual(
        Candidate(instructor_id=busy.id, course_id=warmup.id, section="A", period=period),
        assigned_by="Software",
    )

    result = scheduler.assign_automatic(
        period,
        assigned_by="Software",
        instructor_ids=[busy.id, free.id],
        slots=[Slot(course_id=course.id, section="A")],
    )

    assert [sub.instructor_id for sub in result.assignments] == [free.id]


def test_bulk_rows_commit_independently(db_session, seed, policy, period):
    first = seed.instructor()
    second = seed.instructor()
    course = seed.course()
    rows = [
        Candidate(instructor_id=first.id, course_id=course.id, section="A", period=period),
        Candidate(instructor_id=first.id, course_id=course.id, section="A", period=period),
        Candidate(instructor_id=second.id, course_id=course.id, section="B", period=period),
    ]

    results = AssignmentScheduler(db_session, policy).assign_bulk(rows, assigned_by="Software")

    assert [result.ok for result in results] == [True, False, True]
    assert results[1].error.kind == "DuplicateAssignment"
    assert results[0].sub_assignment.assignment_reason == "Manual assignment."
    assert _sub_count(db_session) == 2


def test_bulk_reports_missing_references_per_row(db_session, seed, policy, period):
    instructor = seed.instructor()
    draft = seed.course(status=CourseStatus.draft)
    rows = [
        Candidate(instructor_id="ghost", course_id=draft.id, section="A", period=period),
        Candidate(instructor_id=instructor.id, course_id=draft.id, section="A", period=period),
    ]

    results = AssignmentScheduler(db_session, policy).assign_bulk(rows, assigned_by="Software", reasons=["a", "b"])

    assert [result.error.kind for result in results] == ["NotFound", "CourseNotAssignable"]


def test_manual_assignment_records_submitted_rank(db_session, seed, policy, period):
    instructor = seed.instructor()
    first = seed.course()
    second = seed.course()
    seed.preferences(instructor, [first, second])

    sub = AssignmentScheduler(db_session, policy).assign_manual(
        Candidate(instructor_id=instructor.id, course_id=second.id, section="A", period=period),
        assigned_by="Software",
        reason="Covers the morning section",
    )

    assert sub.preference_rank == 2
    assert sub.assignment_reason == "Covers the morning section"


def test_already_staffed_slots_are_skipped(db_session, seed, policy, period):
    owner = seed.instructor()
    other = seed.instructor()
    course = seed.course()
    scheduler = AssignmentScheduler(db_session, policy)
    scheduler.assign_manual(
        Candidate(instructor_id=owner.id, course_id=course.id, section="A", period=period),
        assigned_by="Software",
    )

    result = scheduler.assign_automatic(
        period,
        assigned_by="Software",
        instructor_ids=[other.id],
        slots=[Slot(course_id=course.id, section="A"), Slot(course_id=course.id, section="B")],
    )

    assert [(sub.instructor_id, sub.section) for sub in result.assignments] == [(other.id, "B")]
    assert [(item.slot.section, item.reason) for item in result.unfilled] == [("A", "already_filled")]


def test_repeated_slots_and_unknown_instructors(db_session, seed, policy, period):
    instructor = seed.instructor()
    course = seed.course()
    missing_course = "no-such-course"

    result = AssignmentScheduler(db_session, policy).assign_automatic(
        period,
        assigned_by="Software",
        instructor_ids=[instructor.id, "ghost", instructor.id],
        slots=[
            Slot(course_id=course.id, section="A"),
            Slot(course_id=course.id, section="A"),
            Slot(course_id=missing_course, section="A"),
        ],
    )

    assert len(result.assignments) == 1
    assert result.unknown_instructors == ["ghost"]
    assert [(item.slot.course_id, item.reason) for item in result.unfilled] == [(missing_course, "NotFound")]


def test_one_instructor_fills_several_slots_until_capacity_runs_out(db_session, seed, policy, period):
    instructor = seed.instructor()
    courses = [seed.course(lecture=5) for _ in range(3)]

    result = AssignmentScheduler(db_session, policy).assign_automatic(
        period,
        assigned_by="Software",
        instructor_ids=[instructor.id],
        slots=[Slot(course_id=course.id, section="A") for course in courses],
    )

    assert [sub.course_id for sub in result.assignments] == [courses[0].id, courses[1].id]
    [unfilled] = result.unfilled
    assert unfilled.slot.course_id == courses[2].id
    assert unfilled.rejections == {"CapacityExceeded": 1}
