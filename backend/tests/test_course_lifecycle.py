import pytest

from app.core.exceptions import InvalidStatusTransitionError, ResourceNotFoundError
from app.models.course import Course, CourseStatus
from app.models.user import UserRole
from app.services.course_lifecycle import CourseLifecycle, allowed_targets, can_transition

S = CourseStatus


@pytest.mark.parametrize(
    ("role", "current", "target", "allowed"),
    [
        (UserRole.head_of_faculty, S.draft, S.assigned, True),
        (UserRole.head_of_faculty, S.draft, S.active, False),
        (UserRole.head_of_faculty, S.active, S.completed, True),
        (UserRole.head_of_faculty, S.completed, S.archived, True),
        (UserRole.head_of_faculty, S.archived, S.active, False),
        (UserRole.chair_head, S.assigned, S.active, True),
        (UserRole.chair_head, S.active, S.assigned, True),
        (UserRole.chair_head, S.active, S.archived, False),
        (UserRole.coc, S.draft, S.assigned, False),
        (UserRole.instructor, S.active, S.completed, False),
        (UserRole.instructor, S.active, S.active, True),
    ],
)
def test_transition_table(role, current, target, allowed):
    assert can_transition(role, current, target) is allowed


def test_instructors_have_no_transitions():
    assert all(not allowed_targets(UserRole.instructor, status) for status in CourseStatus)


def test_publish_accept_complete_archive(db_session, seed):
    head = seed.user(UserRole.head_of_faculty)
    chair = seed.user(UserRole.chair_head, chair="Software")
    course = seed.course(status=S.draft)
    lifecycle = CourseLifecycle(db_session)

    published = lifecycle.transition(course.id, S.assigned, actor=head, assigned_to="Software")
    assert (published.from_status, published.to_status, published.changed) == (S.draft, S.assigned, True)
    assert db_session.get(Course, course.id).assigned_to == "Software"

    lifecycle.transition(course.id, S.active, actor=chair)
    lifecycle.transition(course.id, S.completed, actor=chair)
    lifecycle.transition(course.id, S.archived, actor=head)

    archived = db_session.get(Course, course.id)
    assert archived.status == S.archived
    assert archived.assigned_to is None


def test_same_state_request_is_a_no_op(db_session, seed):
    chair = seed.user(UserRole.chair_head, chair="Software")
    course = seed.course(status=S.active)

    result = CourseLifecycle(db_session).transition(course.id, S.active, actor=chair)

    assert result.ok
    assert result.changed is False


def test_reassigning_chair_without_status_change(db_session, seed):
    head = seed.user(UserRole.head_of_faculty)
    course = seed.course(status=S.assigned)

    result = CourseLifecycle(db_session).transition(course.id, S.assigned, actor=head, assigned_to="Database")

    assert result.changed is True
    assert db_session.get(Course, course.id).assigned_to == "Database"


def test_disallowed_transition_leaves_course_untouched(db_session, seed):
    chair = seed.user(UserRole.chair_head, chair="Software")
    course = seed.course(status=S.draft)

    with pytest.raises(InvalidStatusTransitionError) as exc_info:
        CourseLifecycle(db_session).transition(course.id, S.active, actor=chair)

    assert exc_info.value.details["from"] == "draft"
    assert exc_info.value.details["allowed"] == []
    assert db_session.get(Course, course.id).status == S.draft


def test_reverting_to_draft_clears_assignment(db_session, seed):
    head = seed.user(UserRole.head_of_faculty)
    course = seed.course(status=S.draft)
    lifecycle = CourseLifecycle(db_session)
    lifecycle.transition(course.id, S.assigned, actor=head, assigned_to="Software")

    lifecycle.transition(course.id, S.draft, actor=head)

    assert db_session.get(Course, course.id).assigned_to is None


def test_bulk_transition_reports_each_course(db_session, seed):
    head = seed.user(UserRole.head_of_faculty)
    drafts = [seed.course(status=S.draft) for _ in range(2)]
    completed = seed.course(status=S.completed)

    results = CourseLifecycle(db_session).bulk_transition(
        [drafts[0].id, completed.id, "missing", drafts[1].id, drafts[0].id],
        S.assigned,
        actor=head,
        assigned_to="Software",
    )

    assert [result.course_id for result in results] == [drafts[0].id, completed.id, "missing", drafts[1].id]
    assert [result.ok for result in results] == [True, False, False, True]
    assert isinstance(results[1].error, InvalidStatusTransitionError)
    assert isinstance(results[2].error, ResourceNotFoundError)
    assert db_session.get(Course, completed.id).status == S.completed
