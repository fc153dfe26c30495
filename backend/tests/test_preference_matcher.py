from app.models.period import Program, Semester
from app.services.policy import Period
from app.services.preference_matcher import PreferenceMatcher, Slot, order_candidates


def test_orders_by_rank_then_remaining_capacity():
    slots = [Slot(course_id="c1", section="A", index=0)]
    rankings = {"i1": {"c1": 2}, "i2": {"c1": 1}, "i3": {"c1": 2}}
    remaining = {"i1": 4.0, "i2": 1.0, "i3": 9.0}

    ordered = order_candidates(["i1", "i2", "i3"], slots, rankings, remaining)

    assert [pair.instructor_id for pair in ordered] == ["i2", "i3", "i1"]


def test_pairs_without_preference_come_last():
    slots = [Slot(course_id="c1", section="A", index=0), Slot(course_id="c2", section="A", index=1)]
    rankings = {"i1": {"c2": 3}}
    remaining = {"i1": 12.0, "i2": 12.0}

    ordered = order_candidates(["i1", "i2"], slots, rankings, remaining)

    assert (ordered[0].instructor_id, ordered[0].slot.course_id, ordered[0].rank) == ("i1", "c2", 3)
    assert all(pair.rank is None for pair in ordered[1:])


def test_full_ties_fall_back_to_input_order():
    slots = [Slot(course_id="c2", section="A", index=0), Slot(course_id="c1", section="A", index=1)]
    remaining = {"b": 6.0, "a": 6.0}

    first = order_candidates(["b", "a"], slots, {}, remaining)
    second = order_candidates(["b", "a"], slots, {}, remaining)

    assert [(p.instructor_id, p.slot.course_id) for p in first] == [
        ("b", "c2"),
        ("a", "c2"),
        ("b", "c1"),
        ("a", "c1"),
    ]
    assert first == second


def test_rank_candidates_reads_submissions_for_the_period(db_session, seed, policy, period):
    keen = seed.instructor()
    other = seed.instructor()
    course = seed.course()
    seed.preferences(keen, [course])
    summer = Period(year=2024, semester=Semester.summer, program=Program.summer)
    seed.preferences(other, [course], period=summer)

    matcher = PreferenceMatcher(db_session, policy)
    ordered, remaining = matcher.rank_candidates([other.id, keen.id], [Slot(course_id=course.id, section="A")], period)

    assert [pair.instructor_id for pair in ordered] == [keen.id, other.id]
    assert ordered[0].rank == 1
    assert ordered[1].rank is None
    assert remaining == {other.id: 12, keen.id: 12}
    assert matcher.rank_for(other.id, course.id, summer) == 1
    assert matcher.rank_for(other.id, course.id, period) is None


def test_best_rank_across_chair_forms_is_used(db_session, seed, policy, period):
    instructor = seed.instructor()
    first, second = seed.course(), seed.course()
    software = seed.form([first, second])
    database = seed.form([first, second], chair="Database")
    seed.preferences(instructor, [second, first], form=software)
    seed.preferences(instructor, [first], form=database)

    rankings = PreferenceMatcher(db_session, policy).load_rankings([instructor.id], period)

    assert rankings == {instructor.id: {first.id: 1, second.id: 1}}
