"""Seed demo accounts, staff, courses and preferences, then run one automatic pass.

Run:
  PYTHONPATH=backend python scripts/seed_staffing_demo.py
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from app.core.config import get_settings
from app.core.security import get_password_hash
from app.db.bootstrap import ensure_runtime_schema_compatibility
from app.db.session import SessionLocal
from app.models.course import Course, CourseStatus
from app.models.instructor import Instructor
from app.models.period import Program, Semester
from app.models.position import Position
from app.models.preference_form import PreferenceForm
from app.models.user import User, UserRole
from app.services.assignment_scheduler import AssignmentScheduler
from app.services.policy import Period, policy_from_settings
from app.services.preference_matcher import Slot
from app.services.preferences import submit_preferences

DEFAULT_PASSWORD = os.getenv("DEMO_PASSWORD", "DemoPass123!")
DEMO_YEAR = int(os.getenv("DEMO_YEAR", "2026"))
CHAIR = "Software"

DEMO_ACCOUNTS = {
    "head": {"name": "Demo Head of Faculty", "email": "head.demo@example.edu", "role": UserRole.head_of_faculty, "chair": None},
    "chair": {"name": "Demo Software Chair", "email": "chair.demo@example.edu", "role": UserRole.chair_head, "chair": CHAIR},
}

POSITIONS = {"Lecturer": 0.0, "Department Head": 6.0}

INSTRUCTORS = [
    {"name": "Abebe Kebede", "email": "abebe.demo@example.edu", "position": "Lecturer"},
    {"name": "Sara Tesfaye", "email": "sara.demo@example.edu", "position": "Lecturer"},
    {"name": "Dawit Alemu", "email": "dawit.demo@example.edu", "position": "Department Head"},
]

COURSES = [
    {"code": "SE-3101", "name": "Software Requirements", "lecture_hours": 3, "lab_hours": 0, "tutorial_hours": 0},
    {"code": "SE-3102", "name": "Object Oriented Design", "lecture_hours": 2, "lab_hours": 2, "tutorial_hours": 0},
    {"code": "SE-3103", "name": "Database Systems", "lecture_hours": 2, "lab_hours": 3, "tutorial_hours": 1},
]

# instructor email -> course codes in preference order
PREFERENCES = {
    "abebe.demo@example.edu": ["SE-3102", "SE-3101"],
    "sara.demo@example.edu": ["SE-3102", "SE-3103"],
    "dawit.demo@example.edu": ["SE-3101"],
}


def _upsert_user(*, name: str, email: str, role: UserRole, chair: str | None) -> User:
    with SessionLocal() as session:
        existing = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if existing is None:
            existing = User(
                name=name,
                email=email,
                hashed_password=get_password_hash(DEFAULT_PASSWORD),
                role=role,
                chair=chair,
                is_active=True,
            )
            session.add(existing)
        else:
            existing.name = name
            existing.role = role
            existing.chair = chair
            existing.is_active = True
        session.commit()
        session.refresh(existing)
        return existing


def _upsert_positions() -> dict[str, str]:
    ids: dict[str, str] = {}
    with SessionLocal() as session:
        for name, exemption in POSITIONS.items():
            position = session.execute(select(Position).where(Position.name == name)).scalar_one_or_none()
            if position is None:
                position = Position(name=name, exemption_hours=exemption)
                session.add(position)
            else:
                position.exemption_hours = exemption
            session.flush()
            ids[name] = position.id
        session.commit()
    return ids


def _upsert_instructors(position_ids: dict[str, str]) -> dict[str, str]:
    ids: dict[str, str] = {}
    with SessionLocal() as session:
        for item in INSTRUCTORS:
            instructor = session.execute(select(Instructor).where(Instructor.email == item["email"])).scalar_one_or_none()
            if instructor is None:
                instructor = Instructor(name=item["name"], email=item["email"], chair=CHAIR)
                session.add(instructor)
            instructor.position_id = position_ids[item["position"]]
            session.flush()
            ids[item["email"]] = instructor.id
        session.commit()
    return ids


def _upsert_courses() -> dict[str, str]:
    ids: dict[str, str] = {}
    with SessionLocal() as session:
        for item in COURSES:
            course = session.execute(select(Course).where(Course.code == item["code"])).scalar_one_or_none()
            if course is None:
                course = Course(code=item["code"], name=item["name"], chair=CHAIR, department="Computing")
                session.add(course)
            course.lecture_hours = item["lecture_hours"]
            course.lab_hours = item["lab_hours"]
            course.tutorial_hours = item["tutorial_hours"]
            # Demo data skips the publish/accept hand-off and opens courses directly.
            course.status = CourseStatus.active
            course.assigned_to = CHAIR
            session.flush()
            ids[item["code"]] = course.id
        session.commit()
    return ids


def _upsert_form(period: Period, course_ids: dict[str, str]) -> str:
    """Open the chair's form for the demo period, or reopen it for another week."""
    now = datetime.now(timezone.utc)
    courses = [
        {"course_id": course_id, "section": "A", "sections": 1, "lab_division": "No"} for course_id in course_ids.values()
    ]
    with SessionLocal() as session:
        form = session.execute(
            select(PreferenceForm).where(
                PreferenceForm.chair == CHAIR,
                PreferenceForm.year == period.year,
                PreferenceForm.semester == period.semester,
                PreferenceForm.program == period.program,
            )
        ).scalar_one_or_none()
        if form is None:
            form = PreferenceForm(chair=CHAIR, year=period.year, semester=period.semester, program=period.program)
            session.add(form)
        form.max_preferences = 5
        form.submission_start = now - timedelta(days=1)
        form.submission_end = now + timedelta(days=7)
        form.all_instructors = True
        form.instructor_ids = []
        form.courses = courses
        session.commit()
        return form.id


def main() -> None:
    ensure_runtime_schema_compatibility()
    users = {key: _upsert_user(**item) for key, item in DEMO_ACCOUNTS.items()}
    position_ids = _upsert_positions()
    instructor_ids = _upsert_instructors(position_ids)
    course_ids = _upsert_courses()
    period = Period(year=DEMO_YEAR, semester=Semester.regular_1, program=Program.regular)
    form_id = _upsert_form(period, course_ids)

    with SessionLocal() as session:
        for email, codes in PREFERENCES.items():
            submit_preferences(
                session,
                form_id=form_id,
                instructor_id=instructor_ids[email],
                entries=[(course_ids[code], rank) for rank, code in enumerate(codes, start=1)],
                actor=users["chair"],
            )

        scheduler = AssignmentScheduler(session, policy_from_settings(get_settings()))
        result = scheduler.assign_automatic(
            period,
            assigned_by=CHAIR,
            instructor_ids=list(instructor_ids.values()),
            slots=[Slot(course_id=course_id, section="A") for course_id in course_ids.values()],
            actor=users["chair"],
        )
        names = {instructor_id: email for email, instructor_id in instructor_ids.items()}
        codes = {course_id: code for code, course_id in course_ids.items()}

        print(f"\nAutomatic assignment for {period.key()}:")
        for sub in result.assignments:
            print(f"  - {codes[sub.course_id]} section {sub.section} -> {names[sub.instructor_id]} ({sub.workload_hours:g}h)")
        for item in result.unfilled:
            print(f"  - {codes[item.slot.course_id]} section {item.slot.section} unfilled: {item.reason}")

    print("\nDemo accounts ready:")
    for label, user in users.items():
        print(f"  - {label}: {user.email} | role={user.role.value}")
    print(f"\nPassword for all demo accounts: {DEFAULT_PASSWORD}")


if __name__ == "__main__":
    main()
