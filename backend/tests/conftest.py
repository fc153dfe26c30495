import os
from datetime import datetime, timedelta, timezone

# The app's own engine is used by startup bootstrap and readiness checks.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.api.deps import get_db
from app.db.base import Base
from app.main import app
from app.models.course import Course, CourseStatus
from app.models.instructor import Instructor
from app.models.period import Program, Semester
from app.models.position import Position
from app.models.preference_form import PreferenceForm
from app.models.user import User, UserRole
from app.services.locking import get_lock_registry
from app.services.policy import AssignmentPolicy, Period
from app.services.preferences import submit_preferences

REGULAR_PERIOD = Period(year=2024, semester=Semester.regular_1, program=Program.regular)


def _memory_engine():
    return create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture()
def client():
    get_lock_registry().clear()
    engine = _memory_engine()
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def db_session():
    get_lock_registry().clear()
    engine = _memory_engine()
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def policy():
    return AssignmentPolicy()


@pytest.fixture()
def period():
    return REGULAR_PERIOD


class Seeder:
    """Direct ORM inserts for service-level tests."""

    def __init__(self, db):
        self.db = db
        self._counter = 0
        self._forms: dict[str, PreferenceForm] = {}

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def position(self, name="Lecturer", exemption_hours=0.0) -> Position:
        position = Position(name=name, exemption_hours=exemption_hours)
        self.db.add(position)
        self.db.commit()
        return position

    def instructor(self, name=None, position=None, chair="Software") -> Instructor:
        number = self._next()
        instructor = Instructor(
            name=name or f"Instructor {number}",
            email=f"instructor{number}@example.edu",
            chair=chair,
            position_id=position.id if position is not None else None,
        )
        self.db.add(instructor)
        self.db.commit()
        return instructor

    def course(self, lecture=3.0, lab=0.0, tutorial=0.0, status=CourseStatus.active, code=None) -> Course:
        number = self._next()
        course = Course(
            code=code or f"SE-{number:04d}",
            name=f"Course {number}",
            chair="Software",
            lecture_hours=lecture,
            lab_hours=lab,
            tutorial_hours=tutorial,
            status=status,
        )
        self.db.add(course)
        self.db.commit()
        return course

    def user(self, role=UserRole.head_of_faculty, chair=None) -> User:
        number = self._next()
        user = User(
            name=f"User {number}",
            email=f"user{number}@example.edu",
            hashed_password="not-used",
            role=role,
            chair=chair,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def form(
        self,
        courses,
        period=REGULAR_PERIOD,
        *,
        chair="Software",
        max_preferences=10,
        instructors=None,
        opens=None,
        closes=None,
    ) -> PreferenceForm:
        now = datetime.now(timezone.utc)
        form = PreferenceForm(
            chair=chair,
            year=period.year,
            semester=period.semester,
            program=period.program,
            max_preferences=max_preferences,
            submission_start=opens or now - timedelta(days=1),
            submission_end=closes or now + timedelta(days=7),
            all_instructors=instructors is None,
            instructor_ids=[instructor.id for instructor in instructors or []],
            courses=[
                {"course_id": course.id, "section": "A", "sections": 1, "lab_division": "No"} for course in courses
            ],
        )
        self.db.add(form)
        self.db.commit()
        return form

    def preferences(self, instructor, courses, period=REGULAR_PERIOD, form=None):
        """Submit a ranking on the period's open form, listing the courses on it as needed."""
        if form is None:
            form = self._forms.get(period.key())
            if form is None:
                form = self._forms[period.key()] = self.form(courses, period)
            listed = form.course_ids()
            extra = [course for course in courses if course.id not in listed]
            if extra:
                form.courses = form.courses + [
                    {"course_id": course.id, "section": "A", "sections": 1, "lab_division": "No"} for course in extra
                ]
                self.db.commit()
        return submit_preferences(
            self.db,
            form_id=form.id,
            instructor_id=instructor.id,
            entries=[(course.id, rank) for rank, course in enumerate(courses, start=1)],
        )


@pytest.fixture()
def seed(db_session):
    return Seeder(db_session)


@pytest.fixture()
def login_as(client):
    """Register an account through the API and return its bearer headers."""

    def _login(role: str, *, chair: str | None = None, email: str | None = None) -> dict[str, str]:
        email = email or f"{role}.{chair or 'faculty'}@example.edu".lower()
        payload = {"name": f"{role} user", "email": email, "password": "password123", "role": role}
        if chair:
            payload["chair"] = chair
        response = client.post("/api/auth/register", json=payload)
        assert response.status_code == 201, response.text
        login = client.post("/api/auth/login", json={"email": email, "password": "password123"})
        assert login.status_code == 200, login.text
        return {"Authorization": f"Bearer {login.json()['access_token']}"}

    return _login
