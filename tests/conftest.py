import os
import sys
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
os.environ.setdefault("REVIEW_DATABASE_URL", "sqlite:///:memory:")

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import Base, enable_sqlite_transactions, get_db
from app.dependencies import get_notifier
from app.main import app
from app.models import (
    Project,
    ProjectTemplate,
    Skill,
    Submission,
    SubmissionStatus,
    TemplateSkill,
    User,
    UserRole,
)

# Use in-memory SQLite for testing to ensure isolation
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_transactions(engine)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

RUBRIC = {
    "criteria": [
        {"id": "code-quality", "name": "Code Quality", "maxPoints": 25},
        {"id": "documentation", "name": "Documentation", "maxPoints": 25},
        {"name": "Creativity"},
    ],
    "totalPoints": 150,
}


class RecordingNotifier:
    def __init__(self):
        self.skills = []
        self.approvals = []

    def notify_skill_earned(self, student_id, skill_name):
        self.skills.append((student_id, skill_name))

    def notify_approval(self, student_id, project_name):
        self.approvals.append((student_id, project_name))


class FailingNotifier:
    def __init__(self):
        self.calls = 0

    def notify_skill_earned(self, student_id, skill_name):
        self.calls += 1
        raise RuntimeError("sms gateway down")

    def notify_approval(self, student_id, project_name):
        self.calls += 1
        raise TimeoutError("sms gateway timed out")


@pytest.fixture(scope="function")
def session():
    """
    Create a fresh database session for each test.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return FailingNotifier()


@pytest.fixture(scope="function")
def client(session, notifier):
    """
    Create a TestClient that uses the override_get_db dependency.
    """
    def override_get_db():
        try:
            yield session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _user(session, username, role, phone_number=None):
    user = User(
        username=username,
        password_hash="unused",
        role=role,
        name=username.title(),
        phone_number=phone_number,
    )
    session.add(user)
    return user


@pytest.fixture
def world(session):
    """教师、学生、家长、两个技能、带评分标准与技能映射的模板及项目。"""

    teacher = _user(session, "teacher", UserRole.TEACHER)
    admin = _user(session, "admin", UserRole.SCHOOL_ADMIN)
    student = _user(session, "student", UserRole.STUDENT, phone_number="+15550001111")
    other_student = _user(session, "other", UserRole.STUDENT)
    parent = _user(session, "parent", UserRole.PARENT)

    python = Skill(name="Python", category="technical")
    teamwork = Skill(name="Teamwork", category="soft")
    session.add_all([python, teamwork])
    session.flush()

    template = ProjectTemplate(title="Web App", rubric_json=RUBRIC)
    template.skills = [
        TemplateSkill(skill_id=python.id, required_level=3),
        TemplateSkill(skill_id=teamwork.id),
    ]
    bare_template = ProjectTemplate(title="Free Form")
    session.add_all([template, bare_template])
    session.flush()

    project = Project(name="Weather Dashboard", template_id=template.id)
    bare_project = Project(name="Essay", template_id=bare_template.id)
    session.add_all([project, bare_project])
    session.commit()

    return SimpleNamespace(
        teacher=teacher,
        admin=admin,
        student=student,
        other_student=other_student,
        parent=parent,
        python=python,
        teamwork=teamwork,
        template=template,
        project=project,
        bare_project=bare_project,
    )


@pytest.fixture
def make_submission(session, world):
    def _make(status=SubmissionStatus.SUBMITTED, project=None, student=None, **fields):
        submission = Submission(
            project_id=(project or world.project).id,
            student_id=(student or world.student).id,
            status=status,
            submitted_data={"repo": "https://example.com/repo"},
            submitted_at=datetime.now(timezone.utc),
            **fields,
        )
        session.add(submission)
        session.commit()
        return submission

    return _make
