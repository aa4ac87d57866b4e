import os
import sys
from datetime import datetime, timezone

# Override env vars for testing
os.environ["SECRET_KEY"] = "test-secret"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["FLASK_ENV"] = "testing"
os.environ.setdefault("RATELIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("PASS_RESET_TIMEZONE", "America/Los_Angeles")

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from hallpass import app as flask_app, db, School, Grade, Teacher, Student
from hallpass.extensions import limiter


@pytest.fixture
def app():
    """Provide the Flask app instance for tests."""
    flask_app.config.update(
        TESTING=True,
        WTF_CSRF_ENABLED=False,
        SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
        ENV="testing",
        SESSION_COOKIE_SECURE=False,
    )
    limiter.enabled = False
    yield flask_app


@pytest.fixture
def client(app):
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    client = flask_app.test_client()
    yield client
    db.session.remove()
    db.drop_all()
    ctx.pop()


# SQLite pragma event listener for foreign key constraints
from sqlalchemy import event
from sqlalchemy.engine import Engine


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite connections."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


event.listen(Engine, "connect", _enable_sqlite_foreign_keys)


def utc(*args):
    """Aware UTC datetime shorthand for tests."""
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def school(client):
    school = School(name="Lincoln Middle")
    db.session.add(school)
    db.session.commit()
    return school


@pytest.fixture
def grade(school):
    grade = Grade(school_id=school.id, name="7", display_order=7)
    db.session.add(grade)
    db.session.commit()
    return grade


@pytest.fixture
def teacher(school):
    teacher = Teacher(school_id=school.id, email="rivera@lincoln.test", name="Ms. Rivera")
    db.session.add(teacher)
    db.session.commit()
    return teacher


@pytest.fixture
def admin(school):
    admin = Teacher(school_id=school.id, email="office@lincoln.test", name="Principal Okafor", is_admin=True)
    db.session.add(admin)
    db.session.commit()
    return admin


@pytest.fixture
def alice(school, grade):
    student = Student(school_id=school.id, grade_id=grade.id, first_name="Alice", last_name="Nguyen")
    db.session.add(student)
    db.session.commit()
    return student


@pytest.fixture
def bob(school):
    student = Student(school_id=school.id, first_name="Bob", last_name="Park")
    db.session.add(student)
    db.session.commit()
    return student


def login(client, teacher):
    with client.session_transaction() as sess:
        sess['teacher_id'] = teacher.id
