import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app import create_app, get_store
from auth import SessionContext
from models import Question, Subject


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "STUDENTS_XLSX": str(tmp_path / "students.xlsx"),
    })
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return get_store()


def make_subject(code="MATH101", duration=60, correct=0, count=20):
    questions = [
        Question(id=f"q-{i}", text=f"Question {i + 1}", options=["a", "b", "c", "d"],
                 correct_answer=correct)
        for i in range(count)
    ]
    return Subject(id=f"sub-{code}", name="Mathematics", code=code, duration=duration,
                   questions=questions)


@pytest.fixture
def subject(store):
    sub = make_subject()
    store.add_subject(sub, assign_roll="S001")
    return sub


@pytest.fixture
def student_ctx(store):
    return SessionContext(student=store.find_student("S001"))


def login_admin(client):
    return client.post("/admin-login", data={"username": "1234", "password": "1234"})


def login_student(client, roll="S001", dob="2000-01-01"):
    return client.post("/student-login", data={"rollNumber": roll, "dob": dob})
