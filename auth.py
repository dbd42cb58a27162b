# auth.py
import json

from errors import LookupFailure, NotAuthenticated
from models import Student

ADMIN_KEY = "admin_auth"
STUDENT_KEY = "student_auth"


class SessionContext:
    """Who is logged in for this request. Built once from the session and passed on."""

    def __init__(self, is_admin=False, student=None):
        self.is_admin = is_admin
        self.student = student

    @classmethod
    def from_session(cls, session):
        student = None
        raw = session.get(STUDENT_KEY)
        if raw:
            student = Student.from_dict(json.loads(raw))
        return cls(is_admin=session.get(ADMIN_KEY) == "true", student=student)

    def require_admin(self):
        if not self.is_admin:
            raise NotAuthenticated("Admin login required", redirect_to="/admin-login")

    def require_student(self):
        if self.student is None:
            raise NotAuthenticated("Student login required", redirect_to="/student-login")
        return self.student


def admin_login(session, username, password, expected_username, expected_password):
    if username == expected_username and password == expected_password:
        session[ADMIN_KEY] = "true"
        return SessionContext.from_session(session)
    return None


def admin_logout(session):
    session.pop(ADMIN_KEY, None)


def student_login(store, session, roll_number, dob):
    roll_number = str(roll_number or "").strip()
    dob = str(dob or "").strip()
    student = store.find_student_by_credentials(roll_number, dob)
    if student is None:
        raise LookupFailure("No student found with these credentials. Contact Admin.")
    # snapshot; the dashboard re-reads assignments from the store
    session[STUDENT_KEY] = json.dumps(student.to_dict())
    return SessionContext.from_session(session)


def student_logout(session):
    session.pop(STUDENT_KEY, None)


def refresh_student(store, ctx):
    """Re-fetch the logged-in student so assignment data is current."""
    cached = ctx.require_student()
    current = store.find_student(cached.roll_number)
    if current is None:
        raise NotAuthenticated("Student no longer exists", redirect_to="/student-login")
    return current
