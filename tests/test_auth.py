import json

import pytest

from auth import (
    SessionContext, admin_login, admin_logout, refresh_student, student_login, student_logout
)
from errors import LookupFailure, NotAuthenticated


def test_admin_login_exact_match_only():
    session = {}
    assert admin_login(session, "1234", "12345", "1234", "1234") is None
    assert session == {}
    ctx = admin_login(session, "1234", "1234", "1234", "1234")
    assert ctx.is_admin and session["admin_auth"] == "true"
    admin_logout(session)
    assert not SessionContext.from_session(session).is_admin


def test_require_admin_redirects():
    with pytest.raises(NotAuthenticated) as exc:
        SessionContext().require_admin()
    assert exc.value.redirect_to == "/admin-login"


def test_student_login_stores_snapshot(store):
    session = {}
    ctx = student_login(store, session, " S001 ", "2000-01-01")
    assert ctx.student.name == "John Doe"
    assert json.loads(session["student_auth"])["rollNumber"] == "S001"
    student_logout(session)
    assert SessionContext.from_session(session).student is None


def test_student_login_wrong_dob(store):
    session = {}
    with pytest.raises(LookupFailure):
        student_login(store, session, "S001", "2000-01-02")
    assert "student_auth" not in session


def test_refresh_sees_new_assignments(store):
    session = {}
    ctx = student_login(store, session, "S001", "2000-01-01")
    store.assign_subject("S001", "MATH101")
    assert ctx.student.assigned_subject_codes == []
    assert refresh_student(store, ctx).assigned_subject_codes == ["MATH101"]


def test_refresh_after_deletion(store):
    ctx = student_login(store, {}, "S001", "2000-01-01")
    store.delete_student("S001")
    with pytest.raises(NotAuthenticated):
        refresh_student(store, ctx)
