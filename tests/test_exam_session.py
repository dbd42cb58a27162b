import pytest

from auth import SessionContext
from conftest import make_subject
from errors import ExamClosed, LookupFailure, NotAuthenticated, ValidationError
from exam_session import IN_PROGRESS, SUBMITTED, ExamSession, exam_status, grade
from models import ExamAttempt


def test_open_requires_student(store, subject):
    with pytest.raises(NotAuthenticated) as exc:
        ExamSession.open(store, SessionContext(), "MATH101")
    assert exc.value.redirect_to == "/student-login"


def test_open_unknown_subject_redirects_to_dashboard(store, student_ctx):
    with pytest.raises(LookupFailure) as exc:
        ExamSession.open(store, student_ctx, "NOPE")
    assert exc.value.redirect_to == "/student-dashboard"


def test_open_refuses_completed_attempt(store, subject, student_ctx):
    store.save_attempt(ExamAttempt(student_roll="S001", subject_code="MATH101", answers=[None] * 20,
                                   start_time=1, completed=True, score=0, total_marks=20, status="Fail"))
    with pytest.raises(ExamClosed) as exc:
        ExamSession.open(store, student_ctx, "MATH101")
    assert exc.value.msg == "Exam already submitted."
    assert exc.value.redirect_to == "/student-dashboard"


def test_open_persists_draft_attempt(store, subject, student_ctx):
    session = ExamSession.open(store, student_ctx, "MATH101", now=1000.0)
    assert session.state == IN_PROGRESS
    assert session.remaining == 60 * 60
    assert session.answers == [None] * 20
    assert session.guards_engaged
    draft = store.find_attempt("S001", "MATH101")
    assert draft.completed is False and draft.is_published is False
    assert draft.answers == [None] * 20
    assert draft.start_time == 1000000


def test_reopening_overwrites_draft(store, subject, student_ctx):
    ExamSession.open(store, student_ctx, "MATH101", now=1.0)
    ExamSession.open(store, student_ctx, "MATH101", now=2.0)
    attempts = [a for a in store.load().attempts if a.key == ("S001", "MATH101")]
    assert len(attempts) == 1
    assert attempts[0].start_time == 2000


def test_navigation_is_clamped_and_free(store, subject, student_ctx):
    session = ExamSession.open(store, student_ctx, "MATH101")
    session.previous()
    assert session.current_index == 0
    session.jump(19)
    session.next()
    assert session.current_index == 19
    session.jump(5)
    assert session.current_index == 5
    session.jump(-3)
    assert session.current_index == 0


def test_select_overwrites_and_validates(store, subject, student_ctx):
    session = ExamSession.open(store, student_ctx, "MATH101")
    session.select(1)
    session.select(3)
    session.select(2, index=7)
    assert session.answers[0] == 3
    assert session.answers[7] == 2
    assert session.answered == 2
    with pytest.raises(ValidationError):
        session.select(4)
    with pytest.raises(ValidationError):
        session.select(0, index=20)


def test_grade_counts_exact_matches_only():
    sub = make_subject(count=5, correct=0)
    sub.questions[4].correct_answer = 2
    assert grade(sub.questions, [0, None, 1, 0, 2]) == (3, 5, "Pass")
    assert grade(sub.questions, [None] * 5) == (0, 5, "Fail")
    assert grade(sub.questions, [1, None, None, None, None]) == (0, 5, "Fail")


def test_twelve_of_twenty_passes(store, subject, student_ctx):
    session = ExamSession.open(store, student_ctx, "MATH101")
    for i in range(12):
        session.select(0, index=i)
    attempt = session.submit(store)
    assert (attempt.score, attempt.total_marks, attempt.status) == (12, 20, "Pass")
    saved = store.find_attempt("S001", "MATH101")
    assert saved.completed and not saved.is_published
    assert saved.answers[:12] == [0] * 12 and saved.answers[12:] == [None] * 8


def test_submitted_session_is_closed(store, subject, student_ctx):
    session = ExamSession.open(store, student_ctx, "MATH101")
    session.submit(store)
    assert session.state == SUBMITTED
    assert not session.guards_engaged
    with pytest.raises(ExamClosed):
        session.select(0)
    with pytest.raises(ExamClosed):
        session.submit(store)


def test_warning_fires_once_at_five_minutes(store, student_ctx):
    store.add_subject(make_subject(code="SHORT", duration=6), assign_roll="S001")
    session = ExamSession.open(store, student_ctx, "SHORT")
    session.advance(store, 59)
    assert session.remaining == 301
    assert not session.warning_shown
    session.tick(store)
    assert session.remaining == 300
    assert session.warning_visible
    session.dismiss_warning()
    session.advance(store, 10)
    assert session.warning_shown and not session.warning_visible


def test_timer_expiry_submits_current_answers(store, student_ctx):
    store.add_subject(make_subject(code="QUICK", duration=1), assign_roll="S001")
    session = ExamSession.open(store, student_ctx, "QUICK")
    session.select(0, index=0)
    session.advance(store, 59)
    assert session.state == IN_PROGRESS
    session.tick(store)
    assert session.state == SUBMITTED
    assert session.remaining == 0
    saved = store.find_attempt("S001", "QUICK")
    assert saved.completed and saved.score == 1
    # extra ticks after expiry change nothing
    session.advance(store, 5)
    assert session.remaining == 0


def test_timer_expiry_with_no_answers_scores_zero(store, student_ctx):
    store.add_subject(make_subject(code="QUICK", duration=1), assign_roll="S001")
    session = ExamSession.open(store, student_ctx, "QUICK")
    session.advance(store, 120)
    saved = store.find_attempt("S001", "QUICK")
    assert (saved.score, saved.status) == (0, "Fail")


def test_sync_applies_whole_elapsed_seconds(store, subject, student_ctx):
    session = ExamSession.open(store, student_ctx, "MATH101", now=100.0)
    session.sync(store, now=110.7)
    assert session.remaining == 3600 - 10
    session.sync(store, now=111.2)
    assert session.remaining == 3600 - 11


def test_session_round_trips_through_dict(store, subject, student_ctx):
    session = ExamSession.open(store, student_ctx, "MATH101", now=50.0)
    session.select(2, index=3)
    session.jump(3)
    restored = ExamSession.from_dict(session.to_dict(), subject)
    assert restored.answers[3] == 2
    assert restored.current_index == 3
    assert restored.view()["question"]["text"] == "Question 4"


def test_exam_status_labels():
    assert exam_status(None) == {"label": "Not Started", "canStart": True}
    draft = ExamAttempt(student_roll="S001", subject_code="X", answers=[], start_time=0)
    assert exam_status(draft)["label"] == "In Progress"
    draft.completed = True
    assert exam_status(draft) == {"label": "Pending Evaluation", "canStart": False}
    draft.is_published = True
    assert exam_status(draft)["label"] == "Result Published"
