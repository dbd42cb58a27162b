# exam_session.py
import time

from errors import ExamClosed, LookupFailure, ValidationError
from models import OPTION_COUNT, ExamAttempt, grade_status

UNINITIALIZED = "uninitialized"
LOADING = "loading"
IN_PROGRESS = "in_progress"
SUBMITTED = "submitted"

WARNING_AT_SECONDS = 300


def clock():
    return time.time()


def grade(questions, answers):
    """Return (score, total_marks, status). A null answer never matches."""
    score = 0
    for i, q in enumerate(questions):
        if i < len(answers) and answers[i] is not None and answers[i] == q.correct_answer:
            score += 1
    total = len(questions)
    return score, total, grade_status(score, total)


def exam_status(attempt):
    """Dashboard label for one assigned subject."""
    if attempt is None:
        return {"label": "Not Started", "canStart": True}
    if not attempt.completed:
        return {"label": "In Progress", "canStart": True}
    if not attempt.is_published:
        return {"label": "Pending Evaluation", "canStart": False}
    return {"label": "Result Published", "canStart": False, "result": attempt.to_dict()}


class ExamSession:
    """
    One student's attempt at one subject.

    Uninitialized -> Loading -> InProgress -> Submitted. The countdown is
    cooperative: something outside calls tick() once per second (or advance()
    with the elapsed seconds) and the session submits itself at zero.
    """

    def __init__(self):
        self.state = UNINITIALIZED
        self.subject = None
        self.student_roll = None
        self.answers = []
        self.current_index = 0
        self.remaining = 0
        self.start_time = 0
        self.last_sync = 0.0
        self.warning_shown = False
        self.warning_visible = False
        self.guards_engaged = False
        self.result = None

    @classmethod
    def open(cls, store, ctx, subject_code, now=None):
        """Run the loading guards and begin the exam, persisting a draft attempt."""
        session = cls()
        session.state = LOADING
        student = ctx.require_student()

        existing = store.find_attempt(student.roll_number, subject_code)
        if existing is not None and existing.completed:
            raise ExamClosed("Exam already submitted.", redirect_to="/student-dashboard")

        subject = store.find_subject(subject_code)
        if subject is None:
            raise LookupFailure("Exam not found.", redirect_to="/student-dashboard")

        now = clock() if now is None else now
        session.subject = subject
        session.student_roll = student.roll_number
        session.answers = [None] * len(subject.questions)
        session.remaining = subject.duration * 60
        session.start_time = int(now * 1000)
        session.last_sync = now
        session.state = IN_PROGRESS
        session.guards_engaged = True

        store.save_attempt(ExamAttempt(student_roll=session.student_roll, subject_code=subject.code,
                                       answers=list(session.answers), start_time=session.start_time,
                                       completed=False, is_published=False))
        return session

    # ----------------- answering / navigation -----------------
    def _require_open(self):
        if self.state != IN_PROGRESS:
            raise ExamClosed("This exam has already been submitted.")

    @property
    def question_count(self):
        return len(self.subject.questions) if self.subject else 0

    def select(self, option, index=None):
        self._require_open()
        idx = self.current_index if index is None else index
        if not 0 <= idx < self.question_count:
            raise ValidationError("No such question.")
        if option not in range(OPTION_COUNT):
            raise ValidationError("Option must be one of A-D.")
        self.answers[idx] = option

    def jump(self, index):
        self._require_open()
        self.current_index = max(0, min(index, self.question_count - 1))

    def next(self):
        self.jump(self.current_index + 1)

    def previous(self):
        self.jump(self.current_index - 1)

    @property
    def answered(self):
        return sum(1 for a in self.answers if a is not None)

    # ----------------- timer -----------------
    def tick(self, store):
        if self.state != IN_PROGRESS:
            return
        self.remaining -= 1
        if self.remaining <= WARNING_AT_SECONDS and not self.warning_shown:
            self.warning_shown = True
            self.warning_visible = True
        if self.remaining <= 0:
            self.remaining = 0
            self.submit(store)

    def advance(self, store, seconds):
        for _ in range(int(seconds)):
            if self.state != IN_PROGRESS:
                break
            self.tick(store)

    def sync(self, store, now=None):
        """Apply the whole seconds of wall-clock time since the last sync."""
        now = clock() if now is None else now
        elapsed = int(now - self.last_sync)
        if elapsed > 0:
            self.last_sync += elapsed
            self.advance(store, elapsed)

    def dismiss_warning(self):
        self.warning_visible = False

    # ----------------- submission -----------------
    def submit(self, store):
        self._require_open()
        score, total, status = grade(self.subject.questions, self.answers)
        attempt = ExamAttempt(student_roll=self.student_roll, subject_code=self.subject.code,
                              answers=list(self.answers), start_time=self.start_time,
                              completed=True, score=score, total_marks=total,
                              status=status, is_published=False)
        store.save_attempt(attempt)
        self.state = SUBMITTED
        self.guards_engaged = False
        self.warning_visible = False
        self.result = attempt
        return attempt

    # ----------------- (de)serialization for the session cookie -----------------
    def to_dict(self):
        return {
            "state": self.state,
            "subjectCode": self.subject.code if self.subject else None,
            "studentRoll": self.student_roll,
            "answers": list(self.answers),
            "currentIndex": self.current_index,
            "remaining": self.remaining,
            "startTime": self.start_time,
            "lastSync": self.last_sync,
            "warningShown": self.warning_shown,
            "warningVisible": self.warning_visible,
        }

    @classmethod
    def from_dict(cls, d, subject):
        session = cls()
        session.state = d["state"]
        session.subject = subject
        session.student_roll = d["studentRoll"]
        session.answers = list(d["answers"])
        session.current_index = d.get("currentIndex", 0)
        session.remaining = d["remaining"]
        session.start_time = d["startTime"]
        session.last_sync = d["lastSync"]
        session.warning_shown = d.get("warningShown", False)
        session.warning_visible = d.get("warningVisible", False)
        session.guards_engaged = session.state == IN_PROGRESS
        return session

    def view(self):
        """What the exam page needs to draw the current state."""
        q = self.subject.questions[self.current_index]
        return {
            "subject": {"code": self.subject.code, "name": self.subject.name},
            "state": self.state,
            "currentIndex": self.current_index,
            "question": {"text": q.text, "options": list(q.options)},
            "answers": list(self.answers),
            "answered": self.answered,
            "total": self.question_count,
            "remaining": self.remaining,
            "showWarning": self.warning_visible,
            "guardsEngaged": self.guards_engaged,
        }
