# authoring.py
import uuid

from errors import ValidationError
from models import OPTION_COUNT, QUESTIONS_PER_SUBJECT, Question, Subject

METADATA = "metadata"
QUESTIONS = "questions"
DEFAULT_DURATION = 60


def _parse_duration(value):
    if value is None or str(value).strip() == "":
        return DEFAULT_DURATION
    try:
        minutes = int(str(value).strip())
    except ValueError:
        raise ValidationError("Duration must be a whole number of minutes.")
    if minutes <= 0:
        raise ValidationError("Duration must be a whole number of minutes.")
    return minutes


def _parse_correct_answer(value):
    if value is None or str(value).strip() == "":
        return 0
    try:
        idx = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Correct answer must be one of options A-D.")
    if not 0 <= idx < OPTION_COUNT:
        raise ValidationError("Correct answer must be one of options A-D.")
    return idx


class AuthoringWizard:
    """
    Two-step subject builder: metadata first, then exactly 20 questions.
    Nothing reaches the store until the 20th question is accepted.
    """

    def __init__(self):
        self._reset()

    def _reset(self):
        self.state = METADATA
        self.name = ""
        self.code = ""
        self.duration = DEFAULT_DURATION
        self.assign_roll = ""
        self.questions = []

    @property
    def remaining(self):
        return QUESTIONS_PER_SUBJECT - len(self.questions)

    def start(self, store, name, code, duration=None, assign_roll=None):
        name = (name or "").strip()
        code = (code or "").strip()
        if not name or not code:
            raise ValidationError("Subject name and code are required.")
        minutes = _parse_duration(duration)
        if store.find_subject(code) is not None:
            raise ValidationError("Subject code already exists.")
        self.name = name
        self.code = code
        self.duration = minutes
        self.assign_roll = (assign_roll or "").strip()
        self.questions = []
        self.state = QUESTIONS

    def add_question(self, store, text, options, correct_answer=None):
        """Accept one question; on the 20th, commit and return the new Subject."""
        if self.state != QUESTIONS:
            raise ValidationError("Enter the subject details first.")
        text = (text or "").strip()
        options = [str(o or "").strip() for o in (options or [])]
        if not text or len(options) != OPTION_COUNT or any(o == "" for o in options):
            raise ValidationError("Please fill all fields for the question.")
        answer = _parse_correct_answer(correct_answer)

        self.questions.append(Question(id=f"q-{uuid.uuid4().hex}", text=text,
                                       options=options, correct_answer=answer))
        if len(self.questions) < QUESTIONS_PER_SUBJECT:
            return None

        subject = Subject(id=uuid.uuid4().hex, name=self.name, code=self.code,
                          duration=self.duration, questions=list(self.questions))
        store.add_subject(subject, assign_roll=self.assign_roll or None)
        self._reset()
        return subject

    def cancel(self):
        self._reset()

    def to_dict(self):
        return {
            "state": self.state,
            "name": self.name,
            "code": self.code,
            "duration": self.duration,
            "assignRoll": self.assign_roll,
            "questions": [q.to_dict() for q in self.questions],
        }

    @classmethod
    def from_dict(cls, d):
        w = cls()
        if not d:
            return w
        w.state = d.get("state", METADATA)
        w.name = d.get("name", "")
        w.code = d.get("code", "")
        w.duration = d.get("duration", DEFAULT_DURATION)
        w.assign_roll = d.get("assignRoll", "")
        w.questions = [Question.from_dict(q) for q in d.get("questions", [])]
        return w
