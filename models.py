# models.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

OPTION_COUNT = 4
QUESTIONS_PER_SUBJECT = 20
PASS_RATIO = 0.4


class StoreRecord(db.Model):
    """One serialized SystemData snapshot under a fixed key."""
    key = db.Column(db.String(100), primary_key=True)
    payload = db.Column(db.Text, nullable=False)
    version = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


@dataclass
class Question:
    id: str
    text: str
    options: List[str]
    correct_answer: int = 0

    def to_dict(self):
        return {
            "id": self.id,
            "text": self.text,
            "options": list(self.options),
            "correctAnswer": self.correct_answer,
        }

    @classmethod
    def from_dict(cls, d):
        return cls(id=d["id"], text=d["text"], options=list(d["options"]),
                   correct_answer=int(d.get("correctAnswer", 0)))


@dataclass
class Subject:
    id: str
    name: str
    code: str
    duration: int
    questions: List[Question] = field(default_factory=list)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "duration": self.duration,
            "questions": [q.to_dict() for q in self.questions],
        }

    @classmethod
    def from_dict(cls, d):
        return cls(id=d["id"], name=d["name"], code=d["code"], duration=int(d["duration"]),
                   questions=[Question.from_dict(q) for q in d.get("questions", [])])


@dataclass
class Student:
    id: str
    name: str
    dob: str
    roll_number: str
    profile_photo: str = ""
    assigned_subject_codes: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "dob": self.dob,
            "rollNumber": self.roll_number,
            "profilePhoto": self.profile_photo,
            "assignedSubjectCodes": list(self.assigned_subject_codes),
        }

    @classmethod
    def from_dict(cls, d):
        return cls(id=d["id"], name=d["name"], dob=d["dob"], roll_number=d["rollNumber"],
                   profile_photo=d.get("profilePhoto", ""),
                   assigned_subject_codes=list(d.get("assignedSubjectCodes", [])))


@dataclass
class ExamAttempt:
    student_roll: str
    subject_code: str
    answers: List[Optional[int]]
    start_time: int
    completed: bool = False
    score: Optional[int] = None
    total_marks: Optional[int] = None
    status: Optional[str] = None   # 'Pass'/'Fail'
    is_published: bool = False
    admin_comments: Optional[str] = None

    @property
    def key(self):
        return (self.student_roll, self.subject_code)

    def to_dict(self):
        d = {
            "studentRoll": self.student_roll,
            "subjectCode": self.subject_code,
            "answers": list(self.answers),
            "startTime": self.start_time,
            "completed": self.completed,
            "isPublished": self.is_published,
        }
        # optional fields are omitted until they carry a value
        if self.score is not None:
            d["score"] = self.score
        if self.total_marks is not None:
            d["totalMarks"] = self.total_marks
        if self.status is not None:
            d["status"] = self.status
        if self.admin_comments is not None:
            d["adminComments"] = self.admin_comments
        return d

    @classmethod
    def from_dict(cls, d):
        return cls(student_roll=d["studentRoll"], subject_code=d["subjectCode"],
                   answers=list(d.get("answers", [])), start_time=int(d.get("startTime", 0)),
                   completed=bool(d.get("completed", False)), score=d.get("score"),
                   total_marks=d.get("totalMarks"), status=d.get("status"),
                   is_published=bool(d.get("isPublished", False)),
                   admin_comments=d.get("adminComments"))


@dataclass
class SystemData:
    students: List[Student] = field(default_factory=list)
    subjects: List[Subject] = field(default_factory=list)
    attempts: List[ExamAttempt] = field(default_factory=list)

    def to_dict(self):
        return {
            "students": [s.to_dict() for s in self.students],
            "subjects": [s.to_dict() for s in self.subjects],
            "attempts": [a.to_dict() for a in self.attempts],
        }

    @classmethod
    def from_dict(cls, d):
        return cls(students=[Student.from_dict(s) for s in d.get("students", [])],
                   subjects=[Subject.from_dict(s) for s in d.get("subjects", [])],
                   attempts=[ExamAttempt.from_dict(a) for a in d.get("attempts", [])])


def default_photo(roll_number):
    return f"https://picsum.photos/seed/{roll_number}/200"


def initial_data():
    return SystemData(students=[
        Student(id="1", name="John Doe", dob="2000-01-01", roll_number="S001",
                profile_photo=default_photo("john"), assigned_subject_codes=[])
    ])


def grade_status(score, total_marks):
    """Pass iff score reaches 40% of total marks."""
    return "Pass" if score >= total_marks * PASS_RATIO else "Fail"
