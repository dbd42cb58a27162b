# store.py
import json

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from errors import ConcurrentUpdateError, LookupFailure
from models import db, StoreRecord, SystemData, initial_data

DEFAULT_KEY = "eduquest_data"


class Store:
    """
    Repository over the single SystemData blob.

    Every mutation is read-modify-write: load the snapshot with its version,
    change it in memory, then write it back only if the version is unchanged.
    A lost race re-runs the mutation against the fresh snapshot.
    """

    def __init__(self, key=DEFAULT_KEY, max_retries=3):
        self.key = key
        self.max_retries = max_retries

    # ----------------- snapshot -----------------
    def _read(self):
        row = db.session.execute(
            select(StoreRecord.payload, StoreRecord.version).where(StoreRecord.key == self.key)
        ).first()
        if row is None:
            return initial_data(), None
        return SystemData.from_dict(json.loads(row.payload)), row.version

    def load(self) -> SystemData:
        data, _ = self._read()
        return data

    def save(self, data: SystemData):
        payload = json.dumps(data.to_dict())
        rec = db.session.get(StoreRecord, self.key)
        if rec is None:
            db.session.add(StoreRecord(key=self.key, payload=payload, version=1))
        else:
            rec.payload = payload
            rec.version = rec.version + 1
        db.session.commit()

    def _write_if_unchanged(self, data, version):
        payload = json.dumps(data.to_dict())
        if version is None:
            db.session.add(StoreRecord(key=self.key, payload=payload, version=1))
            try:
                db.session.commit()
            except IntegrityError:
                db.session.rollback()
                return False
            return True
        result = db.session.execute(
            update(StoreRecord)
            .where(StoreRecord.key == self.key, StoreRecord.version == version)
            .values(payload=payload, version=version + 1)
        )
        db.session.commit()
        return result.rowcount == 1

    def _mutate(self, fn):
        for attempt in range(self.max_retries + 1):
            data, version = self._read()
            result = fn(data)
            if self._write_if_unchanged(data, version):
                return result
            current_app.logger.warning(
                "store %s changed underneath (version %s), retry %d", self.key, version, attempt + 1)
        raise ConcurrentUpdateError("The data changed while saving. Please try again.")

    # ----------------- authoring draft -----------------
    # kept in its own row so a half-built subject never enters the snapshot
    @property
    def draft_key(self):
        return f"{self.key}:draft"

    def load_draft(self):
        rec = db.session.get(StoreRecord, self.draft_key)
        return json.loads(rec.payload) if rec is not None else None

    def save_draft(self, draft):
        rec = db.session.get(StoreRecord, self.draft_key)
        if rec is None:
            db.session.add(StoreRecord(key=self.draft_key, payload=json.dumps(draft), version=1))
        else:
            rec.payload = json.dumps(draft)
            rec.version = rec.version + 1
        db.session.commit()

    def clear_draft(self):
        rec = db.session.get(StoreRecord, self.draft_key)
        if rec is not None:
            db.session.delete(rec)
            db.session.commit()

    # ----------------- students -----------------
    def add_student(self, student):
        def apply(data):
            data.students.append(student)
        self._mutate(apply)

    def update_student(self, student):
        def apply(data):
            for idx, s in enumerate(data.students):
                if s.roll_number == student.roll_number:
                    data.students[idx] = student
                    return True
            return False
        return self._mutate(apply)

    def delete_student(self, roll_number):
        def apply(data):
            data.students = [s for s in data.students if s.roll_number != roll_number]
        self._mutate(apply)

    def find_student(self, roll_number):
        return next((s for s in self.load().students if s.roll_number == roll_number), None)

    def find_student_by_credentials(self, roll_number, dob):
        return next((s for s in self.load().students
                     if s.roll_number == roll_number and s.dob == dob), None)

    def assign_subject(self, roll_number, code):
        """Append code to the student's assignments. Returns False if it was already there."""
        def apply(data):
            student = next((s for s in data.students if s.roll_number == roll_number), None)
            if student is None:
                raise LookupFailure("Roll number not found.")
            if code in student.assigned_subject_codes:
                return False
            student.assigned_subject_codes.append(code)
            return True
        return self._mutate(apply)

    def unassign_subject(self, roll_number, code):
        def apply(data):
            student = next((s for s in data.students if s.roll_number == roll_number), None)
            if student is None:
                raise LookupFailure("Roll number not found.")
            student.assigned_subject_codes = [c for c in student.assigned_subject_codes if c != code]
        self._mutate(apply)

    # ----------------- subjects -----------------
    def add_subject(self, subject, assign_roll=None):
        """
        Commit a fully authored subject. When assign_roll resolves to a student
        the code is appended to that student in the same write; an unknown roll
        is ignored.
        """
        def apply(data):
            data.subjects.append(subject)
            if assign_roll:
                student = next((s for s in data.students if s.roll_number == assign_roll), None)
                if student is not None and subject.code not in student.assigned_subject_codes:
                    student.assigned_subject_codes.append(subject.code)
        self._mutate(apply)
        current_app.logger.info("subject %s committed with %d questions", subject.code, len(subject.questions))

    def delete_subject(self, code):
        def apply(data):
            data.subjects = [s for s in data.subjects if s.code != code]
        self._mutate(apply)

    def find_subject(self, code):
        return next((s for s in self.load().subjects if s.code == code), None)

    # ----------------- attempts -----------------
    def save_attempt(self, attempt):
        def apply(data):
            for idx, a in enumerate(data.attempts):
                if a.key == attempt.key:
                    data.attempts[idx] = attempt
                    return
            data.attempts.append(attempt)
        self._mutate(apply)

    def publish_attempt(self, roll_number, code, score, status, comments=None):
        def apply(data):
            for a in data.attempts:
                if a.key == (roll_number, code):
                    a.score = score
                    a.status = status
                    a.is_published = True
                    if comments is not None:
                        a.admin_comments = comments
                    return True
            return False
        return self._mutate(apply)

    def find_attempt(self, roll_number, code):
        return next((a for a in self.load().attempts if a.key == (roll_number, code)), None)

    def attempts_for(self, roll_number):
        return [a for a in self.load().attempts if a.student_roll == roll_number]

    def completed_attempts(self):
        return [a for a in self.load().attempts if a.completed]

    def get_student_results(self, roll_number, dob):
        """Published results for a student, or None if (roll, dob) matches nobody."""
        data = self.load()
        student = next((s for s in data.students
                        if s.roll_number == roll_number and s.dob == dob), None)
        if student is None:
            return None
        return [a for a in data.attempts
                if a.student_roll == roll_number and a.completed and a.is_published]
