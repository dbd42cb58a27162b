# evaluation.py
from flask import current_app

from errors import LookupFailure, ValidationError
from models import grade_status


def list_completed(store):
    names = {s.roll_number: s.name for s in store.load().students}
    results = []
    for a in store.completed_attempts():
        row = a.to_dict()
        # orphaned attempts keep their roll but lose the name
        row["studentName"] = names.get(a.student_roll)
        results.append(row)
    return results


def review(store, roll_number, code):
    """Question-by-question comparison of a completed attempt against the key."""
    attempt = store.find_attempt(roll_number, code)
    if attempt is None or not attempt.completed:
        raise LookupFailure("Attempt not found")
    subject = store.find_subject(code)
    detailed = []
    for idx, q in enumerate(subject.questions if subject else []):
        selected = attempt.answers[idx] if idx < len(attempt.answers) else None
        detailed.append({
            "qno": idx + 1,
            "question": q.text,
            "selected": selected,
            "selectedText": q.options[selected] if selected is not None else "No Answer",
            "correct": q.correct_answer,
            "correctText": q.options[q.correct_answer],
            "isCorrect": selected is not None and selected == q.correct_answer,
        })
    return {
        "attempt": attempt.to_dict(),
        "detailed": detailed,
        "evalScore": attempt.score or 0,
        "maxScore": attempt.total_marks,
    }


def _parse_score(value):
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError("Score must be a whole number.")


def publish(store, roll_number, code, score, comments=None):
    """
    Publish a completed attempt with a possibly overridden score. Status is
    recomputed from the score. Publishing an attempt that does not exist does
    nothing and returns None.
    """
    score = _parse_score(score)
    attempt = store.find_attempt(roll_number, code)
    if attempt is None:
        return None
    if not attempt.completed:
        raise ValidationError("Only submitted exams can be published.")
    total = attempt.total_marks
    if score > total:
        raise ValidationError(f"Score cannot exceed {total}.")
    status = grade_status(score, total)
    store.publish_attempt(roll_number, code, score, status, comments=comments)
    current_app.logger.info("published %s/%s: %d/%d %s", roll_number, code, score, total, status)
    return status
