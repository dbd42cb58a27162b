# excel_io.py
import os
import uuid
from datetime import datetime, timezone

import pandas as pd
from flask import current_app
from openpyxl.utils import get_column_letter

from models import Student, default_photo

OPTION_LETTERS = "ABCD"


def _cell(row, *names, numeric=False):
    """
    First non-blank value among the given columns, as a trimmed string.
    With numeric set, a float rendering such as "1002.0" is cut back to "1002".
    """
    for name in names:
        if name not in row:
            continue
        value = row[name]
        if pd.isna(value):
            continue
        if hasattr(value, "strftime"):
            return value.strftime("%Y-%m-%d")
        text = str(value).strip()
        # numeric cells come back as floats
        if numeric and text.endswith(".0"):
            text = text[:-2]
        if text and text.lower() != "nan":
            return text
    return ""


def import_students_from_excel(store, path):
    """
    Add or update students from a sheet with roll_no, name, dob and an
    optional photo column. Returns (added, updated).
    """
    if isinstance(path, (str, os.PathLike)) and not os.path.exists(path):
        current_app.logger.info("%s not found; skipping import.", path)
        return 0, 0

    df = pd.read_excel(path)
    df.columns = df.columns.astype(str).str.strip()

    added = updated = 0
    for idx, row in df.iterrows():
        roll = _cell(row, "roll_no", "rollNumber", numeric=True)
        name = _cell(row, "name")
        dob = _cell(row, "dob", numeric=True)
        photo = _cell(row, "photo", "profilePhoto")

        if not roll or not dob:
            current_app.logger.warning("row %s: missing roll_no or dob, skipped", idx)
            continue

        existing = store.find_student(roll)
        if existing is None:
            store.add_student(Student(id=uuid.uuid4().hex, name=name, dob=dob, roll_number=roll,
                                      profile_photo=photo or default_photo(roll),
                                      assigned_subject_codes=[]))
            added += 1
        else:
            existing.name = name or existing.name
            existing.dob = dob
            if photo:
                existing.profile_photo = photo
            store.update_student(existing)
            updated += 1

    current_app.logger.info("students imported: %d added, %d updated", added, updated)
    return added, updated


def _letter(answer):
    return OPTION_LETTERS[answer] if answer is not None else ""


def export_results_to_excel(store, target):
    """
    Write every completed attempt to the 'answers' sheet of target (a path or
    a binary buffer). Other sheets of an existing workbook are kept.
    """
    names = {s.roll_number: s.name for s in store.load().students}
    rows = []
    for a in store.completed_attempts():
        row = {
            "roll_no": a.student_roll,
            "name": names.get(a.student_roll, ""),
            "subject_code": a.subject_code,
            "started_at": datetime.fromtimestamp(a.start_time / 1000, tz=timezone.utc).replace(tzinfo=None),
            "score": a.score,
            "total_marks": a.total_marks,
            "status": a.status,
            "published": a.is_published,
        }
        for i, ans in enumerate(a.answers):
            row[f"Q_{i + 1}"] = _letter(ans)
        rows.append(row)

    df = pd.DataFrame(rows, columns=None if rows else
                      ["roll_no", "name", "subject_code", "started_at", "score",
                       "total_marks", "status", "published"])

    append = isinstance(target, (str, os.PathLike)) and os.path.exists(target)
    kwargs = {"mode": "a", "if_sheet_exists": "replace"} if append else {}
    with pd.ExcelWriter(target, engine="openpyxl", **kwargs) as writer:
        df.to_excel(writer, sheet_name="answers", index=False)
        ws = writer.sheets["answers"]
        ws.freeze_panes = "A2"
        for col_idx, col in enumerate(df.columns, start=1):
            ws.column_dimensions[get_column_letter(col_idx)].width = max(10, len(str(col)) + 2)

    current_app.logger.info("wrote %d results to the answers sheet", len(rows))
    return len(rows)
