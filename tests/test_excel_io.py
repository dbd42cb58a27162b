import io

import pandas as pd
from openpyxl import load_workbook

from evaluation import publish
from exam_session import ExamSession
from excel_io import export_results_to_excel, import_students_from_excel


def test_import_adds_and_updates(store, tmp_path):
    path = tmp_path / "students.xlsx"
    pd.DataFrame([
        {"roll_no": "S001", "name": "John Updated", "dob": "2000-01-01"},
        {"roll_no": 1002, "name": "Numeric Roll", "dob": "2001-05-06"},
        {"roll_no": None, "name": "No Roll", "dob": "2001-05-06"},
        {"roll_no": "S003", "name": "No Dob", "dob": None},
    ]).rename(columns={"roll_no": " roll_no "}).to_excel(path, index=False)

    added, updated = import_students_from_excel(store, str(path))

    assert (added, updated) == (1, 1)
    assert store.find_student("S001").name == "John Updated"
    numeric = store.find_student("1002")
    assert numeric.dob == "2001-05-06"
    assert numeric.profile_photo == "https://picsum.photos/seed/1002/200"
    assert store.find_student("S003") is None


def test_import_missing_file_is_skipped(store, tmp_path):
    assert import_students_from_excel(store, str(tmp_path / "absent.xlsx")) == (0, 0)


def test_export_writes_answers_sheet(store, subject, student_ctx, tmp_path):
    session = ExamSession.open(store, student_ctx, "MATH101")
    session.select(0, index=0)
    session.select(3, index=1)
    session.submit(store)
    publish(store, "S001", "MATH101", 1)

    path = tmp_path / "results.xlsx"
    pd.DataFrame([{"roll_no": "S001"}]).to_excel(path, sheet_name="students", index=False)

    assert export_results_to_excel(store, str(path)) == 1

    wb = load_workbook(path)
    assert set(wb.sheetnames) == {"students", "answers"}
    assert wb["answers"].freeze_panes == "A2"
    df = pd.read_excel(path, sheet_name="answers")
    row = df.iloc[0]
    assert row["roll_no"] == "S001"
    assert row["name"] == "John Doe"
    assert row["score"] == 1
    assert row["status"] == "Fail"
    assert row["Q_1"] == "A" and row["Q_2"] == "D"


def test_export_to_buffer_without_results(store):
    buf = io.BytesIO()
    assert export_results_to_excel(store, buf) == 0
    buf.seek(0)
    df = pd.read_excel(buf, sheet_name="answers")
    assert list(df.columns)[:3] == ["roll_no", "name", "subject_code"]
    assert df.empty


def test_import_keeps_trailing_zero_in_text_columns(store, tmp_path):
    path = tmp_path / "students.xlsx"
    pd.DataFrame([
        {"roll_no": 2001.0, "name": "Release 2.0", "dob": "2002-03-04",
         "photo": "https://cdn.example.com/v1.0"},
    ]).to_excel(path, index=False)

    assert import_students_from_excel(store, str(path)) == (1, 0)

    student = store.find_student("2001")
    assert student.name == "Release 2.0"
    assert student.profile_photo == "https://cdn.example.com/v1.0"
