# app.py
import io
import os
import uuid

import click
from flask import (
    Flask, current_app, flash, get_flashed_messages, jsonify, redirect, request,
    send_file, session, url_for
)

from auth import (
    SessionContext, admin_login, admin_logout, refresh_student, student_login, student_logout
)
from authoring import METADATA, AuthoringWizard
from calculator import evaluate
from errors import PortalError, ValidationError
from evaluation import list_completed, publish, review
from exam_session import IN_PROGRESS, SUBMITTED, ExamSession, exam_status
from excel_io import export_results_to_excel, import_students_from_excel
from models import Student, db, default_photo
from store import DEFAULT_KEY, Store

APP_ROOT = os.path.abspath(os.path.dirname(__file__))

EXAM_KEY = "exam_session"


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_mapping(
        SECRET_KEY=os.environ.get("EXAM_PORTAL_SECRET", "change_this_secret"),
        SQLALCHEMY_DATABASE_URI=os.environ.get("DATABASE_URL", "sqlite:///exam.db"),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        ADMIN_USERNAME=os.environ.get("ADMIN_USERNAME", "1234"),
        ADMIN_PASSWORD=os.environ.get("ADMIN_PASSWORD", "1234"),
        STORE_KEY=os.environ.get("STORE_KEY", DEFAULT_KEY),
        STORE_MAX_RETRIES=int(os.environ.get("STORE_MAX_RETRIES", "3")),
        STUDENTS_XLSX=os.environ.get("STUDENTS_XLSX", os.path.join(APP_ROOT, "students.xlsx")),
    )
    if test_config:
        app.config.update(test_config)
    app.logger.setLevel(os.environ.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    with app.app_context():
        db.create_all()

    app.extensions["exam_store"] = Store(key=app.config["STORE_KEY"],
                                         max_retries=app.config["STORE_MAX_RETRIES"])

    register_error_handlers(app)
    register_routes(app)
    register_commands(app)
    return app


def get_store():
    return current_app.extensions["exam_store"]


def _payload():
    """JSON body if there is one, otherwise form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def register_error_handlers(app):
    @app.errorhandler(PortalError)
    def handle_portal_error(err):
        if err.redirect_to:
            flash(err.msg)
            return redirect(err.redirect_to)
        return jsonify({"status": "error", "msg": err.msg}), err.status_code


def register_routes(app):

    @app.route("/")
    def index():
        return """
        <h2>Online Exam Portal</h2>
        <ul>
            <li><a href="/admin-login">Admin Login</a></li>
            <li><a href="/student-login">Student Login</a></li>
            <li><a href="/results">Check Results</a></li>
        </ul>
        """

    # ----------------- ADMIN (credential-equality login) -----------------
    @app.route("/admin-login", methods=["GET", "POST"])
    def admin_login_view():
        if request.method == "POST":
            data = _payload()
            ctx = admin_login(session, data.get("username"), data.get("password"),
                              app.config["ADMIN_USERNAME"], app.config["ADMIN_PASSWORD"])
            if ctx is None:
                app.logger.warning("failed admin login for %r", data.get("username"))
                return "Invalid username or password", 401
            app.logger.info("admin logged in")
            return redirect(url_for("admin_dashboard"))
        return """
        <form method="post">
            <input name="username" placeholder="Username">
            <input name="password" type="password" placeholder="Password">
            <button>Sign In</button>
        </form>
        """

    @app.route("/admin-logout")
    def admin_logout_view():
        admin_logout(session)
        return redirect(url_for("admin_login_view"))

    @app.route("/admin-dashboard")
    def admin_dashboard():
        SessionContext.from_session(session).require_admin()
        data = get_store().load()
        return jsonify({
            "students": [s.to_dict() for s in data.students],
            "subjects": [{"code": s.code, "name": s.name, "duration": s.duration,
                          "questionCount": len(s.questions)} for s in data.subjects],
            "results": list_completed(get_store()),
            "messages": get_flashed_messages(),
        })

    @app.route("/admin-dashboard/students", methods=["POST"])
    def admin_add_student():
        SessionContext.from_session(session).require_admin()
        data = _payload()
        name = (data.get("name") or "").strip()
        roll = (data.get("rollNumber") or "").strip()
        dob = (data.get("dob") or "").strip()
        if not name or not roll or not dob:
            raise ValidationError("Name, roll number and date of birth are required.")
        store = get_store()
        if store.find_student(roll) is not None:
            raise ValidationError("Roll number already registered.")
        student = Student(id=uuid.uuid4().hex, name=name, dob=dob, roll_number=roll,
                          profile_photo=data.get("profilePhoto") or default_photo(roll),
                          assigned_subject_codes=[])
        store.add_student(student)
        app.logger.info("registered student %s", roll)
        return jsonify({"status": "ok", "student": student.to_dict()}), 201

    @app.route("/admin-dashboard/students/<roll>/delete", methods=["POST"])
    def admin_delete_student(roll):
        SessionContext.from_session(session).require_admin()
        get_store().delete_student(roll)
        return redirect(url_for("admin_dashboard"))

    @app.route("/admin-dashboard/students/import", methods=["POST"])
    def admin_import_students():
        SessionContext.from_session(session).require_admin()
        upload = request.files.get("file")
        source = upload.stream if upload else app.config["STUDENTS_XLSX"]
        added, updated = import_students_from_excel(get_store(), source)
        return jsonify({"status": "ok", "added": added, "updated": updated})

    # ----------------- SUBJECT AUTHORING -----------------
    def _wizard(store):
        return AuthoringWizard.from_dict(store.load_draft())

    def _keep_wizard(store, wizard):
        if wizard.state == METADATA:
            store.clear_draft()
        else:
            store.save_draft(wizard.to_dict())

    @app.route("/admin-dashboard/subjects", methods=["POST"])
    def admin_start_subject():
        SessionContext.from_session(session).require_admin()
        data = _payload()
        store = get_store()
        wizard = _wizard(store)
        wizard.start(store, data.get("name"), data.get("code"), data.get("duration"),
                     data.get("assignRoll"))
        _keep_wizard(store, wizard)
        return jsonify({"status": "ok", "draft": wizard.to_dict(), "remaining": wizard.remaining})

    @app.route("/admin-dashboard/subjects/draft")
    def admin_subject_draft():
        SessionContext.from_session(session).require_admin()
        wizard = _wizard(get_store())
        return jsonify({"draft": wizard.to_dict(), "remaining": wizard.remaining})

    @app.route("/admin-dashboard/subjects/draft/cancel", methods=["POST"])
    def admin_cancel_subject():
        SessionContext.from_session(session).require_admin()
        store = get_store()
        wizard = _wizard(store)
        wizard.cancel()
        _keep_wizard(store, wizard)
        return redirect(url_for("admin_dashboard"))

    @app.route("/admin-dashboard/subjects/questions", methods=["POST"])
    def admin_add_question():
        SessionContext.from_session(session).require_admin()
        data = _payload()
        options = data.get("options")
        if options is None:
            options = [data.get(f"option_{i}") for i in range(4)]
        store = get_store()
        wizard = _wizard(store)
        subject = wizard.add_question(store, data.get("text"), options, data.get("correctAnswer"))
        _keep_wizard(store, wizard)
        if subject is not None:
            return jsonify({"status": "committed", "subject": {"code": subject.code, "name": subject.name}}), 201
        return jsonify({"status": "ok", "added": len(wizard.questions), "remaining": wizard.remaining})

    @app.route("/admin-dashboard/subjects/<code>/delete", methods=["POST"])
    def admin_delete_subject(code):
        SessionContext.from_session(session).require_admin()
        get_store().delete_subject(code)
        return redirect(url_for("admin_dashboard"))

    @app.route("/admin-dashboard/subjects/<code>/assign", methods=["POST"])
    def admin_assign_subject(code):
        SessionContext.from_session(session).require_admin()
        roll = (_payload().get("rollNumber") or "").strip()
        if get_store().assign_subject(roll, code):
            return jsonify({"status": "ok", "msg": f"Assigned {code} to {roll}"})
        return jsonify({"status": "ok", "msg": "Subject already assigned to this student."})

    @app.route("/admin-dashboard/subjects/<code>/unassign", methods=["POST"])
    def admin_unassign_subject(code):
        SessionContext.from_session(session).require_admin()
        roll = (_payload().get("rollNumber") or "").strip()
        get_store().unassign_subject(roll, code)
        return jsonify({"status": "ok"})

    # ----------------- EVALUATION & PUBLICATION -----------------
    @app.route("/admin-dashboard/results")
    def admin_results():
        SessionContext.from_session(session).require_admin()
        return jsonify({"results": list_completed(get_store())})

    @app.route("/admin-dashboard/results/export")
    def admin_export_results():
        SessionContext.from_session(session).require_admin()
        buf = io.BytesIO()
        export_results_to_excel(get_store(), buf)
        buf.seek(0)
        return send_file(buf, as_attachment=True, download_name="results.xlsx",
                         mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")

    @app.route("/admin-dashboard/results/<roll>/<code>")
    def admin_review_result(roll, code):
        SessionContext.from_session(session).require_admin()
        return jsonify(review(get_store(), roll, code))

    @app.route("/admin-dashboard/results/<roll>/<code>/publish", methods=["POST"])
    def admin_publish_result(roll, code):
        SessionContext.from_session(session).require_admin()
        data = _payload()
        status = publish(get_store(), roll, code, data.get("score"), data.get("comments"))
        return jsonify({"status": "ok", "result": status})

    # ----------------- STUDENT LOGIN / DASHBOARD -----------------
    @app.route("/student-login", methods=["GET", "POST"])
    def student_login_view():
        if request.method == "POST":
            data = _payload()
            try:
                ctx = student_login(get_store(), session, data.get("rollNumber"), data.get("dob"))
            except PortalError as err:
                app.logger.warning("failed student login for %r", data.get("rollNumber"))
                return err.msg, err.status_code
            app.logger.info("student %s logged in", ctx.student.roll_number)
            return redirect(url_for("student_dashboard"))
        return """
        <form method="post">
            <input name="rollNumber" placeholder="Ex: S001">
            <input name="dob" type="date">
            <button>Access Dashboard</button>
        </form>
        """

    @app.route("/student-logout")
    def student_logout_view():
        student_logout(session)
        session.pop(EXAM_KEY, None)
        return redirect(url_for("student_login_view"))

    @app.route("/student-dashboard")
    def student_dashboard():
        ctx = SessionContext.from_session(session)
        store = get_store()
        student = refresh_student(store, ctx)
        data = store.load()
        attempts = {a.subject_code: a for a in store.attempts_for(student.roll_number)}
        exams = []
        for sub in data.subjects:
            if sub.code not in student.assigned_subject_codes:
                continue
            exams.append({"code": sub.code, "name": sub.name, "duration": sub.duration,
                          **exam_status(attempts.get(sub.code))})
        return jsonify({"student": student.to_dict(), "exams": exams,
                        "messages": get_flashed_messages()})

    # ----------------- EXAM ROOM -----------------
    def _resume(store, ctx, code):
        """The exam in this browser session, if it is still the live attempt."""
        saved = session.get(EXAM_KEY)
        student = ctx.require_student()
        if not saved or saved.get("subjectCode") != code or saved.get("studentRoll") != student.roll_number:
            return None
        if saved.get("state") != IN_PROGRESS:
            return None
        attempt = store.find_attempt(student.roll_number, code)
        subject = store.find_subject(code)
        if attempt is None or attempt.completed or subject is None:
            return None
        return ExamSession.from_dict(saved, subject)

    def _exam(store, ctx, code):
        engine = _resume(store, ctx, code)
        if engine is None:
            raise PortalError("No exam in progress.", redirect_to=url_for("student_dashboard"))
        engine.sync(store)
        return engine

    def _respond(engine):
        if engine.state == SUBMITTED:
            session.pop(EXAM_KEY, None)
            result = engine.result
            app.logger.info("exam %s submitted by %s: %d/%d", result.subject_code,
                            result.student_roll, result.score, result.total_marks)
            flash(f"Exam submitted successfully! Score: {result.score}/{result.total_marks}")
            return redirect(url_for("student_dashboard"))
        session[EXAM_KEY] = engine.to_dict()
        return jsonify(engine.view())

    @app.route("/exam/<subject_code>")
    def exam_room(subject_code):
        ctx = SessionContext.from_session(session)
        store = get_store()
        engine = _resume(store, ctx, subject_code) if ctx.student else None
        if engine is None:
            engine = ExamSession.open(store, ctx, subject_code)
            app.logger.info("exam %s opened by %s", subject_code, engine.student_roll)
        else:
            engine.sync(store)
        return _respond(engine)

    @app.route("/exam/<subject_code>/state")
    def exam_state(subject_code):
        ctx = SessionContext.from_session(session)
        return _respond(_exam(get_store(), ctx, subject_code))

    @app.route("/exam/<subject_code>/answer", methods=["POST"])
    def exam_answer(subject_code):
        ctx = SessionContext.from_session(session)
        store = get_store()
        engine = _exam(store, ctx, subject_code)
        if engine.state == IN_PROGRESS:
            data = _payload()
            try:
                option = int(data.get("option"))
                index = int(data["index"]) if data.get("index") is not None else None
            except (TypeError, ValueError):
                raise ValidationError("Option must be one of A-D.")
            engine.select(option, index)
        return _respond(engine)

    @app.route("/exam/<subject_code>/navigate", methods=["POST"])
    def exam_navigate(subject_code):
        ctx = SessionContext.from_session(session)
        engine = _exam(get_store(), ctx, subject_code)
        if engine.state == IN_PROGRESS:
            data = _payload()
            action = data.get("action")
            if action == "next":
                engine.next()
            elif action == "previous":
                engine.previous()
            elif action == "jump":
                try:
                    engine.jump(int(data.get("index")))
                except (TypeError, ValueError):
                    raise ValidationError("No such question.")
            else:
                raise ValidationError("Unknown navigation action.")
        return _respond(engine)

    @app.route("/exam/<subject_code>/dismiss-warning", methods=["POST"])
    def exam_dismiss_warning(subject_code):
        ctx = SessionContext.from_session(session)
        engine = _exam(get_store(), ctx, subject_code)
        engine.dismiss_warning()
        return _respond(engine)

    @app.route("/exam/<subject_code>/submit", methods=["POST"])
    def exam_submit(subject_code):
        ctx = SessionContext.from_session(session)
        store = get_store()
        engine = _exam(store, ctx, subject_code)
        if engine.state == IN_PROGRESS:
            engine.submit(store)
        return _respond(engine)

    # ----------------- PUBLIC RESULTS -----------------
    @app.route("/results", methods=["GET", "POST"])
    def results():
        data = _payload() if request.method == "POST" else request.args
        roll = (data.get("rollNumber") or "").strip()
        dob = (data.get("dob") or "").strip()
        if not roll:
            return jsonify({"results": None})
        found = get_store().get_student_results(roll, dob)
        if found is None:
            return jsonify({"status": "error",
                            "msg": "Student not found. Please check Roll Number and DOB."}), 404
        return jsonify({"results": [a.to_dict() for a in found]})

    # ----------------- CALCULATOR -----------------
    @app.route("/api/calc", methods=["POST"])
    def api_calc():
        expression = _payload().get("expression", "")
        try:
            return jsonify({"result": evaluate(expression)})
        except ValidationError as err:
            app.logger.info("calculator rejected %r: %s", expression, err.msg)
            return jsonify({"result": "Error"}), 400


def register_commands(app):
    @app.cli.command("import-students")
    @click.argument("path", required=False)
    def import_students_command(path):
        """Import students from an .xlsx sheet (roll_no, name, dob, photo)."""
        added, updated = import_students_from_excel(get_store(), path or app.config["STUDENTS_XLSX"])
        click.echo(f"Students imported: {added} new, {updated} updated.")


# ----------------- Run app -----------------
if __name__ == "__main__":
    create_app().run(debug=True)
