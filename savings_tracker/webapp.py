"""Flask JSON API for the Savings Tracker."""

from __future__ import annotations

import datetime as dt
import io
import logging
from functools import wraps
from typing import Any, Dict, List, Optional, Tuple

from flask import Flask, Response, current_app, g, jsonify, request, session

from . import analytics as an
from .config import AppConfig, configure_logging
from .db import close_db, get_db, init_db, SQLiteStore
from .errors import ConflictError, NotFoundError, StorageError, ValidationError
from .models import SQLAlchemyStore, db as sqla_db
from .reports import application_summary, build_summary, export_history_csv, window_summary
from .services import TrackerService, UserService
from .storage import MemoryStore, Store

logger = logging.getLogger(__name__)

MEMORY_STORE_KEY = "savings_tracker.memory_store"
RANGE_OPTIONS = ("week", "month", "custom")


def _safe_parse_date(value: Optional[str]) -> Optional[dt.date]:
    if not value:
        return None
    try:
        return dt.date.fromisoformat(value)
    except ValueError:
        return None


def _date_arg(name: str, label: str, errors: List[str], required: bool = False) -> Optional[dt.date]:
    raw = request.args.get(name)
    if not raw:
        if required:
            errors.append(f"{label} must be in YYYY-MM-DD format.")
        return None
    value = _safe_parse_date(raw)
    if value is None:
        errors.append(f"{label} must be in YYYY-MM-DD format.")
    return value


def _date_range_args(required: bool = False) -> Tuple[Optional[dt.date], Optional[dt.date]]:
    errors: List[str] = []
    start = _date_arg("start", "Start", errors, required)
    end = _date_arg("end", "End", errors, required)
    if start and end and start > end:
        errors.append("Start must not be after end.")
    if errors:
        raise ValidationError(errors)
    return start, end


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def get_store() -> Store:
    if "store" not in g:
        backend = current_app.config["STORAGE"]
        if backend == "sqlalchemy":
            g.store = SQLAlchemyStore()
        elif backend == "memory":
            g.store = current_app.extensions[MEMORY_STORE_KEY]
        else:
            g.store = SQLiteStore(get_db())
    return g.store


def _tracker() -> TrackerService:
    return TrackerService(
        get_store(),
        reject_duplicate_entries=current_app.config["REJECT_DUPLICATE_ENTRIES"],
    )


def login_required(view):
    @wraps(view)
    def wrapped_view(**kwargs):
        if g.user is None:
            return jsonify({"error": "Authentication required."}), 401
        return view(**kwargs)

    return wrapped_view


def _load_logged_in_user() -> None:
    user_id = session.get("user_id")
    if user_id is None:
        g.user = None
        return
    g.user = UserService(get_store()).get_user(user_id)


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ValidationError)
    def handle_validation(exc: ValidationError):
        return jsonify({"error": "Invalid input.", "details": exc.errors}), 400

    @app.errorhandler(NotFoundError)
    def handle_not_found(exc: NotFoundError):
        return jsonify({"error": f"{exc.kind} not found."}), 404

    @app.errorhandler(ConflictError)
    def handle_conflict(exc: ConflictError):
        return jsonify({"error": str(exc)}), 409

    @app.errorhandler(StorageError)
    def handle_storage(exc: StorageError):
        logger.exception("Storage failure: %s", exc)
        return jsonify({"error": "Storage failure. Please try again."}), 500


def create_app(config_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> Flask:
    cfg = AppConfig.load(config_path)
    configure_logging(cfg.log_level)

    app = Flask(__name__)
    app.config["SECRET_KEY"] = cfg.secret_key
    app.config["DATABASE"] = cfg.database
    app.config["STORAGE"] = cfg.storage
    app.config["REJECT_DUPLICATE_ENTRIES"] = cfg.reject_duplicate_entries
    if overrides:
        app.config.update(overrides)

    storage = app.config["STORAGE"]
    if storage == "sqlalchemy":
        app.config.setdefault("SQLALCHEMY_DATABASE_URI", f"sqlite:///{app.config['DATABASE']}")
        sqla_db.init_app(app)
        with app.app_context():
            sqla_db.create_all()
    elif storage == "memory":
        app.extensions[MEMORY_STORE_KEY] = MemoryStore()
    else:
        app.teardown_appcontext(close_db)
        with app.app_context():
            init_db()
    logger.info("Savings Tracker using %s storage", storage)

    app.before_request(_load_logged_in_user)
    _register_error_handlers(app)

    @app.route("/api/users", methods=["POST"])
    def signup():
        data = _json_body()
        user = UserService(get_store()).register(data.get("username"), data.get("password"))
        session.clear()
        session["user_id"] = user.id
        return jsonify(user.to_dict()), 201

    @app.route("/api/auth", methods=["POST"])
    def login():
        data = _json_body()
        user = UserService(get_store()).authenticate(data.get("username"), data.get("password"))
        if user is None:
            return jsonify({"error": "Invalid credentials."}), 401
        session.clear()
        session["user_id"] = user.id
        return jsonify(user.to_dict())

    @app.route("/api/logout", methods=["POST"])
    @login_required
    def logout():
        session.clear()
        return "", 204

    @app.route("/api/me")
    @login_required
    def me():
        return jsonify(g.user.to_dict())

    @app.route("/api/applications", methods=["GET"])
    @login_required
    def list_applications():
        apps = _tracker().list_applications(g.user.id)
        return jsonify([a.to_dict() for a in apps])

    @app.route("/api/applications", methods=["POST"])
    @login_required
    def create_application():
        data = _json_body()
        app_record = _tracker().create_application(
            g.user.id, data.get("name"), data.get("initial_value"), data.get("start_date")
        )
        return jsonify(app_record.to_dict()), 201

    @app.route("/api/applications/<application_id>", methods=["GET"])
    @login_required
    def get_application(application_id: str):
        return jsonify(_tracker().get_application(g.user.id, application_id).to_dict())

    @app.route("/api/applications/<application_id>", methods=["PUT"])
    @login_required
    def update_application(application_id: str):
        data = _json_body()
        fields = {k: data[k] for k in ("name", "initial_value", "start_date") if k in data}
        updated = _tracker().update_application(g.user.id, application_id, **fields)
        return jsonify(updated.to_dict())

    @app.route("/api/applications/<application_id>", methods=["DELETE"])
    @login_required
    def delete_application(application_id: str):
        _tracker().delete_application(g.user.id, application_id)
        return "", 204

    @app.route("/api/applications/<application_id>/history", methods=["GET"])
    @login_required
    def list_history(application_id: str):
        entries = _tracker().list_history(g.user.id, application_id)
        return jsonify([e.to_dict() for e in entries])

    @app.route("/api/applications/<application_id>/history", methods=["POST"])
    @login_required
    def create_history_entry(application_id: str):
        data = _json_body()
        entry = _tracker().create_history_entry(
            g.user.id,
            application_id,
            data.get("date"),
            data.get("gross_value"),
            data.get("net_value"),
        )
        return jsonify(entry.to_dict()), 201

    @app.route("/api/history/<entry_id>", methods=["PUT"])
    @login_required
    def update_history_entry(entry_id: str):
        data = _json_body()
        fields = {k: data[k] for k in ("date", "gross_value", "net_value") if k in data}
        updated = _tracker().update_history_entry(g.user.id, entry_id, **fields)
        return jsonify(updated.to_dict())

    @app.route("/api/history/<entry_id>", methods=["DELETE"])
    @login_required
    def delete_history_entry(entry_id: str):
        _tracker().delete_history_entry(g.user.id, entry_id)
        return "", 204

    @app.route("/api/applications/<application_id>/summary")
    @login_required
    def application_summary_view(application_id: str):
        tracker = _tracker()
        app_record = tracker.get_application(g.user.id, application_id)
        history = tracker.list_history(g.user.id, application_id)
        return jsonify(application_summary(app_record, history))

    @app.route("/api/applications/<application_id>/performance")
    @login_required
    def performance(application_id: str):
        tracker = _tracker()
        app_record = tracker.get_application(g.user.id, application_id)
        range_key = request.args.get("range") or "custom"
        if range_key not in RANGE_OPTIONS:
            raise ValidationError(f"Range must be one of: {', '.join(RANGE_OPTIONS)}.")
        if range_key == "custom":
            start, end = _date_range_args(required=True)
        else:
            start, end = an.preset_window(range_key, dt.date.today())
        history = tracker.list_history(g.user.id, application_id)
        result = an.performance_over_window(app_record, history, start, end)
        return jsonify(
            {
                "application_id": application_id,
                "range": range_key,
                "start": start.isoformat(),
                "end": end.isoformat(),
                "data": window_summary(result),
            }
        )

    @app.route("/api/summary")
    @login_required
    def api_summary():
        start, end = _date_range_args()
        applications, history = _tracker().snapshot(g.user.id)
        summary = build_summary(applications, history, start, end)
        summary["application_count"] = len(applications)
        return jsonify(summary)

    @app.route("/api/timeseries")
    @login_required
    def api_timeseries():
        grouping = request.args.get("grouping") or "per-entry"
        if grouping not in an.GROUPINGS:
            raise ValidationError(f"Grouping must be one of: {', '.join(an.GROUPINGS)}.")
        application_id = request.args.get("application_id")
        history = _tracker().list_history(g.user.id, application_id or None)
        return jsonify({"grouping": grouping, "points": an.time_series(history, grouping)})

    @app.route("/api/export")
    @login_required
    def api_export():
        tracker = _tracker()
        if request.args.get("format") == "csv":
            applications, history = tracker.snapshot(g.user.id)
            buffer = io.StringIO()
            export_history_csv(applications, history, buffer)
            return Response(
                buffer.getvalue(),
                mimetype="text/csv",
                headers={"Content-Disposition": "attachment; filename=savings_history.csv"},
            )
        response = jsonify(tracker.export_data(g.user.id))
        response.headers["Content-Disposition"] = "attachment; filename=savings_tracker.json"
        return response

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
