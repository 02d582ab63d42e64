"""Command-line interface for the Savings Tracker.

Usage:
  python -m savings_tracker.cli --database data/savings.db init-db
  python -m savings_tracker.cli add-user alice s3cret-pass
  python -m savings_tracker.cli report --user alice --from 2024-01-01 --json out/summary.json
  python -m savings_tracker.cli export --user alice --output backup.json
  python -m savings_tracker.cli serve --port 5000
"""

from __future__ import annotations

import argparse
import datetime as dt
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import TrackerError
from .reports import build_summary, export_history_csv, format_text_report, save_json
from .services import TrackerService, UserService
from .webapp import create_app, get_store

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Savings Tracker")
    p.add_argument("--config", "-c", help="Path to JSON config")
    p.add_argument("--database", "-d", help="Database file (overrides config)")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the database tables")

    add_user = sub.add_parser("add-user", help="Register a user")
    add_user.add_argument("username")
    add_user.add_argument("password")

    report = sub.add_parser("report", help="Print a gain report")
    report.add_argument("--user", "-u", required=True)
    report.add_argument("--from", dest="date_from", help="Start date (YYYY-MM-DD)")
    report.add_argument("--to", dest="date_to", help="End date (YYYY-MM-DD)")
    report.add_argument("--json", dest="json_out", help="Write summary JSON to path")

    export = sub.add_parser("export", help="Export a user's data")
    export.add_argument("--user", "-u", required=True)
    export.add_argument("--output", "-o", required=True)
    export.add_argument("--format", choices=("json", "csv"), default="json")

    serve = sub.add_parser("serve", help="Run the JSON API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=5000)
    serve.add_argument("--debug", action="store_true")
    return p.parse_args(argv)


def _parse_date(d: Optional[str]) -> Optional[dt.date]:
    if not d:
        return None
    return dt.date.fromisoformat(d)


def _resolve_user(username: str):
    user = UserService(get_store()).get_user_by_username(username)
    if user is None:
        raise TrackerError(f"Unknown user: {username}")
    return user


def _run(args: argparse.Namespace, app) -> int:
    if args.command == "init-db":
        print(f"Database ready: {app.config['DATABASE']}")
        return 0

    if args.command == "add-user":
        user = UserService(get_store()).register(args.username, args.password)
        print(f"Created user {user.username} (id {user.id})")
        return 0

    tracker = TrackerService(get_store(), reject_duplicate_entries=app.config["REJECT_DUPLICATE_ENTRIES"])
    user = _resolve_user(args.user)

    if args.command == "report":
        applications, history = tracker.snapshot(user.id)
        summary = build_summary(applications, history, _parse_date(args.date_from), _parse_date(args.date_to))
        print(format_text_report(summary))
        if args.json_out:
            save_json(summary, args.json_out)
            print(f"\nSaved JSON summary to: {args.json_out}")
        return 0

    if args.command == "export":
        if args.format == "csv":
            applications, history = tracker.snapshot(user.id)
            export_history_csv(applications, history, args.output)
        else:
            data: Dict[str, Any] = tracker.export_data(user.id)
            out = Path(args.output)
            out.parent.mkdir(parents=True, exist_ok=True)
            with out.open("w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        print(f"Exported data for {user.username} to: {args.output}")
        return 0

    raise TrackerError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    overrides = {"DATABASE": args.database} if args.database else None
    app = create_app(args.config, overrides)

    if args.command == "serve":
        app.run(host=args.host, port=args.port, debug=args.debug)
        return 0

    try:
        with app.app_context():
            return _run(args, app)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except TrackerError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
