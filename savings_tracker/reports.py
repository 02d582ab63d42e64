"""Reporting utilities.

Formats analytics into human-readable text and JSON/CSV-serializable data.
"""

from __future__ import annotations

import csv
import datetime as dt
import json
from pathlib import Path
from typing import Dict, IO, Iterable, List, Optional, Sequence

from . import analytics as an
from .records import Application, HistoryEntry


def application_summary(app: Application, history: Iterable[HistoryEntry]) -> Dict:
    entries = [e for e in history if e.application_id == app.id]
    latest = an.latest_entry(entries)
    gain = an.total_gain(app, entries)
    return {
        "application": app.to_dict(),
        "current_value": round(an.current_value(app, entries), 2),
        "gain": round(gain.absolute, 2),
        "gain_percentage": round(gain.percentage, 2),
        "latest_entry": latest.to_dict() if latest else None,
        "entry_count": len(entries),
    }


def window_summary(performance: Optional[an.WindowPerformance]) -> Optional[Dict]:
    if performance is None:
        return None
    return {
        "start": performance.start.isoformat(),
        "end": performance.end.isoformat(),
        "first_value": round(performance.first_value, 2),
        "last_value": round(performance.last_value, 2),
        "gain": round(performance.absolute, 2),
        "gain_percentage": round(performance.percentage, 2),
        "points": [{"date": d.isoformat(), "value": v} for d, v in performance.points],
    }


def build_summary(
    applications: Sequence[Application],
    history: Iterable[HistoryEntry],
    date_from: Optional[dt.date] = None,
    date_to: Optional[dt.date] = None,
) -> Dict:
    """Portfolio totals plus one row per application.

    When a date range is given every row also carries its windowed
    performance (``None`` for applications with no entries in range).
    """

    history = list(history)
    totals = an.aggregate_across_applications(applications, history)
    rows = []
    for app in applications:
        row = application_summary(app, history)
        if date_from or date_to:
            start = date_from or dt.date.min
            end = date_to or dt.date.max
            row["window"] = window_summary(an.performance_over_window(app, history, start, end))
        rows.append(row)
    summary = {
        "totals": {
            "initial": round(totals.total_initial, 2),
            "current": round(totals.total_current, 2),
            "gain": round(totals.total_gain, 2),
            "gain_percentage": round(totals.total_gain_percentage, 2),
        },
        "applications": rows,
    }
    if date_from or date_to:
        summary["date_range"] = {
            "start": date_from.isoformat() if date_from else None,
            "end": date_to.isoformat() if date_to else None,
        }
    return summary


def format_text_report(summary: Dict) -> str:
    lines: List[str] = []
    t = summary["totals"]
    lines.append("=== Savings Summary ===")
    lines.append(f"Invested: {t['initial']:.2f}")
    lines.append(f"Current:  {t['current']:.2f}")
    lines.append(f"Gain:     {t['gain']:.2f} ({t['gain_percentage']:.2f}%)")
    lines.append("")

    lines.append("-- Applications --")
    if not summary["applications"]:
        lines.append("No applications yet.")
    for row in summary["applications"]:
        name = row["application"]["name"]
        lines.append(
            f"{name[:30]:30} {row['current_value']:>12.2f}  {row['gain']:>+10.2f}  ({row['gain_percentage']:+.2f}%)"
        )

    date_range = summary.get("date_range")
    if date_range:
        lines.append("")
        lines.append(f"-- Performance {date_range['start'] or '...'} to {date_range['end'] or '...'} --")
        for row in summary["applications"]:
            name = row["application"]["name"]
            window = row.get("window")
            if window is None:
                lines.append(f"{name[:30]:30} no data")
            else:
                lines.append(f"{name[:30]:30} {window['gain']:>+12.2f}  ({window['gain_percentage']:+.2f}%)")
    return "\n".join(lines)


def save_json(summary: Dict, path: str | Path) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2)


def _ensure_text_writer(target: str | Path | IO[str]):
    if hasattr(target, "write"):
        return target, None
    path = Path(target)
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = path.open("w", newline="", encoding="utf-8")
    return handle, handle


def export_history_csv(
    applications: Sequence[Application],
    history: Iterable[HistoryEntry],
    path: str | Path | IO[str],
) -> None:
    def fmt_amount(value) -> str:
        if value is None:
            return ""
        return f"{float(value):.2f}"

    names = {app.id: app.name for app in applications}
    rows: List[List[str]] = [["Application", "Date", "Gross Value", "Net Value"]]
    for entry in sorted(history, key=lambda e: (names.get(e.application_id, ""), e.date, e.seq)):
        if entry.application_id not in names:
            continue
        rows.append(
            [
                names[entry.application_id],
                entry.date.isoformat(),
                fmt_amount(entry.gross_value),
                fmt_amount(entry.net_value),
            ]
        )

    writer_target, to_close = _ensure_text_writer(path)
    try:
        writer = csv.writer(writer_target, lineterminator="\n")
        writer.writerows(rows)
    finally:
        if to_close is not None:
            to_close.close()
