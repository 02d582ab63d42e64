"""Analytics and gain calculations.

Pure functions that derive current values, gains and chart series from a
snapshot of applications and history entries. Nothing here touches storage,
and missing data is reported with ``None`` or zero rather than an exception.
"""

from __future__ import annotations

import datetime as dt
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .records import Application, HistoryEntry

GROUPINGS = ("per-entry", "by-date")
PRESET_PERIODS = ("week", "month")


@dataclass(frozen=True)
class Gain:
    absolute: float
    percentage: float


@dataclass(frozen=True)
class WindowPerformance:
    start: dt.date
    end: dt.date
    first_value: float
    last_value: float
    absolute: float
    percentage: float
    points: Tuple[Tuple[dt.date, float], ...] = field(default=())


@dataclass(frozen=True)
class PortfolioTotals:
    total_initial: float
    total_current: float
    total_gain: float
    total_gain_percentage: float


def _percentage(change: float, baseline: float) -> float:
    if not baseline:
        return 0.0
    return change / baseline * 100


def _entry_order(entry: HistoryEntry) -> Tuple[dt.date, int]:
    return entry.date, entry.seq


def _for_application(application: Application, history: Iterable[HistoryEntry]) -> List[HistoryEntry]:
    return [e for e in history if e.application_id == application.id]


def latest_entry(history: Iterable[HistoryEntry]) -> Optional[HistoryEntry]:
    """Entry with the latest date; among equal dates the last one inserted."""
    return max(history, key=_entry_order, default=None)


def current_value(application: Application, history: Iterable[HistoryEntry]) -> float:
    latest = latest_entry(_for_application(application, history))
    if latest is None:
        return application.initial_value
    return latest.gross_value


def total_gain(application: Application, history: Iterable[HistoryEntry]) -> Gain:
    absolute = current_value(application, history) - application.initial_value
    return Gain(absolute=absolute, percentage=_percentage(absolute, application.initial_value))


def performance_over_window(
    application: Application,
    history: Iterable[HistoryEntry],
    start: dt.date,
    end: dt.date,
) -> Optional[WindowPerformance]:
    """Gain between the first and last entries dated inside ``[start, end]``.

    The baseline is the first entry in the window, not the application's
    initial value. Returns ``None`` when the window holds no entries.
    """

    in_window = sorted(
        (e for e in _for_application(application, history) if start <= e.date <= end),
        key=_entry_order,
    )
    if not in_window:
        return None
    first, last = in_window[0], in_window[-1]
    absolute = last.gross_value - first.gross_value
    return WindowPerformance(
        start=start,
        end=end,
        first_value=first.gross_value,
        last_value=last.gross_value,
        absolute=absolute,
        percentage=_percentage(absolute, first.gross_value),
        points=tuple((e.date, e.gross_value) for e in in_window),
    )


def preset_window(period: str, today: dt.date) -> Tuple[dt.date, dt.date]:
    """Report presets: the last seven days or the current month to date."""
    if period == "week":
        return today - dt.timedelta(days=7), today
    if period == "month":
        return dt.date(today.year, today.month, 1), today
    raise ValueError(f"Unknown period: {period}")


def aggregate_across_applications(
    applications: Sequence[Application],
    history: Iterable[HistoryEntry],
) -> PortfolioTotals:
    by_app: Dict[str, List[HistoryEntry]] = defaultdict(list)
    for entry in history:
        by_app[entry.application_id].append(entry)
    total_initial = sum(app.initial_value for app in applications)
    total_current = sum(current_value(app, by_app.get(app.id, [])) for app in applications)
    gain = total_current - total_initial
    return PortfolioTotals(
        total_initial=total_initial,
        total_current=total_current,
        total_gain=gain,
        total_gain_percentage=_percentage(gain, total_initial),
    )


def time_series(history: Iterable[HistoryEntry], grouping: str = "per-entry") -> List[Dict]:
    """Chart points ordered by date.

    ``per-entry`` yields one point per entry. ``by-date`` sums gross and net
    values of all entries sharing a calendar date across applications; the
    net sum is ``None`` when no entry on that date has a net value.
    """

    ordered = sorted(history, key=_entry_order)
    if grouping == "per-entry":
        return [
            {
                "date": e.date.isoformat(),
                "application_id": e.application_id,
                "gross_value": e.gross_value,
                "net_value": e.net_value,
            }
            for e in ordered
        ]
    if grouping != "by-date":
        raise ValueError(f"Unknown grouping: {grouping}")

    days: Dict[str, Dict] = {}
    for e in ordered:
        key = e.date.isoformat()
        day = days.setdefault(key, {"date": key, "gross_value": 0.0, "net_value": None, "entries": 0})
        day["gross_value"] += e.gross_value
        if e.net_value is not None:
            day["net_value"] = (day["net_value"] or 0.0) + e.net_value
        day["entries"] += 1
    return list(days.values())
