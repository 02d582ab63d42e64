import datetime as dt

import pytest

from savings_tracker import analytics as an
from savings_tracker.records import Application, HistoryEntry


def make_app(app_id="a1", initial=1000.0, name="Caixinha"):
    return Application(id=app_id, name=name, initial_value=initial, start_date=dt.date(2024, 1, 1), owner_id=1)


def make_entry(entry_id, when, gross, net=None, app_id="a1", seq=0):
    return HistoryEntry(
        id=entry_id,
        application_id=app_id,
        date=when,
        gross_value=gross,
        net_value=net,
        owner_id=1,
        seq=seq,
    )


def test_empty_history_uses_initial_value():
    app = make_app()
    assert an.current_value(app, []) == 1000.0
    assert an.total_gain(app, []) == an.Gain(absolute=0.0, percentage=0.0)
    assert an.latest_entry([]) is None


def test_single_entry_gain():
    app = make_app()
    history = [make_entry("h1", dt.date(2024, 2, 1), 1050.0, 1025.0)]
    assert an.current_value(app, history) == 1050.0
    gain = an.total_gain(app, history)
    assert gain.absolute == 50.0
    assert gain.percentage == pytest.approx(5.0)


def test_latest_entry_uses_date_not_input_order():
    history = [
        make_entry("late", dt.date(2024, 3, 1), 1100.0, seq=1),
        make_entry("early", dt.date(2024, 2, 1), 1050.0, seq=2),
    ]
    assert an.latest_entry(history).id == "late"


def test_latest_entry_tie_goes_to_last_inserted():
    history = [
        make_entry("second", dt.date(2024, 3, 1), 1200.0, seq=7),
        make_entry("first", dt.date(2024, 3, 1), 1100.0, seq=3),
    ]
    assert an.latest_entry(history).id == "second"
    assert an.latest_entry(list(reversed(history))).id == "second"


def test_current_value_ignores_other_applications():
    app = make_app("a1")
    history = [
        make_entry("h1", dt.date(2024, 2, 1), 1050.0, app_id="a1"),
        make_entry("h2", dt.date(2024, 5, 1), 9999.0, app_id="a2"),
    ]
    assert an.current_value(app, history) == 1050.0


def test_zero_initial_value_gives_zero_percentage():
    app = make_app(initial=0.0)
    history = [make_entry("h1", dt.date(2024, 2, 1), 10.0)]
    gain = an.total_gain(app, history)
    assert gain.absolute == 10.0
    assert gain.percentage == 0.0


def test_loss_is_negative():
    app = make_app()
    gain = an.total_gain(app, [make_entry("h1", dt.date(2024, 2, 1), 900.0)])
    assert gain.absolute == -100.0
    assert gain.percentage == pytest.approx(-10.0)


def test_window_uses_first_entry_as_baseline():
    app = make_app()
    history = [
        make_entry("h1", dt.date(2024, 2, 1), 1050.0, seq=1),
        make_entry("h2", dt.date(2024, 3, 1), 1100.0, seq=2),
    ]
    perf = an.performance_over_window(app, history, dt.date(2024, 2, 1), dt.date(2024, 3, 1))
    assert perf is not None
    assert perf.absolute == 50.0
    assert perf.percentage == pytest.approx(4.7619, rel=1e-3)
    assert perf.first_value == 1050.0
    assert perf.last_value == 1100.0
    assert [d for d, _ in perf.points] == [dt.date(2024, 2, 1), dt.date(2024, 3, 1)]


def test_window_bounds_are_inclusive_and_filtering():
    app = make_app()
    history = [
        make_entry("h0", dt.date(2024, 1, 15), 1010.0, seq=1),
        make_entry("h1", dt.date(2024, 2, 1), 1050.0, seq=2),
        make_entry("h2", dt.date(2024, 4, 1), 1200.0, seq=3),
    ]
    perf = an.performance_over_window(app, history, dt.date(2024, 2, 1), dt.date(2024, 2, 1))
    assert perf.absolute == 0.0
    assert perf.percentage == 0.0
    assert len(perf.points) == 1


def test_empty_window_is_no_data():
    app = make_app()
    history = [make_entry("h1", dt.date(2024, 2, 1), 1050.0)]
    assert an.performance_over_window(app, history, dt.date(2023, 1, 1), dt.date(2023, 12, 31)) is None
    assert an.performance_over_window(app, [], dt.date(2024, 1, 1), dt.date(2024, 12, 31)) is None


def test_aggregate_across_applications():
    apps = [make_app("a1", 1000.0), make_app("a2", 2000.0, name="Reserva")]
    history = [
        make_entry("h1", dt.date(2024, 2, 1), 1100.0, app_id="a1"),
        make_entry("h2", dt.date(2024, 2, 1), 2100.0, app_id="a2"),
    ]
    totals = an.aggregate_across_applications(apps, history)
    assert totals.total_initial == 3000.0
    assert totals.total_current == 3200.0
    assert totals.total_gain == 200.0
    assert totals.total_gain_percentage == pytest.approx(6.6667, rel=1e-3)


def test_aggregate_without_applications():
    totals = an.aggregate_across_applications([], [])
    assert totals == an.PortfolioTotals(0, 0, 0, 0.0)


def test_aggregate_counts_applications_without_history_at_initial_value():
    apps = [make_app("a1", 1000.0), make_app("a2", 500.0)]
    history = [make_entry("h1", dt.date(2024, 2, 1), 1100.0, app_id="a1")]
    totals = an.aggregate_across_applications(apps, history)
    assert totals.total_current == 1600.0


def test_time_series_per_entry_is_sorted():
    history = [
        make_entry("h2", dt.date(2024, 3, 1), 1100.0, 1080.0, seq=2),
        make_entry("h1", dt.date(2024, 2, 1), 1050.0, 1025.0, seq=1),
    ]
    points = an.time_series(history)
    assert [p["date"] for p in points] == ["2024-02-01", "2024-03-01"]
    assert points[0]["net_value"] == 1025.0


def test_time_series_by_date_sums_across_applications():
    history = [
        make_entry("h1", dt.date(2024, 2, 1), 1100.0, 1050.0, app_id="a1", seq=1),
        make_entry("h2", dt.date(2024, 2, 1), 2100.0, None, app_id="a2", seq=2),
        make_entry("h3", dt.date(2024, 3, 1), 500.0, None, app_id="a2", seq=3),
    ]
    points = an.time_series(history, "by-date")
    assert points == [
        {"date": "2024-02-01", "gross_value": 3200.0, "net_value": 1050.0, "entries": 2},
        {"date": "2024-03-01", "gross_value": 500.0, "net_value": None, "entries": 1},
    ]


def test_time_series_rejects_unknown_grouping():
    with pytest.raises(ValueError):
        an.time_series([], "weekly")


def test_preset_windows():
    today = dt.date(2024, 6, 20)
    assert an.preset_window("week", today) == (dt.date(2024, 6, 13), today)
    assert an.preset_window("month", today) == (dt.date(2024, 6, 1), today)
    with pytest.raises(ValueError):
        an.preset_window("year", today)


def test_functions_are_repeatable():
    app = make_app()
    history = [make_entry("h1", dt.date(2024, 2, 1), 1050.0)]
    assert an.total_gain(app, history) == an.total_gain(app, history)
    assert an.time_series(history, "by-date") == an.time_series(history, "by-date")
