import datetime as dt

import pytest

from savings_tracker.webapp import create_app


def create_caixinha(client, **overrides):
    payload = {"name": "Caixinha", "initial_value": 1000, "start_date": "2024-01-01"}
    payload.update(overrides)
    resp = client.post("/api/applications", json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def test_requires_login(client):
    assert client.get("/api/applications").status_code == 401
    assert client.get("/api/summary").status_code == 401


def test_signup_login_logout(client):
    resp = client.post("/api/users", json={"username": "alice", "password": "secret-pw"})
    assert resp.status_code == 201
    assert "password_hash" not in resp.get_json()
    assert client.get("/api/me").get_json()["username"] == "alice"

    assert client.post("/api/logout").status_code == 204
    assert client.get("/api/me").status_code == 401

    assert client.post("/api/auth", json={"username": "alice", "password": "nope-nope"}).status_code == 401
    resp = client.post("/api/auth", json={"username": "alice", "password": "secret-pw"})
    assert resp.status_code == 200
    assert client.get("/api/me").status_code == 200


def test_duplicate_signup_conflicts(client):
    client.post("/api/users", json={"username": "alice", "password": "secret-pw"})
    resp = client.post("/api/users", json={"username": "alice", "password": "secret-pw"})
    assert resp.status_code == 409


def test_application_crud(logged_in):
    created = create_caixinha(logged_in)
    app_id = created["id"]
    assert created["start_date"] == "2024-01-01"
    assert [a["id"] for a in logged_in.get("/api/applications").get_json()] == [app_id]

    resp = logged_in.put(f"/api/applications/{app_id}", json={"name": "Reserva"})
    assert resp.status_code == 200
    assert resp.get_json()["name"] == "Reserva"
    assert resp.get_json()["initial_value"] == 1000

    assert logged_in.delete(f"/api/applications/{app_id}").status_code == 204
    assert logged_in.get(f"/api/applications/{app_id}").status_code == 404
    assert logged_in.delete(f"/api/applications/{app_id}").status_code == 404


def test_validation_errors_are_reported(logged_in):
    resp = logged_in.post(
        "/api/applications",
        json={"name": "C", "initial_value": 0, "start_date": "2999-01-01"},
    )
    assert resp.status_code == 400
    assert len(resp.get_json()["details"]) == 3


def test_history_and_summary(logged_in):
    app_id = create_caixinha(logged_in)["id"]
    resp = logged_in.post(
        f"/api/applications/{app_id}/history",
        json={"date": "2024-02-01", "gross_value": 1050, "net_value": 1025},
    )
    assert resp.status_code == 201
    entry_id = resp.get_json()["id"]

    summary = logged_in.get(f"/api/applications/{app_id}/summary").get_json()
    assert summary["current_value"] == 1050
    assert summary["gain"] == 50
    assert summary["gain_percentage"] == 5.0
    assert summary["latest_entry"]["id"] == entry_id

    dup = logged_in.post(
        f"/api/applications/{app_id}/history",
        json={"date": "2024-03-01", "gross_value": 1050, "net_value": 1025},
    )
    assert dup.status_code == 400

    resp = logged_in.put(f"/api/history/{entry_id}", json={"gross_value": 1100})
    assert resp.status_code == 200
    assert resp.get_json()["gross_value"] == 1100

    assert logged_in.delete(f"/api/history/{entry_id}").status_code == 204
    assert logged_in.get(f"/api/applications/{app_id}/history").get_json() == []


def test_delete_application_removes_history(logged_in):
    app_id = create_caixinha(logged_in)["id"]
    logged_in.post(f"/api/applications/{app_id}/history", json={"date": "2024-02-01", "gross_value": 1050})
    logged_in.delete(f"/api/applications/{app_id}")
    points = logged_in.get("/api/timeseries").get_json()["points"]
    assert points == []


def test_performance_window(logged_in):
    app_id = create_caixinha(logged_in)["id"]
    for when, gross in (("2024-02-01", 1050), ("2024-03-01", 1100)):
        logged_in.post(f"/api/applications/{app_id}/history", json={"date": when, "gross_value": gross})

    resp = logged_in.get(f"/api/applications/{app_id}/performance?start=2024-02-01&end=2024-03-01")
    data = resp.get_json()["data"]
    assert data["gain"] == 50
    assert data["gain_percentage"] == 4.76

    empty = logged_in.get(f"/api/applications/{app_id}/performance?start=2023-01-01&end=2023-02-01")
    assert empty.status_code == 200
    assert empty.get_json()["data"] is None

    bad = logged_in.get(f"/api/applications/{app_id}/performance?start=2024-03-01&end=2024-02-01")
    assert bad.status_code == 400
    assert logged_in.get(f"/api/applications/{app_id}/performance?range=decade").status_code == 400


def test_performance_preset_range(logged_in):
    app_id = create_caixinha(logged_in)["id"]
    resp = logged_in.get(f"/api/applications/{app_id}/performance?range=month")
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["end"] == dt.date.today().isoformat()
    assert body["data"] is None


def test_portfolio_summary_and_timeseries(logged_in):
    first = create_caixinha(logged_in)["id"]
    second = create_caixinha(logged_in, name="Reserva", initial_value=2000)["id"]
    logged_in.post(f"/api/applications/{first}/history", json={"date": "2024-02-01", "gross_value": 1100})
    logged_in.post(f"/api/applications/{second}/history", json={"date": "2024-02-01", "gross_value": 2100})

    totals = logged_in.get("/api/summary").get_json()["totals"]
    assert totals == {"initial": 3000, "current": 3200, "gain": 200, "gain_percentage": 6.67}

    series = logged_in.get("/api/timeseries?grouping=by-date").get_json()["points"]
    assert series == [{"date": "2024-02-01", "gross_value": 3200, "net_value": None, "entries": 2}]
    assert logged_in.get("/api/timeseries?grouping=hourly").status_code == 400


def test_portfolio_summary_rejects_bad_range(logged_in):
    create_caixinha(logged_in)
    assert logged_in.get("/api/summary?start=2024-13-01").status_code == 400
    assert logged_in.get("/api/summary?end=yesterday").status_code == 400
    resp = logged_in.get("/api/summary?start=2024-03-01&end=2024-02-01")
    assert resp.status_code == 400
    assert resp.get_json()["details"] == ["Start must not be after end."]
    assert logged_in.get("/api/summary?start=2024-02-01").status_code == 200


def test_users_cannot_see_each_other(app):
    alice = app.test_client()
    bob = app.test_client()
    alice.post("/api/users", json={"username": "alice", "password": "secret-pw"})
    bob.post("/api/users", json={"username": "bobby", "password": "secret-pw"})
    app_id = create_caixinha(alice)["id"]

    assert bob.get("/api/applications").get_json() == []
    assert bob.get(f"/api/applications/{app_id}").status_code == 404
    assert bob.put(f"/api/applications/{app_id}", json={"name": "Mine"}).status_code == 404
    assert bob.delete(f"/api/applications/{app_id}").status_code == 404
    assert bob.get(f"/api/applications/{app_id}/history").status_code == 404
    assert alice.get(f"/api/applications/{app_id}").get_json()["name"] == "Caixinha"


def test_export(logged_in):
    app_id = create_caixinha(logged_in)["id"]
    logged_in.post(
        f"/api/applications/{app_id}/history",
        json={"date": "2024-02-01", "gross_value": 1050, "net_value": 1025},
    )
    resp = logged_in.get("/api/export")
    assert "attachment" in resp.headers["Content-Disposition"]
    assert resp.get_json()["applications"][0]["history"][0]["net_value"] == 1025

    csv_resp = logged_in.get("/api/export?format=csv")
    assert csv_resp.mimetype == "text/csv"
    assert csv_resp.get_data(as_text=True).splitlines() == [
        "Application,Date,Gross Value,Net Value",
        "Caixinha,2024-02-01,1050.00,1025.00",
    ]


@pytest.mark.parametrize("storage", ["memory", "sqlalchemy"])
def test_alternate_storage_backends(tmp_path, storage):
    app = create_app(
        overrides={
            "TESTING": True,
            "STORAGE": storage,
            "DATABASE": str(tmp_path / "alt.db"),
            "SECRET_KEY": "test",
        }
    )
    client = app.test_client()
    client.post("/api/users", json={"username": "alice", "password": "secret-pw"})
    app_id = create_caixinha(client)["id"]
    client.post(f"/api/applications/{app_id}/history", json={"date": "2024-02-01", "gross_value": 1050})
    assert client.get(f"/api/applications/{app_id}/summary").get_json()["gain"] == 50
    assert client.delete(f"/api/applications/{app_id}").status_code == 204
    assert client.get("/api/timeseries").get_json()["points"] == []
