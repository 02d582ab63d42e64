import datetime as dt

import pytest
from flask import Flask

from savings_tracker.db import SQLiteStore, apply_schema, connect
from savings_tracker.models import SQLAlchemyStore, db
from savings_tracker.records import User
from savings_tracker.services import TrackerService
from savings_tracker.storage import MemoryStore
from savings_tracker.webapp import create_app

TODAY = dt.date(2024, 6, 30)


@pytest.fixture(params=["memory", "sqlite", "sqlalchemy"])
def store(request):
    if request.param == "memory":
        yield MemoryStore()
    elif request.param == "sqlite":
        conn = connect(":memory:")
        apply_schema(conn)
        yield SQLiteStore(conn)
        conn.close()
    else:
        app = Flask(__name__)
        app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///:memory:"
        db.init_app(app)
        with app.app_context():
            db.create_all()
            yield SQLAlchemyStore()
            db.session.rollback()
            db.drop_all()


@pytest.fixture
def owner(store):
    return store.insert_user(User(id=None, username="alice", password_hash="x")).id


@pytest.fixture
def other_owner(store):
    return store.insert_user(User(id=None, username="bob", password_hash="x")).id


@pytest.fixture
def service(store):
    return TrackerService(store, reject_duplicate_entries=True, today=lambda: TODAY)


@pytest.fixture
def app(tmp_path):
    app = create_app(
        overrides={
            "TESTING": True,
            "DATABASE": str(tmp_path / "tracker.db"),
            "SECRET_KEY": "test",
        }
    )
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def logged_in(client):
    resp = client.post("/api/users", json={"username": "alice", "password": "secret-pw"})
    assert resp.status_code == 201
    return client
