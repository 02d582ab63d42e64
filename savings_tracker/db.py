"""SQLite persistence: schema, per-request connection helpers and the store."""

from __future__ import annotations

import datetime as dt
import logging
import sqlite3
from pathlib import Path
from typing import List, Optional

from flask import current_app, g

from .config import DEFAULT_DATABASE
from .errors import ConflictError, StorageError
from .records import Application, HistoryEntry, User
from .storage import Store

logger = logging.getLogger(__name__)

SCHEMA = """CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS applications (
    id TEXT PRIMARY KEY,
    user_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    initial_value REAL NOT NULL,
    start_date TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS history (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    user_id INTEGER NOT NULL,
    application_id TEXT NOT NULL,
    date TEXT NOT NULL,
    gross_value REAL NOT NULL,
    net_value REAL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    FOREIGN KEY (application_id) REFERENCES applications(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS ix_history_application ON history(application_id, date);
"""


def connect(path: str | Path) -> sqlite3.Connection:
    if str(path) != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def apply_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA)
    conn.commit()


def get_database_path() -> Path:
    db_path = current_app.config.get("DATABASE") if current_app else None
    if db_path:
        return Path(db_path)
    return Path(DEFAULT_DATABASE)


def get_db() -> sqlite3.Connection:
    if "db" not in g:
        g.db = connect(get_database_path())
    return g.db


def close_db(_: object | None = None) -> None:
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db() -> None:
    apply_schema(get_db())


def _user_from_row(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        username=row["username"],
        password_hash=row["password_hash"],
        created_at=row["created_at"],
    )


def _application_from_row(row: sqlite3.Row) -> Application:
    return Application(
        id=row["id"],
        name=row["name"],
        initial_value=row["initial_value"],
        start_date=dt.date.fromisoformat(row["start_date"]),
        owner_id=row["user_id"],
    )


def _entry_from_row(row: sqlite3.Row) -> HistoryEntry:
    return HistoryEntry(
        id=row["id"],
        application_id=row["application_id"],
        date=dt.date.fromisoformat(row["date"]),
        gross_value=row["gross_value"],
        net_value=row["net_value"],
        owner_id=row["user_id"],
        seq=row["seq"],
    )


_HISTORY_COLUMNS = "seq, id, user_id, application_id, date, gross_value, net_value"


class SQLiteStore(Store):
    """Store over a ``sqlite3`` connection.

    Each write runs inside ``with self.conn:`` so it commits on success and
    rolls back on any error.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def _fail(self, action: str, exc: sqlite3.Error) -> StorageError:
        logger.error("SQLite failure while %s: %s", action, exc)
        return StorageError(f"Database error while {action}.", exc)

    def insert_user(self, user: User) -> User:
        try:
            with self.conn:
                cursor = self.conn.execute(
                    "INSERT INTO users (username, password_hash) VALUES (?, ?)",
                    (user.username, user.password_hash),
                )
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"Username already exists: {user.username}") from exc
        except sqlite3.Error as exc:
            raise self._fail("creating user", exc) from exc
        return self.select_user(cursor.lastrowid)

    def select_user(self, user_id: int) -> Optional[User]:
        try:
            row = self.conn.execute(
                "SELECT id, username, password_hash, created_at FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()
        except sqlite3.Error as exc:
            raise self._fail("loading user", exc) from exc
        return _user_from_row(row) if row else None

    def select_user_by_username(self, username: str) -> Optional[User]:
        try:
            row = self.conn.execute(
                "SELECT id, username, password_hash, created_at FROM users WHERE username = ?",
                (username,),
            ).fetchone()
        except sqlite3.Error as exc:
            raise self._fail("loading user", exc) from exc
        return _user_from_row(row) if row else None

    def insert_application(self, app: Application) -> Application:
        try:
            with self.conn:
                self.conn.execute(
                    """
                    INSERT INTO applications (id, user_id, name, initial_value, start_date)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (app.id, app.owner_id, app.name, app.initial_value, app.start_date.isoformat()),
                )
        except sqlite3.Error as exc:
            raise self._fail("creating application", exc) from exc
        return app

    def select_applications_by_owner(self, owner_id: int) -> List[Application]:
        try:
            rows = self.conn.execute(
                """
                SELECT id, user_id, name, initial_value, start_date
                FROM applications
                WHERE user_id = ?
                ORDER BY start_date, name
                """,
                (owner_id,),
            ).fetchall()
        except sqlite3.Error as exc:
            raise self._fail("loading applications", exc) from exc
        return [_application_from_row(row) for row in rows]

    def select_application(self, owner_id: int, application_id: str) -> Optional[Application]:
        try:
            row = self.conn.execute(
                """
                SELECT id, user_id, name, initial_value, start_date
                FROM applications
                WHERE id = ? AND user_id = ?
                """,
                (application_id, owner_id),
            ).fetchone()
        except sqlite3.Error as exc:
            raise self._fail("loading application", exc) from exc
        return _application_from_row(row) if row else None

    def update_application_row(self, app: Application) -> int:
        try:
            with self.conn:
                cursor = self.conn.execute(
                    """
                    UPDATE applications
                    SET name = ?, initial_value = ?, start_date = ?
                    WHERE id = ? AND user_id = ?
                    """,
                    (app.name, app.initial_value, app.start_date.isoformat(), app.id, app.owner_id),
                )
        except sqlite3.Error as exc:
            raise self._fail("updating application", exc) from exc
        return cursor.rowcount

    def delete_application_row(self, application_id: str, owner_id: int) -> int:
        try:
            with self.conn:
                # History goes first so no orphan survives even without FK enforcement
                removed = self.conn.execute(
                    """
                    DELETE FROM history
                    WHERE application_id IN (
                        SELECT id FROM applications WHERE id = ? AND user_id = ?
                    )
                    """,
                    (application_id, owner_id),
                ).rowcount
                cursor = self.conn.execute(
                    "DELETE FROM applications WHERE id = ? AND user_id = ?",
                    (application_id, owner_id),
                )
        except sqlite3.Error as exc:
            raise self._fail("deleting application", exc) from exc
        if cursor.rowcount:
            logger.debug("Removed %d history entries with application %s", removed, application_id)
        return cursor.rowcount

    def insert_history_entry(self, entry: HistoryEntry) -> HistoryEntry:
        try:
            with self.conn:
                cursor = self.conn.execute(
                    """
                    INSERT INTO history (id, user_id, application_id, date, gross_value, net_value)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entry.id,
                        entry.owner_id,
                        entry.application_id,
                        entry.date.isoformat(),
                        entry.gross_value,
                        entry.net_value,
                    ),
                )
        except sqlite3.Error as exc:
            raise self._fail("creating history entry", exc) from exc
        entry.seq = cursor.lastrowid
        return entry

    def select_history_by_owner(
        self, owner_id: int, application_id: Optional[str] = None
    ) -> List[HistoryEntry]:
        sql = f"SELECT {_HISTORY_COLUMNS} FROM history WHERE user_id = ?"
        params: tuple = (owner_id,)
        if application_id is not None:
            sql += " AND application_id = ?"
            params += (application_id,)
        sql += " ORDER BY date, seq"
        try:
            rows = self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise self._fail("loading history", exc) from exc
        return [_entry_from_row(row) for row in rows]

    def select_history_entry(self, owner_id: int, entry_id: str) -> Optional[HistoryEntry]:
        try:
            row = self.conn.execute(
                f"SELECT {_HISTORY_COLUMNS} FROM history WHERE id = ? AND user_id = ?",
                (entry_id, owner_id),
            ).fetchone()
        except sqlite3.Error as exc:
            raise self._fail("loading history entry", exc) from exc
        return _entry_from_row(row) if row else None

    def update_history_entry_row(self, entry: HistoryEntry) -> int:
        try:
            with self.conn:
                cursor = self.conn.execute(
                    """
                    UPDATE history
                    SET date = ?, gross_value = ?, net_value = ?
                    WHERE id = ? AND user_id = ?
                    """,
                    (
                        entry.date.isoformat(),
                        entry.gross_value,
                        entry.net_value,
                        entry.id,
                        entry.owner_id,
                    ),
                )
        except sqlite3.Error as exc:
            raise self._fail("updating history entry", exc) from exc
        return cursor.rowcount

    def delete_history_entry_row(self, entry_id: str, owner_id: int) -> int:
        try:
            with self.conn:
                cursor = self.conn.execute(
                    "DELETE FROM history WHERE id = ? AND user_id = ?",
                    (entry_id, owner_id),
                )
        except sqlite3.Error as exc:
            raise self._fail("deleting history entry", exc) from exc
        return cursor.rowcount
