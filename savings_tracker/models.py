"""SQLAlchemy models and store for the Savings Tracker web application."""

from __future__ import annotations

import datetime as dt
import logging
from typing import List, Optional

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .errors import ConflictError, StorageError
from .records import Application, HistoryEntry, User
from .storage import Store

logger = logging.getLogger(__name__)

db = SQLAlchemy()


class UserModel(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)

    applications = db.relationship("ApplicationModel", back_populates="user", cascade="all, delete-orphan")


class ApplicationModel(db.Model):
    __tablename__ = "applications"

    id = db.Column(db.String(36), primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    initial_value = db.Column(db.Float, nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)

    user = db.relationship("UserModel", back_populates="applications")
    history = db.relationship("HistoryEntryModel", back_populates="application", cascade="all, delete-orphan")


class HistoryEntryModel(db.Model):
    __tablename__ = "history"

    seq = db.Column(db.Integer, primary_key=True, autoincrement=True)
    id = db.Column(db.String(36), unique=True, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    application_id = db.Column(
        db.String(36), db.ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date = db.Column(db.Date, nullable=False)
    gross_value = db.Column(db.Float, nullable=False)
    net_value = db.Column(db.Float)
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)

    application = db.relationship("ApplicationModel", back_populates="history")


def _to_user(row: UserModel) -> User:
    return User(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        created_at=row.created_at.isoformat() if row.created_at else None,
    )


def _to_application(row: ApplicationModel) -> Application:
    return Application(
        id=row.id,
        name=row.name,
        initial_value=row.initial_value,
        start_date=row.start_date,
        owner_id=row.user_id,
    )


def _to_entry(row: HistoryEntryModel) -> HistoryEntry:
    return HistoryEntry(
        id=row.id,
        application_id=row.application_id,
        date=row.date,
        gross_value=row.gross_value,
        net_value=row.net_value,
        owner_id=row.user_id,
        seq=row.seq,
    )


class SQLAlchemyStore(Store):
    """Store over the Flask-SQLAlchemy session. Needs an app context.

    Every write commits on its own and rolls the session back on failure.
    """

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    def _commit(self, action: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("SQLAlchemy failure while %s: %s", action, exc)
            raise StorageError(f"Database error while {action}.", exc) from exc

    def _query(self, action: str, stmt):
        try:
            return self.session.execute(stmt)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("SQLAlchemy failure while %s: %s", action, exc)
            raise StorageError(f"Database error while {action}.", exc) from exc

    def insert_user(self, user: User) -> User:
        row = UserModel(username=user.username, password_hash=user.password_hash)
        self.session.add(row)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError(f"Username already exists: {user.username}") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageError("Database error while creating user.", exc) from exc
        return _to_user(row)

    def select_user(self, user_id: int) -> Optional[User]:
        row = self._query("loading user", db.select(UserModel).filter_by(id=user_id)).scalar_one_or_none()
        return _to_user(row) if row else None

    def select_user_by_username(self, username: str) -> Optional[User]:
        row = self._query(
            "loading user", db.select(UserModel).filter_by(username=username)
        ).scalar_one_or_none()
        return _to_user(row) if row else None

    def insert_application(self, app: Application) -> Application:
        self.session.add(
            ApplicationModel(
                id=app.id,
                user_id=app.owner_id,
                name=app.name,
                initial_value=app.initial_value,
                start_date=app.start_date,
            )
        )
        self._commit("creating application")
        return app

    def select_applications_by_owner(self, owner_id: int) -> List[Application]:
        rows = self._query(
            "loading applications",
            db.select(ApplicationModel)
            .filter_by(user_id=owner_id)
            .order_by(ApplicationModel.start_date, ApplicationModel.name),
        ).scalars()
        return [_to_application(row) for row in rows]

    def select_application(self, owner_id: int, application_id: str) -> Optional[Application]:
        row = self._query(
            "loading application",
            db.select(ApplicationModel).filter_by(id=application_id, user_id=owner_id),
        ).scalar_one_or_none()
        return _to_application(row) if row else None

    def update_application_row(self, app: Application) -> int:
        result = self._query(
            "updating application",
            db.update(ApplicationModel)
            .where(ApplicationModel.id == app.id, ApplicationModel.user_id == app.owner_id)
            .values(name=app.name, initial_value=app.initial_value, start_date=app.start_date),
        )
        self._commit("updating application")
        return result.rowcount

    def delete_application_row(self, application_id: str, owner_id: int) -> int:
        owned = db.select(ApplicationModel.id).filter_by(id=application_id, user_id=owner_id)
        removed = self._query(
            "deleting application",
            db.delete(HistoryEntryModel).where(HistoryEntryModel.application_id.in_(owned)),
        ).rowcount
        result = self._query(
            "deleting application",
            db.delete(ApplicationModel).where(
                ApplicationModel.id == application_id, ApplicationModel.user_id == owner_id
            ),
        )
        # Both deletes land in the same commit
        self._commit("deleting application")
        if result.rowcount:
            logger.debug("Removed %d history entries with application %s", removed, application_id)
        return result.rowcount

    def insert_history_entry(self, entry: HistoryEntry) -> HistoryEntry:
        row = HistoryEntryModel(
            id=entry.id,
            user_id=entry.owner_id,
            application_id=entry.application_id,
            date=entry.date,
            gross_value=entry.gross_value,
            net_value=entry.net_value,
        )
        self.session.add(row)
        self._commit("creating history entry")
        entry.seq = row.seq
        return entry

    def select_history_by_owner(
        self, owner_id: int, application_id: Optional[str] = None
    ) -> List[HistoryEntry]:
        stmt = db.select(HistoryEntryModel).filter_by(user_id=owner_id)
        if application_id is not None:
            stmt = stmt.filter_by(application_id=application_id)
        stmt = stmt.order_by(HistoryEntryModel.date, HistoryEntryModel.seq)
        return [_to_entry(row) for row in self._query("loading history", stmt).scalars()]

    def select_history_entry(self, owner_id: int, entry_id: str) -> Optional[HistoryEntry]:
        row = self._query(
            "loading history entry",
            db.select(HistoryEntryModel).filter_by(id=entry_id, user_id=owner_id),
        ).scalar_one_or_none()
        return _to_entry(row) if row else None

    def update_history_entry_row(self, entry: HistoryEntry) -> int:
        result = self._query(
            "updating history entry",
            db.update(HistoryEntryModel)
            .where(HistoryEntryModel.id == entry.id, HistoryEntryModel.user_id == entry.owner_id)
            .values(date=entry.date, gross_value=entry.gross_value, net_value=entry.net_value),
        )
        self._commit("updating history entry")
        return result.rowcount

    def delete_history_entry_row(self, entry_id: str, owner_id: int) -> int:
        result = self._query(
            "deleting history entry",
            db.delete(HistoryEntryModel).where(
                HistoryEntryModel.id == entry_id, HistoryEntryModel.user_id == owner_id
            ),
        )
        self._commit("deleting history entry")
        return result.rowcount
