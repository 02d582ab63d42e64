"""Persistence contract and the in-memory store.

Every store speaks the same small vocabulary: insert/select/update/delete
per record type, always scoped by owner. Update and delete return the number
of affected rows and leave it to the service to decide what zero means.
"""

from __future__ import annotations

import copy
import itertools
import logging
import threading
from typing import Dict, List, Optional

from .errors import ConflictError
from .records import Application, HistoryEntry, User

logger = logging.getLogger(__name__)


class Store:
    """Interface implemented by the memory, sqlite and SQLAlchemy stores."""

    # Users
    def insert_user(self, user: User) -> User:
        raise NotImplementedError

    def select_user(self, user_id: int) -> Optional[User]:
        raise NotImplementedError

    def select_user_by_username(self, username: str) -> Optional[User]:
        raise NotImplementedError

    # Applications
    def insert_application(self, app: Application) -> Application:
        raise NotImplementedError

    def select_applications_by_owner(self, owner_id: int) -> List[Application]:
        raise NotImplementedError

    def select_application(self, owner_id: int, application_id: str) -> Optional[Application]:
        raise NotImplementedError

    def update_application_row(self, app: Application) -> int:
        raise NotImplementedError

    def delete_application_row(self, application_id: str, owner_id: int) -> int:
        """Delete an application and all of its history in one transaction."""
        raise NotImplementedError

    # History
    def insert_history_entry(self, entry: HistoryEntry) -> HistoryEntry:
        raise NotImplementedError

    def select_history_by_owner(
        self, owner_id: int, application_id: Optional[str] = None
    ) -> List[HistoryEntry]:
        """Entries ordered by (date, insertion sequence)."""
        raise NotImplementedError

    def select_history_entry(self, owner_id: int, entry_id: str) -> Optional[HistoryEntry]:
        raise NotImplementedError

    def update_history_entry_row(self, entry: HistoryEntry) -> int:
        raise NotImplementedError

    def delete_history_entry_row(self, entry_id: str, owner_id: int) -> int:
        raise NotImplementedError


class MemoryStore(Store):
    """Dict-backed store. Records are copied in and out so callers cannot
    mutate stored state behind the store's back.

    One instance is shared by every request of an app, so each operation
    holds ``_lock`` while it touches the dicts.
    """

    def __init__(self) -> None:
        self._users: Dict[int, User] = {}
        self._applications: Dict[str, Application] = {}
        self._history: Dict[str, HistoryEntry] = {}
        self._user_ids = itertools.count(1)
        self._seq = itertools.count(1)
        self._lock = threading.RLock()

    def insert_user(self, user: User) -> User:
        with self._lock:
            if self.select_user_by_username(user.username) is not None:
                raise ConflictError(f"Username already exists: {user.username}")
            stored = copy.copy(user)
            stored.id = next(self._user_ids)
            self._users[stored.id] = stored
            return copy.copy(stored)

    def select_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return copy.copy(user) if user else None

    def select_user_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            for user in self._users.values():
                if user.username == username:
                    return copy.copy(user)
        return None

    def insert_application(self, app: Application) -> Application:
        with self._lock:
            self._applications[app.id] = copy.copy(app)
        return copy.copy(app)

    def select_applications_by_owner(self, owner_id: int) -> List[Application]:
        with self._lock:
            apps = [copy.copy(a) for a in self._applications.values() if a.owner_id == owner_id]
        apps.sort(key=lambda a: (a.start_date, a.name))
        return apps

    def select_application(self, owner_id: int, application_id: str) -> Optional[Application]:
        with self._lock:
            app = self._applications.get(application_id)
            if app is None or app.owner_id != owner_id:
                return None
            return copy.copy(app)

    def update_application_row(self, app: Application) -> int:
        with self._lock:
            existing = self._applications.get(app.id)
            if existing is None or existing.owner_id != app.owner_id:
                return 0
            self._applications[app.id] = copy.copy(app)
        return 1

    def delete_application_row(self, application_id: str, owner_id: int) -> int:
        with self._lock:
            existing = self._applications.get(application_id)
            if existing is None or existing.owner_id != owner_id:
                return 0
            orphans = [k for k, e in self._history.items() if e.application_id == application_id]
            for key in orphans:
                del self._history[key]
            del self._applications[application_id]
        logger.debug("Removed %d history entries with application %s", len(orphans), application_id)
        return 1

    def insert_history_entry(self, entry: HistoryEntry) -> HistoryEntry:
        with self._lock:
            stored = copy.copy(entry)
            stored.seq = next(self._seq)
            self._history[stored.id] = stored
            return copy.copy(stored)

    def select_history_by_owner(
        self, owner_id: int, application_id: Optional[str] = None
    ) -> List[HistoryEntry]:
        with self._lock:
            entries = [
                copy.copy(e)
                for e in self._history.values()
                if e.owner_id == owner_id and (application_id is None or e.application_id == application_id)
            ]
        entries.sort(key=lambda e: (e.date, e.seq))
        return entries

    def select_history_entry(self, owner_id: int, entry_id: str) -> Optional[HistoryEntry]:
        with self._lock:
            entry = self._history.get(entry_id)
            if entry is None or entry.owner_id != owner_id:
                return None
            return copy.copy(entry)

    def update_history_entry_row(self, entry: HistoryEntry) -> int:
        with self._lock:
            existing = self._history.get(entry.id)
            if existing is None or existing.owner_id != entry.owner_id:
                return 0
            stored = copy.copy(entry)
            stored.seq = existing.seq
            self._history[entry.id] = stored
        return 1

    def delete_history_entry_row(self, entry_id: str, owner_id: int) -> int:
        with self._lock:
            existing = self._history.get(entry_id)
            if existing is None or existing.owner_id != owner_id:
                return 0
            del self._history[entry_id]
        return 1
