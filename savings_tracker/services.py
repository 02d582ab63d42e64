"""Domain services: validation and ownership rules in front of a store.

Every call takes the owner id explicitly; nothing here reads session state.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
from typing import Any, Callable, Dict, List, Optional, Tuple

from werkzeug.security import check_password_hash, generate_password_hash

from . import analytics as an
from .errors import NotFoundError, ValidationError
from .records import Application, HistoryEntry, User, new_id
from .storage import Store

logger = logging.getLogger(__name__)

MIN_START_DATE = dt.date(1900, 1, 1)
MIN_NAME_LENGTH = 2
MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6

APPLICATION_FIELDS = ("name", "initial_value", "start_date")
HISTORY_FIELDS = ("date", "gross_value", "net_value")


def _coerce_amount(value: Any, label: str, errors: List[str]) -> Optional[float]:
    if value is None or (isinstance(value, str) and not value.strip()):
        errors.append(f"{label} is required.")
        return None
    if isinstance(value, bool):
        errors.append(f"{label} must be a valid number.")
        return None
    try:
        amount = float(value.strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        errors.append(f"{label} must be a valid number.")
        return None
    if not math.isfinite(amount):
        errors.append(f"{label} must be a valid number.")
        return None
    if amount <= 0:
        errors.append(f"{label} must be greater than zero.")
    return amount


def _coerce_date(value: Any, label: str, errors: List[str]) -> Optional[dt.date]:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        errors.append(f"{label} is required.")
        return None
    try:
        # Accept full timestamps too; only the calendar date matters
        return dt.date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        errors.append(f"{label} must be in YYYY-MM-DD format.")
        return None


def _check_date_range(value: Optional[dt.date], label: str, today: dt.date, errors: List[str]) -> None:
    if value is None:
        return
    if value > today:
        errors.append(f"{label} cannot be in the future.")
    elif value < MIN_START_DATE:
        errors.append(f"{label} cannot be before {MIN_START_DATE.isoformat()}.")


class TrackerService:
    """Create, edit and delete applications and their history entries.

    ``reject_duplicate_entries`` turns on the guard that refuses a new entry
    whose gross and net values repeat the application's latest entry.
    """

    def __init__(
        self,
        store: Store,
        reject_duplicate_entries: bool = True,
        today: Callable[[], dt.date] = dt.date.today,
    ):
        self.store = store
        self.reject_duplicate_entries = reject_duplicate_entries
        self.today = today

    # -- validation -------------------------------------------------------

    def _validate_application(self, name: Any, initial_value: Any, start_date: Any) -> Tuple[str, float, dt.date]:
        errors: List[str] = []
        name = str(name or "").strip()
        if len(name) < MIN_NAME_LENGTH:
            errors.append(f"Name must be at least {MIN_NAME_LENGTH} characters.")
        value = _coerce_amount(initial_value, "Initial value", errors)
        start = _coerce_date(start_date, "Start date", errors)
        _check_date_range(start, "Start date", self.today(), errors)
        if errors:
            raise ValidationError(errors)
        return name, value, start

    def _validate_entry(self, date: Any, gross_value: Any, net_value: Any) -> Tuple[dt.date, float, Optional[float]]:
        errors: List[str] = []
        entry_date = _coerce_date(date, "Date", errors)
        _check_date_range(entry_date, "Date", self.today(), errors)
        gross = _coerce_amount(gross_value, "Gross value", errors)
        net = None
        if net_value is not None and not (isinstance(net_value, str) and not net_value.strip()):
            net = _coerce_amount(net_value, "Net value", errors)
        if errors:
            raise ValidationError(errors)
        return entry_date, gross, net

    @staticmethod
    def _check_fields(fields: Dict[str, Any], allowed: Tuple[str, ...]) -> None:
        unknown = sorted(set(fields) - set(allowed))
        if unknown:
            raise ValidationError([f"Unknown field: {name}" for name in unknown])

    # -- applications -----------------------------------------------------

    def list_applications(self, owner_id: int) -> List[Application]:
        return self.store.select_applications_by_owner(owner_id)

    def get_application(self, owner_id: int, application_id: str) -> Application:
        app = self.store.select_application(owner_id, application_id)
        if app is None:
            logger.debug("Application %s not visible to user %s", application_id, owner_id)
            raise NotFoundError("Application", application_id)
        return app

    def create_application(self, owner_id: int, name: Any, initial_value: Any, start_date: Any) -> Application:
        name, value, start = self._validate_application(name, initial_value, start_date)
        app = Application(id=new_id(), name=name, initial_value=value, start_date=start, owner_id=owner_id)
        self.store.insert_application(app)
        logger.info("User %s created application %s (%s)", owner_id, app.id, app.name)
        return app

    def update_application(self, owner_id: int, application_id: str, **fields: Any) -> Application:
        self._check_fields(fields, APPLICATION_FIELDS)
        existing = self.get_application(owner_id, application_id)
        name, value, start = self._validate_application(
            fields.get("name", existing.name),
            fields.get("initial_value", existing.initial_value),
            fields.get("start_date", existing.start_date),
        )
        updated = Application(
            id=existing.id, name=name, initial_value=value, start_date=start, owner_id=owner_id
        )
        if self.store.update_application_row(updated) == 0:
            raise NotFoundError("Application", application_id)
        logger.info("User %s updated application %s", owner_id, application_id)
        return updated

    def delete_application(self, owner_id: int, application_id: str) -> None:
        if self.store.delete_application_row(application_id, owner_id) == 0:
            logger.debug("Delete of application %s by user %s matched nothing", application_id, owner_id)
            raise NotFoundError("Application", application_id)
        logger.info("User %s deleted application %s and its history", owner_id, application_id)

    # -- history ----------------------------------------------------------

    def list_history(self, owner_id: int, application_id: Optional[str] = None) -> List[HistoryEntry]:
        if application_id is not None:
            self.get_application(owner_id, application_id)
        return self.store.select_history_by_owner(owner_id, application_id)

    def get_history_entry(self, owner_id: int, entry_id: str) -> HistoryEntry:
        entry = self.store.select_history_entry(owner_id, entry_id)
        if entry is None:
            raise NotFoundError("History entry", entry_id)
        return entry

    def create_history_entry(
        self,
        owner_id: int,
        application_id: str,
        date: Any,
        gross_value: Any,
        net_value: Any = None,
    ) -> HistoryEntry:
        entry_date, gross, net = self._validate_entry(date, gross_value, net_value)
        self.get_application(owner_id, application_id)
        if self.reject_duplicate_entries:
            latest = an.latest_entry(self.store.select_history_by_owner(owner_id, application_id))
            if latest is not None and latest.gross_value == gross and latest.net_value == net:
                raise ValidationError("Values cannot be identical to the latest entry.")
        entry = HistoryEntry(
            id=new_id(),
            application_id=application_id,
            date=entry_date,
            gross_value=gross,
            net_value=net,
            owner_id=owner_id,
        )
        entry = self.store.insert_history_entry(entry)
        logger.info("User %s added history entry %s to application %s", owner_id, entry.id, application_id)
        return entry

    def update_history_entry(self, owner_id: int, entry_id: str, **fields: Any) -> HistoryEntry:
        self._check_fields(fields, HISTORY_FIELDS)
        existing = self.get_history_entry(owner_id, entry_id)
        entry_date, gross, net = self._validate_entry(
            fields.get("date", existing.date),
            fields.get("gross_value", existing.gross_value),
            fields.get("net_value", existing.net_value),
        )
        updated = HistoryEntry(
            id=existing.id,
            application_id=existing.application_id,
            date=entry_date,
            gross_value=gross,
            net_value=net,
            owner_id=owner_id,
            seq=existing.seq,
        )
        if self.store.update_history_entry_row(updated) == 0:
            raise NotFoundError("History entry", entry_id)
        logger.info("User %s updated history entry %s", owner_id, entry_id)
        return updated

    def delete_history_entry(self, owner_id: int, entry_id: str) -> None:
        if self.store.delete_history_entry_row(entry_id, owner_id) == 0:
            raise NotFoundError("History entry", entry_id)
        logger.info("User %s deleted history entry %s", owner_id, entry_id)

    # -- snapshots --------------------------------------------------------

    def snapshot(self, owner_id: int) -> Tuple[List[Application], List[HistoryEntry]]:
        return self.store.select_applications_by_owner(owner_id), self.store.select_history_by_owner(owner_id)

    def export_data(self, owner_id: int) -> Dict[str, Any]:
        applications, history = self.snapshot(owner_id)
        by_app: Dict[str, List[Dict[str, Any]]] = {app.id: [] for app in applications}
        for entry in history:
            if entry.application_id in by_app:
                item = entry.to_dict()
                item.pop("owner_id", None)
                item.pop("seq", None)
                by_app[entry.application_id].append(item)
        exported = []
        for app in applications:
            item = app.to_dict()
            item.pop("owner_id", None)
            item["history"] = by_app[app.id]
            exported.append(item)
        return {
            "exported_at": dt.datetime.now(dt.timezone.utc).isoformat(timespec="seconds"),
            "applications": exported,
        }


class UserService:
    """Registration and password checks for the people using the tracker."""

    def __init__(self, store: Store):
        self.store = store

    def register(self, username: Any, password: Any) -> User:
        username = str(username or "").strip()
        password = password if isinstance(password, str) else ""
        errors: List[str] = []
        if len(username) < MIN_USERNAME_LENGTH:
            errors.append(f"Username must be at least {MIN_USERNAME_LENGTH} characters.")
        if len(password) < MIN_PASSWORD_LENGTH:
            errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        if errors:
            raise ValidationError(errors)
        user = self.store.insert_user(
            User(id=None, username=username, password_hash=generate_password_hash(password))
        )
        logger.info("Registered user %s (%s)", user.id, user.username)
        return user

    def authenticate(self, username: Any, password: Any) -> Optional[User]:
        if not isinstance(username, str) or not isinstance(password, str):
            return None
        user = self.store.select_user_by_username(username.strip())
        if user is None or not check_password_hash(user.password_hash, password):
            logger.warning("Failed login attempt for %r", username)
            return None
        return user

    def get_user(self, user_id: int) -> Optional[User]:
        return self.store.select_user(user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self.store.select_user_by_username(username.strip())
