"""Plain record types shared by the stores, services and analytics.

Dates are ``datetime.date`` values and amounts are floats, mirroring the
REAL columns used by the stores.
"""

from __future__ import annotations

import datetime as dt
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class User:
    id: Optional[int]
    username: str
    password_hash: str
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        # Never expose the hash.
        return {"id": self.id, "username": self.username}


@dataclass
class Application:
    id: str
    name: str
    initial_value: float
    start_date: dt.date
    owner_id: int

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["start_date"] = self.start_date.isoformat()
        return data


@dataclass
class HistoryEntry:
    id: str
    application_id: str
    date: dt.date
    gross_value: float
    owner_id: int
    net_value: Optional[float] = None
    seq: int = field(default=0, compare=False)  # insertion order, set by the store

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data
