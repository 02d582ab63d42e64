"""Configuration utilities for the Savings Tracker.

Provides defaults and a helper to load user-defined configuration (database
location, storage backend, entry policy) from a JSON file.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent

DEFAULT_DATABASE = str(PROJECT_ROOT / "savings_tracker.db")
STORAGE_BACKENDS = ("sqlite", "sqlalchemy", "memory")
SECRET_KEY_ENV = "SAVINGS_TRACKER_SECRET_KEY"


@dataclass
class AppConfig:
    database: str = DEFAULT_DATABASE
    storage: str = "sqlite"
    secret_key: str = "dev"
    reject_duplicate_entries: bool = True
    log_level: str = "INFO"

    @staticmethod
    def load(config_path: Optional[str | Path] = None) -> "AppConfig":
        """Load config from JSON if provided, else use defaults.

        JSON format:
        {
          "database": "data/savings.db",
          "storage": "sqlite",
          "secret_key": "change-me",
          "reject_duplicate_entries": true,
          "log_level": "INFO"
        }

        The ``SAVINGS_TRACKER_SECRET_KEY`` environment variable wins over the
        file for the secret key.
        """

        cfg = AppConfig()

        if config_path:
            p = Path(config_path)
            if p.exists():
                with p.open("r", encoding="utf-8") as f:
                    raw = json.load(f)
                if isinstance(raw, dict):
                    if raw.get("database"):
                        db_path = Path(str(raw["database"]))
                        # Relative paths resolve next to the config file
                        if not db_path.is_absolute():
                            db_path = p.resolve().parent / db_path
                        cfg.database = str(db_path)
                    if raw.get("storage") in STORAGE_BACKENDS:
                        cfg.storage = str(raw["storage"])
                    if raw.get("secret_key"):
                        cfg.secret_key = str(raw["secret_key"])
                    if isinstance(raw.get("reject_duplicate_entries"), bool):
                        cfg.reject_duplicate_entries = raw["reject_duplicate_entries"]
                    if raw.get("log_level"):
                        cfg.log_level = str(raw["log_level"]).upper()

        env_secret = os.environ.get(SECRET_KEY_ENV)
        if env_secret:
            cfg.secret_key = env_secret
        return cfg


def configure_logging(level: str = "INFO") -> None:
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=getattr(logging, level.upper(), logging.INFO),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
