"""Savings Tracker package."""

__all__ = [
    "config",
    "records",
    "errors",
    "storage",
    "db",
    "models",
    "services",
    "analytics",
    "reports",
    "webapp",
]

__version__ = "0.1.0"
