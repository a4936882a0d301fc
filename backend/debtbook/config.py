# backend/debtbook/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/debtbook.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///debtbook.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # 3-state calculator (pending/partial/completed) unless enabled.
    # When enabled, unpaid transactions past their due date become "overdue".
    ENABLE_OVERDUE_STATE = _env_flag("ENABLE_OVERDUE_STATE", False)

    # Minor units per major unit (kobo per naira, cents per dollar)
    MINOR_UNITS_PER_MAJOR = int(os.environ.get("MINOR_UNITS_PER_MAJOR", "100"))

    # Age-based audit purge window used by `flask maintenance purge-audit`
    AUDIT_RETENTION_DAYS = int(os.environ.get("AUDIT_RETENTION_DAYS", "365"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    API_VERSION = "1.0.0"
