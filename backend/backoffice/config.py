# backend/backoffice/config.py
from __future__ import annotations
import os
from decimal import Decimal


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///backoffice.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Deleting a sale/purchase older than this only logs a warning
    STALE_TRANSACTION_DAYS = int(os.environ.get("STALE_TRANSACTION_DAYS", "30"))

    # SQLite ignores FOR UPDATE; BEGIN IMMEDIATE takes the write lock up front
    SQLITE_IMMEDIATE_TRANSACTIONS = _env_flag("SQLITE_IMMEDIATE_TRANSACTIONS", True)

    MAX_LINE_QUANTITY = Decimal(os.environ.get("MAX_LINE_QUANTITY", "999999.999"))
