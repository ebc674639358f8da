# backend/supplier_credits/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///supplier_credits.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Supplier ledger history paging
    LEDGER_HISTORY_DEFAULT_LIMIT = int(os.environ.get("LEDGER_HISTORY_DEFAULT_LIMIT", "100"))
    LEDGER_HISTORY_MAX_LIMIT = int(os.environ.get("LEDGER_HISTORY_MAX_LIMIT", "1000"))
