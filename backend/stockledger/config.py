# backend/stockledger/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///stockledger.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Coordinator retry policy for lock conflicts / stale versions
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))
    LEDGER_RETRY_BACKOFF_SECONDS = float(os.environ.get("LEDGER_RETRY_BACKOFF_SECONDS", "0.1"))

    # Whole-run deadline for one business event
    LEDGER_DEADLINE_SECONDS = float(os.environ.get("LEDGER_DEADLINE_SECONDS", "10"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
