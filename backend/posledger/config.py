# backend/posledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/posledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///posledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Business timezone used to interpret device-reported local times
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "Asia/Baku")

    # Fiscal job retry policy (provider adapters may override)
    FISCAL_MAX_RETRIES = int(os.environ.get("FISCAL_MAX_RETRIES", "3"))
    FISCAL_RETRY_BASE_SECONDS = int(os.environ.get("FISCAL_RETRY_BASE_SECONDS", "30"))

    # Jobs left in processing longer than this are handed back to the queue
    FISCAL_STUCK_JOB_MINUTES = int(os.environ.get("FISCAL_STUCK_JOB_MINUTES", "5"))
    FISCAL_POLL_BATCH_SIZE = int(os.environ.get("FISCAL_POLL_BATCH_SIZE", "5"))
    FISCAL_POLL_INTERVAL_MS = int(os.environ.get("FISCAL_POLL_INTERVAL_MS", "2000"))

    # Duplicate-request window for sale/return fiscal submissions
    IDEMPOTENCY_WINDOW_SECONDS = int(os.environ.get("IDEMPOTENCY_WINDOW_SECONDS", "60"))
