# backend/stockkeeper/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockkeeper.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Retry policy for storage conflicts (deadlocks, lock timeouts, stale versions)
    STOCK_RETRY_ATTEMPTS = int(os.environ.get("STOCK_RETRY_ATTEMPTS", "3"))
    STOCK_RETRY_BACKOFF_SECONDS = float(os.environ.get("STOCK_RETRY_BACKOFF_SECONDS", "0.1"))

    # SQLite ignores SELECT ... FOR UPDATE; take the write lock up front instead
    SQLITE_BEGIN_IMMEDIATE = True

    MOVEMENT_PAGE_LIMIT_DEFAULT = 100
    MOVEMENT_PAGE_LIMIT_MAX = 1000

    TRANSACTION_PAGE_LIMIT_DEFAULT = 50
    TRANSACTION_PAGE_LIMIT_MAX = 1000
