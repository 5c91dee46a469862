# backend/shopledger/config.py
from __future__ import annotations
import os
from decimal import Decimal


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/shopledger.sqlite3; PostgreSQL in production
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///shopledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Persistence gateway
    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))
    DB_RETRY_BACKOFF_SECONDS = float(os.environ.get("DB_RETRY_BACKOFF_SECONDS", "1.0"))
    DB_STATEMENT_TIMEOUT_MS = int(os.environ.get("DB_STATEMENT_TIMEOUT_MS", "30000"))
    DB_HEALTH_CHECK_INTERVAL = float(os.environ.get("DB_HEALTH_CHECK_INTERVAL", "30"))
    DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", "20"))

    # Ledger
    SALE_TOTAL_TOLERANCE = Decimal(os.environ.get("SALE_TOTAL_TOLERANCE", "0.01"))
    PROFIT_SCAN_LIMIT = int(os.environ.get("PROFIT_SCAN_LIMIT", "1000"))

    # Staff accounts
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
    PASSWORD_MIN_LENGTH = int(os.environ.get("PASSWORD_MIN_LENGTH", "6"))
    MOBILE_NUMBER_PATTERN = os.environ.get("MOBILE_NUMBER_PATTERN", r"^\+256\d{9}$")

    # List endpoints
    DEFAULT_PAGE_SIZE = 50
    MAX_PAGE_SIZE = 1000


def engine_options(uri: str, pool_size: int) -> dict:
    """SQLAlchemy engine options for the configured backend."""
    if uri.startswith("sqlite"):
        return {}
    return {
        "pool_size": pool_size,
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "connect_args": {"connect_timeout": 10},
    }
