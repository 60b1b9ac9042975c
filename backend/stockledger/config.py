# backend/stockledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Tax is applied on the discounted subtotal; rate is a percentage (e.g. "8.5")
    ENABLE_TAX = _env_bool("ENABLE_TAX", False)
    TAX_RATE_PERCENT = os.environ.get("TAX_RATE_PERCENT", "0")

    # Receipt numbers look like S20250412-153012
    RECEIPT_PREFIX = os.environ.get("RECEIPT_PREFIX", "S")

    # How long a writer waits for a product lock before giving up (seconds)
    LOCK_TIMEOUT_SECONDS = float(os.environ.get("LOCK_TIMEOUT_SECONDS", "5"))

    # Log a warning whenever a sale leaves a product at or below its threshold
    LOW_STOCK_LOGGING = _env_bool("LOW_STOCK_LOGGING", True)
