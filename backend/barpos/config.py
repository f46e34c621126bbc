# backend/barpos/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///barpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Global stock enforcement switch. When off, reserve/commit/release
    # still write movements but never touch or check inventory records.
    INVENTORY_ENFORCEMENT = _env_flag("INVENTORY_ENFORCEMENT", True)

    # "Local midnight" for daily code sequences
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "UTC")

    ORDER_CODE_PREFIX = os.environ.get("ORDER_CODE_PREFIX", "P")
    BALANCE_CODE_PREFIX = os.environ.get("BALANCE_CODE_PREFIX", "QRC")

    # Base for public QR links (rendered to images elsewhere)
    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "http://localhost:5000")

    DEFAULT_LOW_STOCK_THRESHOLD = int(os.environ.get("DEFAULT_LOW_STOCK_THRESHOLD", "10"))

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    INVENTORY_ENFORCEMENT = True
    BUSINESS_TIMEZONE = "UTC"
    PUBLIC_BASE_URL = "http://testserver"
    BCRYPT_ROUNDS = 4
