# backend/stockbook/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockbook.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockbook.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Invoice numbers: {INVOICE_PREFIX}-{year}-{sequence padded to INVOICE_PAD}
    INVOICE_PREFIX = os.environ.get("INVOICE_PREFIX", "INV")
    INVOICE_PAD = int(os.environ.get("INVOICE_PAD", "4"))

    CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "Rp")

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))

    # Attempts for run_with_retry (lock timeouts, invoice number collisions)
    RETRY_ATTEMPTS = int(os.environ.get("RETRY_ATTEMPTS", "3"))

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    ]


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "WARNING"
    RETRY_ATTEMPTS = 3
