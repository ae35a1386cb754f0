# backend/storedesk/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storedesk.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storedesk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Day/month/year report windows are fetched on this many threads (1 = sequential)
    REPORT_WINDOW_WORKERS = int(os.environ.get("REPORT_WINDOW_WORKERS", "3"))
    TRENDING_LIMIT = int(os.environ.get("TRENDING_LIMIT", "20"))

    # IANA zone whose calendar defines report days, months and years
    STORE_TIMEZONE = os.environ.get("STORE_TIMEZONE", "Asia/Kolkata")

    # Bounded retries when an auto-assigned invoice number collides
    INVOICE_NUMBER_ATTEMPTS = int(os.environ.get("INVOICE_NUMBER_ATTEMPTS", "3"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    REPORT_WINDOW_WORKERS = 1
    STORE_TIMEZONE = "UTC"
