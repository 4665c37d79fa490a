# backend/tillbook/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tillbook.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tillbook.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Header carrying the already-authenticated actor id (set by the gateway)
    IDENTITY_HEADER = os.environ.get("IDENTITY_HEADER", "X-Actor-Id")

    # VAT is price-inclusive; basis points (1600 = 16%)
    VAT_RATE_BPS = int(os.environ.get("VAT_RATE_BPS", "1600"))

    # async: background thread after checkout
    # sync: post inside the request after commit
    # deferred: only queue; picked up by `flask journals retry`
    JOURNAL_POSTING_MODE = os.environ.get("JOURNAL_POSTING_MODE", "async")
    POSTING_WORKERS = int(os.environ.get("POSTING_WORKERS", "2"))

    SHIFT_FEED_KEEPALIVE_SECONDS = float(os.environ.get("SHIFT_FEED_KEEPALIVE_SECONDS", "15"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    JOURNAL_POSTING_MODE = "sync"
    SHIFT_FEED_KEEPALIVE_SECONDS = 0.05
