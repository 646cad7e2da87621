from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tabs.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tabs.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Monitor boards and PDV terminals re-read open tabs on this cadence
    POLL_INTERVAL_SECONDS = float(os.environ.get("POLL_INTERVAL_SECONDS", "3"))

    # How long a second operator waits for a tab another operator is closing
    CHECKOUT_LOCK_TIMEOUT_SECONDS = float(os.environ.get("CHECKOUT_LOCK_TIMEOUT_SECONDS", "5"))

    # Counter sales have no persistent target; consolidated orders use this number
    DEFAULT_COUNTER_NUMBER = os.environ.get("DEFAULT_COUNTER_NUMBER", "B")
