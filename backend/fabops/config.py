# backend/fabops/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/fabops.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///fabops.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Optimistic-lock retry for inventory read-modify-write
    INVENTORY_RETRY_ATTEMPTS = int(os.environ.get("INVENTORY_RETRY_ATTEMPTS", "3"))
    INVENTORY_RETRY_BACKOFF = float(os.environ.get("INVENTORY_RETRY_BACKOFF", "0.1"))

    # Consumption may drive on-hand below zero (stock is reconciled later)
    ALLOW_NEGATIVE_INVENTORY = _env_bool("ALLOW_NEGATIVE_INVENTORY", True)
