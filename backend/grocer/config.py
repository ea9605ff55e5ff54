# backend/grocer/config.py
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

    # SQLite DB stored in backend/instance/grocer.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///grocer.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Admin panel dev servers
    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    ]

    # Order intake
    ORDER_CODE_PREFIX = os.environ.get("ORDER_CODE_PREFIX", "ORD")
    ORDER_CODE_ATTEMPTS = int(os.environ.get("ORDER_CODE_ATTEMPTS", "5"))
    ORDERS_MAX_PAGE_SIZE = int(os.environ.get("ORDERS_MAX_PAGE_SIZE", "100"))

    # Product resolution for mobile clients that send integer fingerprints
    RESOLVER_ALTERNATE_HASHES = _env_bool("RESOLVER_ALTERNATE_HASHES", True)
    RESOLVER_SCAN_LIMIT = int(os.environ.get("RESOLVER_SCAN_LIMIT", "100"))

    # Push notifications: "console", "fcm" or "disabled"
    NOTIFICATION_BACKEND = os.environ.get("NOTIFICATION_BACKEND", "console")
    FCM_PROJECT_ID = os.environ.get("FCM_PROJECT_ID")
    FCM_ACCESS_TOKEN = os.environ.get("FCM_ACCESS_TOKEN")
    FCM_TIMEOUT_SECONDS = float(os.environ.get("FCM_TIMEOUT_SECONDS", "5"))
