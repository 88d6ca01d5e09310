"""Centralized application configuration for all environments."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Final

from dotenv import load_dotenv

BASE_DIR: Final[Path] = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"

# Runtime env wins over file values
load_dotenv(dotenv_path=ENV_PATH, override=False)


def _str_to_bool(value: str | bool | None, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _csv_tuple(raw: str, fallback: tuple[str, ...]) -> tuple[str, ...]:
    values = [item.strip().lower() for item in raw.split(",") if item.strip()]
    return tuple(values) or fallback


def _determine_database_url() -> str:
    """
    Return a connection string using the following precedence:
    1. Explicit DATABASE_URL
    2. Individual DB_* components (for PostgreSQL)
    3. Local SQLite fallback (for onboarding / tests)
    """
    explicit_url = os.getenv("DATABASE_URL")
    if explicit_url:
        return explicit_url

    username = os.getenv("DB_USERNAME")
    password = os.getenv("DB_PASSWORD")
    host = os.getenv("DB_HOST")
    port = os.getenv("DB_PORT")
    name = os.getenv("DB_NAME")

    if all([username, password, host, port, name]):
        driver = os.getenv("DB_DRIVER", "postgresql+psycopg2")
        return f"{driver}://{username}:{password}@{host}:{port}/{name}"

    fallback_path = BASE_DIR / "db" / "pennyekart.db"
    fallback_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{fallback_path.as_posix()}"


class Config:
    """Default runtime configuration shared across Flask, services, and scripts."""

    APP_NAME: Final[str] = os.getenv("APP_NAME", "Pennyekart")
    APP_ENV: Final[str] = os.getenv("APP_ENV", "development")

    SECRET_KEY: Final[str] = os.getenv("SECRET_KEY", "change-me-in-prod")
    DEBUG: Final[bool] = _str_to_bool(os.getenv("FLASK_DEBUG"), default=APP_ENV == "development")
    TESTING: Final[bool] = _str_to_bool(os.getenv("FLASK_TESTING"), default=False)

    FLASK_RUN_HOST: Final[str] = os.getenv("FLASK_RUN_HOST", "0.0.0.0")
    FLASK_RUN_PORT: Final[int] = int(os.getenv("FLASK_RUN_PORT", "5000"))

    # Database
    DATABASE_URL: Final[str] = _determine_database_url()
    SQL_ECHO: Final[bool] = _str_to_bool(os.getenv("SQL_ECHO"), default=False)
    DB_POOL_SIZE: Final[int] = int(os.getenv("DB_POOL_SIZE", "10"))
    DB_MAX_OVERFLOW: Final[int] = int(os.getenv("DB_MAX_OVERFLOW", "20"))

    # Flash sales
    FLASH_SALE_POLL_SECONDS: Final[int] = int(os.getenv("FLASH_SALE_POLL_SECONDS", "60"))
    COUNTDOWN_TICK_SECONDS: Final[float] = float(os.getenv("COUNTDOWN_TICK_SECONDS", "1"))
    FLASH_SALE_WATCHER_ENABLED: Final[bool] = _str_to_bool(os.getenv("FLASH_SALE_WATCHER_ENABLED"), default=False)
    DEFAULT_BANNER_COLOR: Final[str] = os.getenv("DEFAULT_BANNER_COLOR", "#ef4444")
    CURRENCY_SYMBOL: Final[str] = os.getenv("CURRENCY_SYMBOL", "₹")
    FLASH_SALE_TITLE_MAX_LENGTH: Final[int] = int(os.getenv("FLASH_SALE_TITLE_MAX_LENGTH", "255"))

    # App settings keys
    FOOD_DELIVERY_URL_KEY: Final[str] = os.getenv("FOOD_DELIVERY_URL_KEY", "pennycarbs_url")
    ANDROID_APP_URL_KEY: Final[str] = os.getenv("ANDROID_APP_URL_KEY", "android_app_url")
    IOS_APP_URL_KEY: Final[str] = os.getenv("IOS_APP_URL_KEY", "ios_app_url")
    URL_PROBE_TIMEOUT_SECONDS: Final[float] = float(os.getenv("URL_PROBE_TIMEOUT_SECONDS", "5"))

    # Blob storage (uploaded images)
    BLOB_STORAGE_DIR: Final[Path] = Path(
        os.getenv("BLOB_STORAGE_DIR", (BASE_DIR / "static" / "uploads").as_posix())
    )
    BLOB_PUBLIC_BASE_URL: Final[str] = os.getenv("BLOB_PUBLIC_BASE_URL", "/static/uploads")
    BLOB_ALLOWED_EXTENSIONS: Final[tuple[str, ...]] = _csv_tuple(
        os.getenv("BLOB_ALLOWED_EXTENSIONS", "jpg,jpeg,png,gif,webp"),
        ("jpg", "jpeg", "png", "gif", "webp"),
    )
    BLOB_MAX_BYTES: Final[int] = int(os.getenv("BLOB_MAX_BYTES", str(5 * 1024 * 1024)))

    # Observability
    STRUCTURED_LOGS_ENABLED: Final[bool] = _str_to_bool(os.getenv("STRUCTURED_LOGS_ENABLED"), default=True)
    LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO")
    REQUEST_ID_HEADER: Final[str] = os.getenv("REQUEST_ID_HEADER", "X-Request-ID")
    METRICS_MAX_EVENTS: Final[int] = int(os.getenv("METRICS_MAX_EVENTS", "100"))

    DEFAULT_TIMEZONE: Final[str] = os.getenv("DEFAULT_TIMEZONE", "UTC")

    @classmethod
    def configure_app(cls, app: Any) -> None:
        """Apply core configuration to a Flask app instance."""
        app.config["SECRET_KEY"] = cls.SECRET_KEY
        app.config["ENV"] = cls.APP_ENV
        app.config["DEBUG"] = cls.DEBUG
        app.config["TESTING"] = cls.TESTING
        app.config["SQLALCHEMY_DATABASE_URI"] = cls.DATABASE_URL
        app.config["SQLALCHEMY_ECHO"] = cls.SQL_ECHO
        app.config["MAX_CONTENT_LENGTH"] = cls.BLOB_MAX_BYTES
        cls.BLOB_STORAGE_DIR.mkdir(parents=True, exist_ok=True)
        app.config["BLOB_STORAGE_DIR"] = str(cls.BLOB_STORAGE_DIR)
        app.config["BLOB_PUBLIC_BASE_URL"] = cls.BLOB_PUBLIC_BASE_URL
        app.config["STRUCTURED_LOGS_ENABLED"] = cls.STRUCTURED_LOGS_ENABLED
        app.config["FLASH_SALE_POLL_SECONDS"] = cls.FLASH_SALE_POLL_SECONDS
