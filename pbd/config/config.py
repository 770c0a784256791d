# pbd/config/config.py
# Canonical Powered by Donation configuration (env-first, production-safe)

from __future__ import annotations

import os
from typing import Optional


# ----------------------------
# Env helpers
# ----------------------------
_TRUTHY = {"1", "true", "yes", "on", "y"}
_FALSY = {"0", "false", "no", "off", "n"}


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return default
    s = str(v).strip()
    return s if s else default


def _bool(name: str, default: bool = False) -> bool:
    v = _env(name)
    if v is None:
        return default
    s = v.strip().lower()
    if s in _TRUTHY:
        return True
    if s in _FALSY:
        return False
    return default


def _int(name: str, default: int) -> int:
    v = _env(name)
    if v is None:
        return default
    try:
        return int(str(v).strip())
    except ValueError:
        return default


def _float(name: str, default: float) -> float:
    v = _env(name)
    if v is None:
        return default
    try:
        return float(str(v).strip())
    except ValueError:
        return default


def _clean_base_url(v: Optional[str]) -> str:
    return (v or "").strip().rstrip("/")


# ----------------------------
# Config classes
# ----------------------------
class BaseConfig:
    """
    Env-first config:
    - every setting can be overridden via environment variables
    - safe defaults for local dev (JustGiving staging)
    """

    ENV = (_env("APP_ENV") or _env("ENV") or _env("FLASK_ENV") or "base").strip().lower()

    DEBUG = _bool("FLASK_DEBUG", False)
    TESTING = _bool("TESTING", False)

    SECRET_KEY = _env("SECRET_KEY", "dev-change-me")

    PUBLIC_BASE_URL = _clean_base_url(_env("PUBLIC_BASE_URL", "http://localhost:3000"))
    CORS_ORIGINS = _env("CORS_ORIGINS", "*")

    LOG_LEVEL = _env("LOG_LEVEL", "INFO")
    SENTRY_DSN = _env("SENTRY_DSN", "")

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = _env("SQLALCHEMY_DATABASE_URI", _env("DATABASE_URL", "sqlite:///pbd-dev.db"))
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
    AUTO_CREATE_SQLITE = _bool("AUTO_CREATE_SQLITE", True)

    # JustGiving (staging defaults)
    JUSTGIVING_API_KEY = _env("JUSTGIVING_API_KEY", "")
    JUSTGIVING_API_URL = _clean_base_url(_env("JUSTGIVING_API_URL", "https://api.staging.justgiving.com"))
    JUSTGIVING_CHECKOUT_URL = _clean_base_url(
        _env("JUSTGIVING_CHECKOUT_URL", "https://link.staging.justgiving.com")
    )
    JUSTGIVING_RETURN_URL = _clean_base_url(_env("JUSTGIVING_RETURN_URL", PUBLIC_BASE_URL))
    JUSTGIVING_CURRENCY = _env("JUSTGIVING_CURRENCY", "GBP")

    # Every.org (registered only when enabled)
    EVERYORG_ENABLED = _bool("EVERYORG_ENABLED", False)
    EVERYORG_API_KEY = _env("EVERYORG_API_KEY", "")
    EVERYORG_API_URL = _clean_base_url(_env("EVERYORG_API_URL", "https://partners.every.org/v0.2"))
    EVERYORG_DONATE_URL = _clean_base_url(_env("EVERYORG_DONATE_URL", "https://www.every.org"))
    EVERYORG_CURRENCY = _env("EVERYORG_CURRENCY", "USD")

    GATEWAY_TIMEOUT_SECONDS = _float("GATEWAY_TIMEOUT_SECONDS", 15.0)
    GATEWAY_MAX_RETRIES = _int("GATEWAY_MAX_RETRIES", 2)

    # Donation request lifecycle
    DONATION_TIMEOUT_MINUTES = _int("DONATION_TIMEOUT_MINUTES", 30)
    REFERENCE_MAX_ATTEMPTS = _int("REFERENCE_MAX_ATTEMPTS", 3)
    CONFIRM_MAX_ATTEMPTS = _int("CONFIRM_MAX_ATTEMPTS", 3)

    # Reconciliation poller
    POLL_BATCH_LIMIT = _int("POLL_BATCH_LIMIT", 500)
    POLL_INTERVAL_MINUTES = _int("POLL_INTERVAL_MINUTES", 5)
    POLL_LOCK_ENABLED = _bool("POLL_LOCK_ENABLED", True)
    POLL_LOCK_TIMEOUT_SECONDS = _int("POLL_LOCK_TIMEOUT_SECONDS", 600)
    REDIS_URL = _env("REDIS_URL", "redis://localhost:6379/0")
    CRON_SECRET = _env("CRON_SECRET", "")

    # Charity cache
    CHARITY_CACHE_TTL_HOURS = _int("CHARITY_CACHE_TTL_HOURS", 24)
    POPULATE_DELAY_SECONDS = _float("POPULATE_DELAY_SECONDS", 0.5)

    @classmethod
    def init_app(cls, app) -> None:
        """
        Boot hook called from create_app() after app.config.from_object(...)
        """
        uri = str(app.config.get("SQLALCHEMY_DATABASE_URI") or "")

        # Heroku-style URLs
        if uri.startswith("postgres://"):
            app.config["SQLALCHEMY_DATABASE_URI"] = uri.replace("postgres://", "postgresql://", 1)

        if uri.startswith("sqlite:"):
            opts = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
            connect_args = dict(opts.get("connect_args") or {})
            connect_args.setdefault("check_same_thread", False)
            opts["connect_args"] = connect_args
            opts.setdefault("pool_pre_ping", True)
            app.config["SQLALCHEMY_ENGINE_OPTIONS"] = opts


class DevelopmentConfig(BaseConfig):
    ENV = "development"
    DEBUG = True

    POLL_LOCK_ENABLED = _bool("POLL_LOCK_ENABLED", False)


class TestingConfig(BaseConfig):
    ENV = "testing"
    TESTING = True
    DEBUG = False

    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS: dict = {}

    JUSTGIVING_API_KEY = "test-app-id"
    JUSTGIVING_API_URL = "https://api.justgiving.test"
    JUSTGIVING_CHECKOUT_URL = "https://link.justgiving.test"
    JUSTGIVING_RETURN_URL = "https://pbd.test"

    EVERYORG_ENABLED = False
    GATEWAY_MAX_RETRIES = 0

    POLL_LOCK_ENABLED = False
    CRON_SECRET = ""
    POPULATE_DELAY_SECONDS = 0.0
    SENTRY_DSN = ""


class ProductionConfig(BaseConfig):
    ENV = "production"
    DEBUG = False

    @classmethod
    def init_app(cls, app) -> None:
        super().init_app(app)

        # ---- Production guardrails (fail fast) ----
        sk = app.config.get("SECRET_KEY")
        if not sk or sk == "dev-change-me":
            raise RuntimeError("SECRET_KEY must be set to a strong random value in production.")

        ret = (app.config.get("JUSTGIVING_RETURN_URL") or "").strip()
        if ret.startswith("http://"):
            raise RuntimeError("JUSTGIVING_RETURN_URL must be https:// in production.")

        if not app.config.get("JUSTGIVING_API_KEY"):
            raise RuntimeError("JUSTGIVING_API_KEY must be set in production.")

        if _bool("FLASK_DEBUG", False):
            raise RuntimeError("FLASK_DEBUG must be 0 in production.")
