# pbd/__init__.py
# Powered by Donation: Flask app factory
# Goals:
# - deterministic config resolution (FLASK_CONFIG / APP_ENV)
# - one JSON error shape for every API failure
# - gateway clients built once per app from explicit settings

from __future__ import annotations

import logging
import os
import time
from typing import Any, Optional, Type, Union
from uuid import uuid4

import sentry_sdk
from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from sentry_sdk.integrations.flask import FlaskIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from werkzeug.exceptions import HTTPException

# IMPORTANT: never override real env vars in prod
load_dotenv(override=False)

from pbd.config import CONFIG_BY_NAME  # noqa: E402
from pbd.errors import DonationError  # noqa: E402
from pbd.extensions import db, init_all_extensions  # noqa: E402
from pbd.gateways import GatewayRegistry, init_gateways  # noqa: E402

ConfigLike = Union[str, Type[Any]]

__version__ = "0.4.0"


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _resolve_config(target: Optional[ConfigLike]) -> ConfigLike:
    """
    Choose config class/module path.
    - If explicitly provided, respect it (class, short name, or dotted path).
    - Else if FLASK_CONFIG is set, use it.
    - Else pick by APP_ENV / ENV / FLASK_ENV, defaulting to development.
    """
    if target is None:
        target = (os.getenv("FLASK_CONFIG") or "").strip() or None

    if target is None:
        env = ""
        for key in ("APP_ENV", "ENV", "FLASK_ENV"):
            env = (os.getenv(key) or "").strip().lower()
            if env:
                break
        if env in {"prod", "production"}:
            return CONFIG_BY_NAME["production"]
        if env in {"test", "testing"}:
            return CONFIG_BY_NAME["testing"]
        return CONFIG_BY_NAME["development"]

    if isinstance(target, str) and target.lower() in CONFIG_BY_NAME:
        return CONFIG_BY_NAME[target.lower()]
    return target


def _wants_json_response() -> bool:
    path = request.path or ""
    if path.startswith("/api/"):
        return True
    accept = (request.headers.get("Accept") or "").lower()
    return ("application/json" in accept) or bool(request.is_json)


def _json_error(message: str, status: int, details: Any = None):
    resp = jsonify({"ok": False, "error": str(message), "details": details})
    resp.status_code = int(status)
    return resp


def _parse_cors_origins(raw: Optional[str]) -> Union[str, list]:
    raw = (raw or "*").strip()
    if raw in {"", "*"}:
        return "*"
    if "," in raw:
        return [o.strip() for o in raw.split(",") if o.strip()]
    return raw


# -----------------------------------------------------------------------------
# Logging with request_id
# -----------------------------------------------------------------------------
class _RequestIDFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        try:
            record.request_id = getattr(g, "request_id", "-")
        except RuntimeError:
            # outside app/request context (celery, cli)
            record.request_id = "-"
        return True


def _configure_logging(app: Flask) -> None:
    fmt = "%(asctime)s [%(levelname)s] %(name)s [rid=%(request_id)s]: %(message)s"
    root = logging.getLogger()

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt))
        handler.addFilter(_RequestIDFilter())
        root.addHandler(handler)
    else:
        for h in root.handlers:
            if not any(isinstance(f, _RequestIDFilter) for f in h.filters):
                h.addFilter(_RequestIDFilter())
            if not getattr(h, "formatter", None) or "%(request_id)s" not in getattr(h.formatter, "_fmt", ""):
                h.setFormatter(logging.Formatter(fmt))

    root.setLevel(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    logging.getLogger("werkzeug").setLevel(str(app.config.get("WERKZEUG_LOG_LEVEL", "WARNING")).upper())
    app.logger.info("Loaded config: ENV=%s DEBUG=%s", app.config.get("ENV", "?"), app.debug)


# -----------------------------------------------------------------------------
# Integrations
# -----------------------------------------------------------------------------
def _init_sentry(app: Flask) -> None:
    dsn = (app.config.get("SENTRY_DSN") or "").strip()
    if not dsn:
        return
    sentry_sdk.init(
        dsn=dsn,
        integrations=[
            FlaskIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.0")),
        send_default_pii=False,
        environment=app.config.get("ENV", "development"),
        release=os.getenv("GIT_COMMIT"),
    )
    app.logger.info("Sentry initialized")


def _maybe_create_sqlite_tables(app: Flask) -> None:
    uri = (app.config.get("SQLALCHEMY_DATABASE_URI") or "").strip()
    if not uri.startswith("sqlite"):
        return
    if app.config.get("AUTO_CREATE_SQLITE", True) is not True:
        return
    with app.app_context():
        db.create_all()


# -----------------------------------------------------------------------------
# Request lifecycle + errors
# -----------------------------------------------------------------------------
def _register_request_lifecycle(app: Flask) -> None:
    @app.before_request
    def _bootstrap_request():
        g.request_id = request.headers.get("X-Request-ID") or uuid4().hex
        g._start_ts = time.perf_counter()

    @app.after_request
    def _attach_request_headers(resp):
        resp.headers["X-Request-ID"] = getattr(g, "request_id", "-")
        start = getattr(g, "_start_ts", None)
        if start:
            resp.headers["X-Response-Time-ms"] = str(int((time.perf_counter() - start) * 1000))
        return resp


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DonationError)
    def _donation_err(err: DonationError):
        if err.status_code >= 500:
            app.logger.warning("%s: %s (%s)", type(err).__name__, err.message, err.details)
        db.session.rollback()
        resp = jsonify(err.to_dict())
        resp.status_code = err.status_code
        return resp

    @app.errorhandler(HTTPException)
    def _http_err(err: HTTPException):
        if _wants_json_response():
            return _json_error(err.description or err.name, err.code or 500)
        return err

    @app.errorhandler(Exception)
    def _uncaught(err: Exception):
        app.logger.exception("Unhandled error")
        db.session.rollback()
        return _json_error("Internal Server Error", 500, {"requestId": getattr(g, "request_id", "-")})


def _register_health_endpoints(app: Flask) -> None:
    @app.get("/healthz")
    def _healthz():
        return {
            "status": "ok",
            "env": app.config.get("ENV", "unknown"),
            "request_id": getattr(g, "request_id", "-"),
        }

    @app.get("/version")
    def _version():
        return {
            "version": os.getenv("GIT_COMMIT") or __version__,
            "env": app.config.get("ENV"),
            "public_base_url": app.config.get("PUBLIC_BASE_URL") or "",
        }


def _register_blueprints(app: Flask) -> None:
    from pbd.blueprints.charities import bp as charities_bp
    from pbd.blueprints.donations import bp as donations_bp
    from pbd.blueprints.health import bp as health_bp

    for bp in (donations_bp, charities_bp, health_bp):
        app.register_blueprint(bp)


# -----------------------------------------------------------------------------
# App Factory
# -----------------------------------------------------------------------------
def create_app(
    config_class: Optional[ConfigLike] = None,
    *,
    gateway_registry: Optional[GatewayRegistry] = None,
) -> Flask:
    app = Flask(__name__)

    cfg = _resolve_config(config_class)
    app.config.from_object(cfg)
    init_hook = getattr(cfg, "init_app", None)
    if callable(init_hook):
        init_hook(app)

    app.config.setdefault("PROPAGATE_EXCEPTIONS", False)
    app.url_map.strict_slashes = False

    _configure_logging(app)
    _init_sentry(app)

    init_all_extensions(app, cors_origins=_parse_cors_origins(app.config.get("CORS_ORIGINS")))
    _maybe_create_sqlite_tables(app)
    init_gateways(app, gateway_registry)

    _register_request_lifecycle(app)
    _register_error_handlers(app)
    _register_blueprints(app)
    _register_health_endpoints(app)

    from pbd.cli import register_cli

    register_cli(app)
    return app


__all__ = ["create_app", "__version__"]
