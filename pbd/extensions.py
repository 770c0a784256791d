import logging
import time
from typing import Any, Callable

from flask_cors import CORS
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

log = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Core singletons
# ─────────────────────────────────────────────────────────────
db = SQLAlchemy()
migrate = Migrate()
cors = CORS()


# ─────────────────────────────────────────────────────────────
# Safe DB helpers
# ─────────────────────────────────────────────────────────────
def safe_commit() -> bool:
    try:
        db.session.commit()
        return True
    except Exception as e:
        log.error("DB commit failed: %s", e, exc_info=True)
        db.session.rollback()
        return False


def with_db_retry(retries: int = 2, backoff: float = 0.2):
    def _wrap(fn: Callable[..., Any]) -> Callable[..., Any]:
        def _inner(*args: Any, **kwargs: Any):
            attempt = 0
            while True:
                try:
                    return fn(*args, **kwargs)
                except Exception:
                    db.session.rollback()
                    attempt += 1
                    if attempt > retries:
                        raise
                    time.sleep(float(backoff) * attempt)

        return _inner

    return _wrap


# ─────────────────────────────────────────────────────────────
# Init all extensions
# ─────────────────────────────────────────────────────────────
def init_all_extensions(app: Any, *, cors_origins: Any = "*") -> None:
    db.init_app(app)
    migrate.init_app(app, db, compare_type=True, render_as_batch=True)

    # Browser rule: cannot use credentials with wildcard origin
    supports_credentials = cors_origins != "*"
    cors.init_app(
        app,
        supports_credentials=supports_credentials,
        resources={r"/api/*": {"origins": cors_origins}},
        expose_headers=["X-Request-ID"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
        methods=["GET", "POST", "OPTIONS"],
    )


__all__ = [
    "db",
    "migrate",
    "cors",
    "safe_commit",
    "with_db_retry",
    "init_all_extensions",
]
