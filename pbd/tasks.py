"""
Celery entrypoint for the scheduled reconciliation poll.

    celery -A pbd.tasks worker --beat

Overlapping beat deliveries are skipped through a non-blocking Redis lock;
the conditional updates in the store keep concurrent runs correct anyway.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from celery import Celery
from celery.schedules import crontab
from flask import Flask
from redis import Redis
from redis.exceptions import LockError

from pbd.config import BaseConfig

log = logging.getLogger(__name__)

LOCK_KEY = "pbd:reconciliation-lock"

REDIS_URL = BaseConfig.REDIS_URL
celery = Celery("pbd", broker=REDIS_URL, backend=REDIS_URL)
celery.conf.update(
    task_acks_late=False,
    task_ignore_result=False,
    result_expires=3600,
    timezone="UTC",
)

_flask_app: Optional[Flask] = None


def _task_app() -> Flask:
    global _flask_app
    if _flask_app is None:
        from pbd import create_app

        _flask_app = create_app()
    return _flask_app


def run_locked_poll(app: Flask, *, trigger: str = "celery", redis_client: Any = None) -> Dict[str, Any]:
    """Run one poll under the app context, skipping if another run holds the lock."""
    from pbd.gateways import gateways
    from pbd.services import ReconciliationPoller

    with app.app_context():
        if not app.config.get("POLL_LOCK_ENABLED"):
            return ReconciliationPoller.from_app(gateways()).run(trigger=trigger).as_dict()

        client = redis_client or Redis.from_url(app.config["REDIS_URL"])
        lock = client.lock(LOCK_KEY, timeout=int(app.config.get("POLL_LOCK_TIMEOUT_SECONDS", 600)))
        if not lock.acquire(blocking=False):
            log.info("Reconciliation already running elsewhere; skipping this tick")
            return {"skipped": True, "reason": "locked"}
        try:
            return ReconciliationPoller.from_app(gateways()).run(trigger=trigger).as_dict()
        finally:
            try:
                lock.release()
            except LockError:
                log.warning("Reconciliation lock expired before release")


@celery.task(name="pbd.tasks.check_pending_donations")
def check_pending_donations() -> Dict[str, Any]:
    return run_locked_poll(_task_app(), trigger="celery")


celery.conf.beat_schedule = {
    "check-pending-donations": {
        "task": "pbd.tasks.check_pending_donations",
        "schedule": crontab(minute=f"*/{max(1, BaseConfig.POLL_INTERVAL_MINUTES)}"),
    }
}
