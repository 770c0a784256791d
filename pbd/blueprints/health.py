from __future__ import annotations

import os
import socket
import time
from datetime import datetime, timezone
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify
from redis import Redis
from sqlalchemy import text

from pbd.extensions import db
from pbd.gateways import gateways

bp = Blueprint("health", __name__)

APP_STARTED_AT = time.time()
HOSTNAME = socket.gethostname()

STRICT_HEALTH = os.getenv("STRICT_HEALTH", "0").lower() in {"1", "true", "yes", "on"}

BUILD_VERSION = os.getenv("BUILD_VERSION") or os.getenv("RELEASE") or os.getenv("VERSION") or "dev"
GIT_SHA = os.getenv("GIT_SHA", "")[:12]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _overall_status(parts: Dict[str, Dict[str, Any]]) -> str:
    states = [p.get("status", "ok") for p in parts.values()]
    if any(s == "fail" for s in states):
        return "fail"
    if any(s == "degraded" for s in states):
        return "degraded"
    return "ok"


def _db_check() -> Dict[str, Any]:
    try:
        db.session.execute(text("SELECT 1"))
        return {"status": "ok", "ok": True}
    except Exception as e:
        db.session.rollback()
        return {"status": "fail", "ok": False, "error": str(e)[:300]}


def _redis_check() -> Dict[str, Any]:
    if not current_app.config.get("POLL_LOCK_ENABLED"):
        return {"status": "ok", "ok": True, "reason": "lock-disabled"}
    url = current_app.config.get("REDIS_URL") or ""
    try:
        Redis.from_url(url, socket_connect_timeout=2).ping()
        return {"status": "ok", "ok": True}
    except Exception as e:
        return {"status": "fail" if STRICT_HEALTH else "degraded", "ok": False, "error": str(e)[:300]}


def _gateways_check() -> Dict[str, Any]:
    registry = gateways()
    described = registry.describe()
    missing_keys = [name for name, d in described.items() if not d.get("apiKeyPresent")]
    return {
        "status": "degraded" if missing_keys else "ok",
        "ok": not missing_keys,
        "platforms": described,
        **({"missingKeys": missing_keys} if missing_keys else {}),
    }


def _summary_payload() -> Dict[str, Any]:
    parts = {
        "database": _db_check(),
        "redis": _redis_check(),
        "gateways": _gateways_check(),
    }
    return {
        "status": _overall_status(parts),
        "version": BUILD_VERSION,
        "git": GIT_SHA,
        "hostname": HOSTNAME,
        "started_at": datetime.fromtimestamp(APP_STARTED_AT, tz=timezone.utc).isoformat(timespec="seconds"),
        "uptime_s": int(time.time() - APP_STARTED_AT),
        "now": _now_iso(),
        "parts": parts,
        "flags": {"strict": STRICT_HEALTH},
    }


@bp.get("/health")
def health():
    return jsonify(_summary_payload())


@bp.get("/status")
def status():
    p = _summary_payload()
    return jsonify({"status": p["status"], "version": p["version"], "now": p["now"]})


@bp.get("/ready")
def ready():
    p = _summary_payload()
    code = 200 if p["status"] != "fail" else 503
    return jsonify(p), code


@bp.get("/live")
def live():
    return jsonify({"status": "ok", "now": _now_iso(), "uptime_s": int(time.time() - APP_STARTED_AT)})
