from __future__ import annotations

import hmac
from typing import Any, Dict, Optional, cast

from flask import current_app, jsonify, request


def json_response(payload: Dict[str, Any], status: int = 200):
    resp = jsonify(payload)
    resp.status_code = int(status)
    resp.headers.setdefault("Cache-Control", "no-store, no-cache, must-revalidate, max-age=0")
    resp.headers.setdefault("Pragma", "no-cache")
    return resp


def json_ok(payload: Dict[str, Any], status: int = 200):
    payload.setdefault("ok", True)
    return json_response(payload, status)


def json_error(message: str, status: int, details: Any = None):
    return json_response({"ok": False, "error": message, "details": details}, status)


def request_payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if isinstance(data, dict) and data:
        return cast(Dict[str, Any], data)
    if request.form:
        return cast(Dict[str, Any], request.form.to_dict(flat=True))
    return {}


def query_int(name: str, default: int, *, lo: int = 1, hi: Optional[int] = None) -> int:
    raw = (request.args.get(name) or "").strip()
    try:
        v = int(raw) if raw else default
    except ValueError:
        v = default
    v = max(lo, v)
    return min(v, hi) if hi is not None else v


def cron_authorized() -> bool:
    """True when no CRON_SECRET is configured or the bearer token matches."""
    secret = (current_app.config.get("CRON_SECRET") or "").strip()
    if not secret:
        return True
    auth = request.headers.get("Authorization", "")
    token = auth[7:].strip() if auth.lower().startswith("bearer ") else ""
    return bool(token) and hmac.compare_digest(token, secret)
