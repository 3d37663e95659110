from __future__ import annotations

from flask import jsonify

from ridemarket.utils.observability import get_request_id


def error_response(code: str, message: str, status: int, **extra):
    payload = {
        "ok": False,
        "error": code,
        "message": message,
        "status": int(status),
    }
    payload.update(extra)
    rid = (get_request_id() or "").strip()
    if rid:
        payload["trace_id"] = rid
    return jsonify(payload), int(status)
