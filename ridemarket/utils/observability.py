from __future__ import annotations

import hashlib
import json
import os
import time
import uuid

from flask import g, request

# Paths hit by every card render; logged at debug level only.
_QUIET_PREFIXES = ("/api/health", "/api/placeholder/", "/api/storage/")

_REDACTED_HEADERS = frozenset({"authorization", "apikey", "cookie", "set-cookie", "stripe-signature"})


def get_request_id() -> str:
    return getattr(g, "request_id", "")


def _digest(value: str, salt: str) -> str:
    return hashlib.sha256(f"{salt}:{value}".encode("utf-8")).hexdigest()[:16]


def _sample_rate(raw: str | None) -> float:
    try:
        rate = float((raw or "0").strip())
    except ValueError:
        return 0.0
    return max(0.0, min(rate, 1.0))


def init_sentry(app) -> bool:
    """Start Sentry when SENTRY_DSN is set. Returns whether it was started."""
    dsn = (os.getenv("SENTRY_DSN") or "").strip()
    if not dsn:
        app.logger.info("sentry_disabled reason=no_dsn")
        return False
    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=dsn,
            environment=os.getenv("SENTRY_ENVIRONMENT") or os.getenv("RIDEMARKET_ENV") or "dev",
            release=os.getenv("GIT_SHA") or None,
            integrations=[FlaskIntegration()],
            send_default_pii=False,
            traces_sample_rate=_sample_rate(os.getenv("SENTRY_TRACES_SAMPLE_RATE")),
            before_send=_before_send_scrub,
        )
    except Exception as e:
        app.logger.warning("sentry_init_failed err=%s", e)
        return False
    app.logger.info("sentry_enabled")
    return True


def _before_send_scrub(event, hint):
    req = event.get("request")
    if not isinstance(req, dict):
        return event
    headers = req.get("headers")
    if isinstance(headers, dict):
        req["headers"] = {k: ("[REDACTED]" if k.lower() in _REDACTED_HEADERS else v) for k, v in headers.items()}
    if req.get("data") and _is_multipart(req):
        req["data"] = "[UPLOAD]"
    return event


def _is_multipart(req: dict) -> bool:
    headers = req.get("headers") or {}
    content_type = next((v for k, v in headers.items() if k.lower() == "content-type"), "")
    return "multipart/form-data" in str(content_type)


def install_request_observers(app) -> None:
    slow_ms = float(os.getenv("SLOW_REQUEST_MS") or 1500)

    @app.before_request
    def _begin_request():
        g.request_id = (request.headers.get("X-Request-Id") or "").strip() or str(uuid.uuid4())
        g.request_started_at = time.perf_counter()

    @app.after_request
    def _finish_request(response):
        rid = get_request_id() or str(uuid.uuid4())
        response.headers["X-Request-Id"] = rid

        started = getattr(g, "request_started_at", None)
        latency_ms = round((time.perf_counter() - started) * 1000.0, 2) if started is not None else None
        principal = getattr(g, "principal", None)
        salt = str(app.config.get("SECRET_KEY") or "ridemarket")
        line = json.dumps(
            {
                "request_id": rid,
                "method": request.method,
                "path": request.path,
                "endpoint": request.endpoint,
                "status": response.status_code,
                "latency_ms": latency_ms,
                "principal": _digest(principal.id, salt) if principal is not None else None,
                "bytes_in": request.content_length or 0,
            },
            sort_keys=True,
        )
        if latency_ms is not None and latency_ms >= slow_ms:
            app.logger.warning("slow_request %s", line)
        elif request.path.startswith(_QUIET_PREFIXES):
            app.logger.debug("request %s", line)
        else:
            app.logger.info("request %s", line)
        return response
