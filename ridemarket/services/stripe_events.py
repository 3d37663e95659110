from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)

ActivationHandler = Callable[[str, dict], None]

_activation_handlers: list[ActivationHandler] = []


def register_account_activation_handler(fn: ActivationHandler) -> ActivationHandler:
    """Call ``fn(account_id, account)`` when a connected account can take charges."""
    if fn not in _activation_handlers:
        _activation_handlers.append(fn)
    return fn


def clear_account_activation_handlers() -> None:
    _activation_handlers.clear()


def handle_event(event: dict) -> str:
    """Branch on a verified webhook event. Returns the event type."""
    event_type = str(event.get("type") or "")
    obj = ((event.get("data") or {}).get("object")) or {}

    if event_type == "account.updated":
        account_id = str(obj.get("id") or "")
        logger.info("stripe_account_updated account=%s", account_id)
        if obj.get("details_submitted") and obj.get("charges_enabled"):
            logger.info("stripe_account_onboarding_complete account=%s", account_id)
            for fn in list(_activation_handlers):
                try:
                    fn(account_id, obj)
                except Exception:
                    logger.exception("stripe_activation_handler_failed account=%s", account_id)
    elif event_type == "account.application.deauthorized":
        logger.info("stripe_account_deauthorized account=%s", str(event.get("account") or obj.get("id") or ""))
    else:
        logger.info("stripe_event_unhandled type=%s", event_type or "unknown")
    return event_type
