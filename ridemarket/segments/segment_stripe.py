from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ridemarket.integrations.common import (
    IntegrationCallError,
    IntegrationDisabledError,
    IntegrationMisconfiguredError,
)
from ridemarket.integrations.payments.webhook_signature import SignatureVerificationError, construct_event
from ridemarket.services.onboarding_flow import OnboardingFlow, OnboardingState
from ridemarket.services.runtime import current_principal, get_onboarding_provider
from ridemarket.services.stripe_events import handle_event
from ridemarket.utils.responses import error_response

stripe_bp = Blueprint("stripe_bp", __name__, url_prefix="/api")


def _provider():
    """Return (provider, error_response)."""
    try:
        return get_onboarding_provider(), None
    except IntegrationDisabledError:
        return None, error_response("INTEGRATION_DISABLED", "Payments are disabled", 503)
    except IntegrationMisconfiguredError as e:
        current_app.logger.error("payments_misconfigured err=%s", e)
        return None, error_response("INTEGRATION_MISCONFIGURED", "Payments are not configured", 503)


def _origin() -> str:
    origin = (request.headers.get("Origin") or "").strip()
    return origin.rstrip("/") if origin else request.host_url.rstrip("/")


def _callback_urls(account_id: str) -> tuple[str, str]:
    origin = _origin()
    return f"{origin}/stripe/refresh/{account_id}", f"{origin}/stripe/return/{account_id}"


def _account_from_body():
    payload = request.get_json(silent=True) or {}
    return str(payload.get("account") or "").strip()


@stripe_bp.post("/stripe/account")
def create_account():
    provider, err = _provider()
    if err is not None:
        return err
    try:
        res = provider.create_connected_account()
    except IntegrationCallError as e:
        current_app.logger.warning("stripe_account_create_failed err=%s", e.message)
        return error_response("STRIPE_ERROR", e.message, 500)
    return jsonify({"account": res.account_id})


@stripe_bp.post("/stripe/account_link")
def create_account_link():
    account_id = _account_from_body()
    if not account_id:
        return error_response("VALIDATION_FAILED", "account is required", 400)
    provider, err = _provider()
    if err is not None:
        return err
    refresh_url, return_url = _callback_urls(account_id)
    try:
        res = provider.create_account_link(account_id, refresh_url=refresh_url, return_url=return_url)
    except IntegrationCallError as e:
        current_app.logger.warning("stripe_account_link_failed account=%s err=%s", account_id, e.message)
        return error_response("STRIPE_ERROR", e.message, 500)
    return jsonify({"url": res.url})


@stripe_bp.post("/stripe/account_session")
def create_account_session():
    account_id = _account_from_body()
    if not account_id:
        return error_response("VALIDATION_FAILED", "account is required", 400)
    provider, err = _provider()
    if err is not None:
        return err
    try:
        res = provider.create_account_session(account_id)
    except IntegrationCallError as e:
        current_app.logger.warning("stripe_account_session_failed account=%s err=%s", account_id, e.message)
        return error_response("STRIPE_ERROR", e.message, 500)
    return jsonify({"client_secret": res.client_secret})


@stripe_bp.post("/stripe/webhook")
def stripe_webhook():
    raw = request.get_data() or b""
    signature = request.headers.get("Stripe-Signature") or ""
    secret = (current_app.config.get("STRIPE_WEBHOOK_SECRET") or "").strip()
    try:
        event = construct_event(raw, signature, secret)
    except SignatureVerificationError as e:
        current_app.logger.warning("stripe_webhook_rejected err=%s", e)
        return error_response("WEBHOOK_SIGNATURE_INVALID", f"Webhook Error: {e}", 400)
    handle_event(event)
    return jsonify({"received": True})


@stripe_bp.post("/seller/onboarding")
def start_seller_onboarding():
    principal = current_principal()
    if principal is None:
        return error_response("UNAUTHORIZED", "Sign in to become a seller", 401)
    provider, err = _provider()
    if err is not None:
        return err
    flow = OnboardingFlow(provider)
    state = flow.become_seller()
    current_app.logger.info("seller_onboarding user=%s state=%s", principal.id, state.value)
    if state != OnboardingState.ONBOARDING_FORM_ACTIVE:
        return jsonify({"ok": False, **flow.to_dict()}), 502
    return jsonify({"ok": True, **flow.to_dict()})


@stripe_bp.post("/stripe/refresh/<account_id>")
def refresh_onboarding(account_id: str):
    provider, err = _provider()
    if err is not None:
        return err
    flow = OnboardingFlow.resume(provider, account_id)
    refresh_url, return_url = _callback_urls(account_id)
    state = flow.refresh(refresh_url=refresh_url, return_url=return_url)
    if state != OnboardingState.ONBOARDING_FORM_ACTIVE:
        return jsonify({"ok": False, **flow.to_dict()}), 502
    return jsonify({"ok": True, **flow.to_dict()})


@stripe_bp.get("/stripe/return/<account_id>")
def return_from_onboarding(account_id: str):
    provider, err = _provider()
    if err is not None:
        return err
    flow = OnboardingFlow.returned(provider, account_id)
    return jsonify({"ok": True, **flow.to_dict()})
