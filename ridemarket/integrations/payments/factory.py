from __future__ import annotations

from ridemarket.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from ridemarket.integrations.payments.base import OnboardingProvider
from ridemarket.integrations.payments.mock_provider import MockOnboardingProvider
from ridemarket.integrations.payments.stripe_provider import StripeOnboardingProvider


def build_onboarding_provider(config) -> OnboardingProvider:
    provider = (config.get("PAYMENTS_PROVIDER") or "mock").strip().lower()

    if provider == "disabled":
        raise IntegrationDisabledError("INTEGRATION_DISABLED:payments")

    if provider == "mock":
        return MockOnboardingProvider()

    if provider != "stripe":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:payments_provider={provider}")

    secret_key = (config.get("STRIPE_SECRET_KEY") or "").strip()
    if not secret_key:
        raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:missing STRIPE_SECRET_KEY")

    return StripeOnboardingProvider(
        secret_key=secret_key,
        country=(config.get("STRIPE_ACCOUNT_COUNTRY") or "DK").strip().upper(),
        support_email=(config.get("STRIPE_SUPPORT_EMAIL") or "").strip(),
        business_url=(config.get("STRIPE_BUSINESS_URL") or "").strip(),
    )


def payments_health(config) -> dict:
    provider = (config.get("PAYMENTS_PROVIDER") or "mock").strip().lower()
    missing = []
    if provider == "stripe":
        if not (config.get("STRIPE_SECRET_KEY") or "").strip():
            missing.append("STRIPE_SECRET_KEY")
        if not (config.get("STRIPE_WEBHOOK_SECRET") or "").strip():
            missing.append("STRIPE_WEBHOOK_SECRET")
    if provider == "disabled":
        status = "disabled"
    elif missing:
        status = "misconfigured"
    else:
        status = "configured"
    return {"status": status, "provider": provider, "missing": missing}
