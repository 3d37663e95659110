from __future__ import annotations

import requests

from ridemarket.integrations.common import IntegrationCallError
from ridemarket.integrations.payments.base import (
    AccountLinkResult,
    AccountSessionResult,
    ConnectedAccountResult,
    OnboardingProvider,
)

STRIPE_API_BASE = "https://api.stripe.com/v1"


def encode_form(params: dict, prefix: str = "") -> list[tuple[str, str]]:
    """Flatten nested params into Stripe's ``a[b][c]=v`` form encoding."""
    out: list[tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            out.extend(encode_form(value, name))
        elif isinstance(value, (list, tuple)):
            for i, item in enumerate(value):
                if isinstance(item, dict):
                    out.extend(encode_form(item, f"{name}[{i}]"))
                else:
                    out.append((f"{name}[{i}]", _scalar(item)))
        else:
            out.append((name, _scalar(value)))
    return out


def _scalar(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class StripeOnboardingProvider(OnboardingProvider):
    name = "stripe"

    def __init__(
        self,
        secret_key: str,
        *,
        country: str = "DK",
        support_email: str = "",
        business_url: str = "",
        product_description: str = "Marketplace seller",
        timeout: int = 25,
    ):
        self.secret_key = secret_key
        self.country = country
        self.support_email = support_email
        self.business_url = business_url
        self.product_description = product_description
        self.timeout = timeout

    def _post(self, path: str, params: dict) -> dict:
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        try:
            r = requests.post(
                f"{STRIPE_API_BASE}{path}",
                headers=headers,
                data=encode_form(params),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise IntegrationCallError(str(e) or "Stripe request failed", code="STRIPE_UNREACHABLE")
        try:
            j = r.json() if r.content else {}
        except ValueError:
            j = {}
        if r.status_code < 200 or r.status_code >= 300:
            err = j.get("error") if isinstance(j, dict) else None
            msg = ((err or {}).get("message") or f"HTTP {r.status_code}").strip()
            code = ((err or {}).get("code") or "").strip()
            raise IntegrationCallError(msg, code=code, status=r.status_code)
        return j if isinstance(j, dict) else {}

    def account_params(self) -> dict:
        business_profile = {
            "mcc": "7299",
            "name": "Individual Seller",
            "product_description": self.product_description,
            "support_email": self.support_email or None,
            "url": self.business_url or None,
        }
        return {
            "type": "express",
            "country": self.country,
            "capabilities": {
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            },
            "business_type": "individual",
            "business_profile": business_profile,
            "settings": {"payouts": {"schedule": {"interval": "daily"}}},
        }

    def create_connected_account(self) -> ConnectedAccountResult:
        j = self._post("/accounts", self.account_params())
        account_id = (j.get("id") or "").strip()
        if not account_id:
            raise IntegrationCallError("Stripe did not return an account id", code="MISSING_ACCOUNT_ID")
        return ConnectedAccountResult(account_id=account_id, provider=self.name, raw=j)

    def create_account_link(self, account_id: str, *, refresh_url: str, return_url: str) -> AccountLinkResult:
        j = self._post(
            "/account_links",
            {
                "account": account_id,
                "refresh_url": refresh_url,
                "return_url": return_url,
                "type": "account_onboarding",
            },
        )
        url = (j.get("url") or "").strip()
        if not url:
            raise IntegrationCallError("Stripe did not return an account link url", code="MISSING_URL")
        return AccountLinkResult(url=url, provider=self.name, raw=j)

    def create_account_session(self, account_id: str) -> AccountSessionResult:
        j = self._post(
            "/account_sessions",
            {
                "account": account_id,
                "components": {
                    "account_onboarding": {
                        "enabled": True,
                        "features": {"external_account_collection": True},
                    }
                },
            },
        )
        secret = (j.get("client_secret") or "").strip()
        if not secret:
            raise IntegrationCallError("Stripe did not return a client secret", code="MISSING_CLIENT_SECRET")
        return AccountSessionResult(client_secret=secret, provider=self.name, raw=j)
