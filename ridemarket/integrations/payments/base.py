from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ConnectedAccountResult:
    account_id: str
    provider: str
    raw: dict | None = None


@dataclass
class AccountLinkResult:
    url: str
    provider: str
    raw: dict | None = None


@dataclass
class AccountSessionResult:
    client_secret: str
    provider: str
    raw: dict | None = None


class OnboardingProvider:
    """Payments platform calls used to onboard a seller.

    Every method makes one attempt and raises ``IntegrationCallError`` with the
    platform's message when the call fails.
    """

    name = "unknown"

    def create_connected_account(self) -> ConnectedAccountResult:
        raise NotImplementedError

    def create_account_link(self, account_id: str, *, refresh_url: str, return_url: str) -> AccountLinkResult:
        raise NotImplementedError

    def create_account_session(self, account_id: str) -> AccountSessionResult:
        raise NotImplementedError
