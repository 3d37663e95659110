from __future__ import annotations

import uuid

from ridemarket.integrations.payments.base import (
    AccountLinkResult,
    AccountSessionResult,
    ConnectedAccountResult,
    OnboardingProvider,
)


class MockOnboardingProvider(OnboardingProvider):
    name = "mock"

    def create_connected_account(self) -> ConnectedAccountResult:
        account_id = f"acct_mock_{uuid.uuid4().hex[:16]}"
        return ConnectedAccountResult(account_id=account_id, provider=self.name, raw={"id": account_id})

    def create_account_link(self, account_id: str, *, refresh_url: str, return_url: str) -> AccountLinkResult:
        url = f"https://example.com/mock/onboarding?account={account_id}"
        return AccountLinkResult(
            url=url,
            provider=self.name,
            raw={"refresh_url": refresh_url, "return_url": return_url},
        )

    def create_account_session(self, account_id: str) -> AccountSessionResult:
        secret = f"mock_secret_{account_id}"
        return AccountSessionResult(client_secret=secret, provider=self.name, raw={"account": account_id})
