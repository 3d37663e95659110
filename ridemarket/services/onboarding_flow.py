"""Seller onboarding state machine.

One attempt per call; a failure is recorded on the flow and the caller
retries by invoking the same action again.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from ridemarket.integrations.common import IntegrationCallError
from ridemarket.integrations.payments.base import OnboardingProvider

logger = logging.getLogger(__name__)


class OnboardingState(str, Enum):
    NOT_STARTED = "not_started"
    ACCOUNT_CREATE_PENDING = "account_create_pending"
    ACCOUNT_CREATED = "account_created"
    ONBOARDING_FORM_ACTIVE = "onboarding_form_active"
    RETURNED = "returned"
    REFRESH_REQUIRED = "refresh_required"
    ERROR = "error"


class InvalidTransition(RuntimeError):
    def __init__(self, action: str, state: OnboardingState):
        super().__init__(f"cannot {action} from {state.value}")
        self.action = action
        self.state = state


class OnboardingFlow:
    def __init__(self, provider: OnboardingProvider, account_id: Optional[str] = None):
        self.provider = provider
        self.account_id = account_id
        self.state = OnboardingState.NOT_STARTED
        self.client_secret: Optional[str] = None
        self.redirect_url: Optional[str] = None
        self.error: Optional[str] = None
        # The action to re-invoke after an error.
        self.failed_action: Optional[str] = None

    @classmethod
    def resume(cls, provider: OnboardingProvider, account_id: str) -> "OnboardingFlow":
        """Entry point for the platform's refresh callback."""
        flow = cls(provider, account_id=account_id)
        flow.state = OnboardingState.REFRESH_REQUIRED
        return flow

    @classmethod
    def returned(cls, provider: OnboardingProvider, account_id: str) -> "OnboardingFlow":
        """Entry point for the platform's return callback."""
        flow = cls(provider, account_id=account_id)
        flow.state = OnboardingState.ONBOARDING_FORM_ACTIVE
        flow.complete()
        return flow

    @property
    def can_retry(self) -> bool:
        return self.error is not None

    def _require(self, action: str, *states: OnboardingState) -> None:
        if self.state not in states:
            raise InvalidTransition(action, self.state)

    def _fail(self, action: str, message: str) -> None:
        self.error = message or "Something went wrong"
        self.failed_action = action
        self.state = OnboardingState.ERROR
        logger.warning("seller_onboarding_failed action=%s account=%s err=%s", action, self.account_id or "", self.error)

    def _clear_error(self) -> None:
        self.error = None
        self.failed_action = None

    def become_seller(self) -> OnboardingState:
        """Create the connected account, then open the embedded onboarding form."""
        if self.state == OnboardingState.ERROR and self.failed_action == "open_onboarding_form" and self.account_id:
            self.state = OnboardingState.ACCOUNT_CREATED
        elif self.state == OnboardingState.ERROR:
            self.state = OnboardingState.NOT_STARTED
        self._require("become_seller", OnboardingState.NOT_STARTED, OnboardingState.ACCOUNT_CREATED)
        if self.state == OnboardingState.NOT_STARTED:
            self.create_account()
        if self.state == OnboardingState.ACCOUNT_CREATED:
            self.open_onboarding_form()
        return self.state

    def create_account(self) -> OnboardingState:
        self._require("create_account", OnboardingState.NOT_STARTED, OnboardingState.ERROR)
        self._clear_error()
        self.state = OnboardingState.ACCOUNT_CREATE_PENDING
        try:
            res = self.provider.create_connected_account()
        except IntegrationCallError as e:
            self._fail("create_account", e.message)
            return self.state
        if not res.account_id:
            self._fail("create_account", "No account id returned")
            return self.state
        self.account_id = res.account_id
        self.state = OnboardingState.ACCOUNT_CREATED
        logger.info("seller_account_created account=%s provider=%s", self.account_id, res.provider)
        return self.state

    def open_onboarding_form(self) -> OnboardingState:
        self._require("open_onboarding_form", OnboardingState.ACCOUNT_CREATED)
        self._clear_error()
        try:
            res = self.provider.create_account_session(self.account_id)
        except IntegrationCallError as e:
            self._fail("open_onboarding_form", e.message)
            return self.state
        if not res.client_secret:
            self._fail("open_onboarding_form", "No session secret returned")
            return self.state
        self.client_secret = res.client_secret
        self.state = OnboardingState.ONBOARDING_FORM_ACTIVE
        return self.state

    def complete(self) -> OnboardingState:
        """Exit callback of the hosted onboarding form."""
        self._require("complete", OnboardingState.ONBOARDING_FORM_ACTIVE)
        self.state = OnboardingState.RETURNED
        logger.info("seller_onboarding_returned account=%s", self.account_id or "")
        return self.state

    def mark_session_expired(self) -> OnboardingState:
        self._require("mark_session_expired", OnboardingState.ONBOARDING_FORM_ACTIVE)
        self.client_secret = None
        self.state = OnboardingState.REFRESH_REQUIRED
        return self.state

    def refresh(self, *, refresh_url: str, return_url: str) -> OnboardingState:
        """Issue a fresh hosted onboarding link.

        A failure keeps the flow on the refresh step with the error set, so
        the same call can simply be made again.
        """
        self._require("refresh", OnboardingState.REFRESH_REQUIRED)
        self._clear_error()
        try:
            res = self.provider.create_account_link(self.account_id, refresh_url=refresh_url, return_url=return_url)
        except IntegrationCallError as e:
            self.error = e.message or "Could not create onboarding link"
            self.failed_action = "refresh"
            logger.warning("seller_onboarding_refresh_failed account=%s err=%s", self.account_id or "", self.error)
            return self.state
        if not res.url:
            self.error = "No onboarding link returned"
            self.failed_action = "refresh"
            return self.state
        self.redirect_url = res.url
        self.state = OnboardingState.ONBOARDING_FORM_ACTIVE
        return self.state

    def dismiss_error(self) -> None:
        if self.state == OnboardingState.ERROR:
            self.state = OnboardingState.ACCOUNT_CREATED if self.account_id else OnboardingState.NOT_STARTED
        self._clear_error()

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "account": self.account_id,
            "client_secret": self.client_secret,
            "url": self.redirect_url,
            "error": self.error,
            "can_retry": self.can_retry,
        }
