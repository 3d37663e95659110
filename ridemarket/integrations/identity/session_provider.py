from __future__ import annotations

import threading

from ridemarket.integrations.identity.base import AuthEvent, IdentityProvider, Principal


class SessionIdentityProvider(IdentityProvider):
    """Identity state for a single browser session."""

    def __init__(self, principal: Principal | None = None):
        super().__init__()
        self._principal = principal
        self._lock = threading.Lock()

    def get_current_principal(self) -> Principal | None:
        with self._lock:
            return self._principal

    def sign_in(self, principal: Principal) -> None:
        with self._lock:
            previous = self._principal
            self._principal = principal
        if previous is not None and previous.id != principal.id:
            self._emit(AuthEvent.SIGNED_OUT, None)
        if previous is None or previous.id != principal.id:
            self._emit(AuthEvent.SIGNED_IN, principal)

    def sign_out(self) -> None:
        with self._lock:
            previous = self._principal
            self._principal = None
        if previous is not None:
            self._emit(AuthEvent.SIGNED_OUT, None)

    def bind(self, principal: Principal | None) -> None:
        """Align the session with the principal seen on the latest request."""
        if principal is None:
            self.sign_out()
        else:
            self.sign_in(principal)
