from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    id: str
    email: str = ""
    session_id: str = ""

    @property
    def email_local_part(self) -> str:
        return (self.email or "").split("@", 1)[0].strip()


class AuthEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"


AuthCallback = Callable[[AuthEvent, Optional[Principal]], None]


class Subscription:
    """Handle returned by ``on_auth_state_change``.

    ``unsubscribe`` is idempotent; after it returns the callback is never
    invoked again.
    """

    def __init__(self, provider: "IdentityProvider", callback: AuthCallback):
        self._provider = provider
        self._callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._provider._remove(self)


class IdentityProvider:
    def __init__(self):
        self._subscriptions: list[Subscription] = []
        self._sub_lock = threading.Lock()

    def get_current_principal(self) -> Principal | None:
        raise NotImplementedError

    def sign_out(self) -> None:
        raise NotImplementedError

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        sub = Subscription(self, callback)
        with self._sub_lock:
            self._subscriptions.append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._sub_lock:
            try:
                self._subscriptions.remove(sub)
            except ValueError:
                pass

    def _emit(self, event: AuthEvent, principal: Principal | None) -> None:
        with self._sub_lock:
            subs = list(self._subscriptions)
        for sub in subs:
            if not sub.active:
                continue
            try:
                sub._callback(event, principal)
            except Exception:
                logger.exception("auth_listener_failed event=%s", event.value)
