from .base import AuthEvent, IdentityProvider, Principal, Subscription  # noqa: F401
from .session_provider import SessionIdentityProvider  # noqa: F401
