"""Bearer tokens issued by the identity service (Supabase-style HS256 JWTs)."""

import logging
import os
import time
from typing import Any, Dict, Optional

import jwt

from ridemarket.integrations.identity import Principal

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"


def _secret() -> str:
    return os.getenv("SUPABASE_JWT_SECRET") or os.getenv("SECRET_KEY") or "dev-secret-change-me"


def create_access_token(
    principal_id: str,
    *,
    email: str = "",
    session_id: str = "",
    ttl_seconds: int = 60 * 60,
) -> str:
    issued = int(time.time())
    claims = {
        "sub": str(principal_id),
        "email": email or "",
        "role": "authenticated",
        "iat": issued,
        "exp": issued + ttl_seconds,
    }
    if session_id:
        claims["session_id"] = session_id
    return jwt.encode(claims, _secret(), algorithm=_ALGORITHM)


def read_claims(token: str) -> Optional[Dict[str, Any]]:
    """Verified claims, or None for an expired, forged or malformed token."""
    try:
        # Identity tokens carry an audience we do not pin.
        return jwt.decode(token, _secret(), algorithms=[_ALGORITHM], options={"verify_aud": False})
    except jwt.PyJWTError as e:
        logger.debug("token_rejected err=%s", e)
        return None


def bearer_token(auth_header: str) -> Optional[str]:
    scheme, _, token = (auth_header or "").strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def principal_from_auth_header(auth_header: str) -> Optional[Principal]:
    token = bearer_token(auth_header)
    claims = read_claims(token) if token else None
    sub = str((claims or {}).get("sub") or "").strip()
    if not sub:
        return None
    return Principal(
        id=sub,
        email=str(claims.get("email") or "").strip(),
        session_id=str(claims.get("session_id") or "").strip(),
    )
