from __future__ import annotations

import logging
from datetime import datetime

from ridemarket.integrations.identity import Principal
from ridemarket.services.listing_store import ListingStore, StoreResult
from ridemarket.services.records import ProfileRecord, RecordValidationError

logger = logging.getLogger(__name__)


class ProfileError(RuntimeError):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def default_username(principal: Principal) -> str:
    return principal.email_local_part or f"user-{principal.id[:6]}"


def _record(res: StoreResult) -> ProfileRecord | None:
    row = res.first()
    if row is None:
        return None
    return ProfileRecord.from_row(row)


def get_profile(store: ListingStore, profile_id: str) -> ProfileRecord | None:
    res = store.select("profiles", eq={"id": profile_id}, limit=1)
    if not res.ok:
        logger.warning("profile_fetch_failed id=%s code=%s", profile_id, res.error.code)
        return None
    try:
        return _record(res)
    except RecordValidationError as e:
        logger.warning("profile_row_invalid id=%s err=%s", profile_id, e)
        return None


def ensure_profile(store: ListingStore, principal: Principal) -> ProfileRecord:
    """Return the principal's profile, creating it on first sight.

    The create is a conflict-ignoring upsert keyed by id, so two requests
    racing through here both end with the same single row.
    """
    res = store.select("profiles", eq={"id": principal.id}, limit=1)
    if not res.ok:
        raise ProfileError(res.error.code, res.error.message or "Could not load profile")
    existing = _record(res)
    if existing is not None:
        return existing

    now = datetime.utcnow()
    res = store.upsert(
        "profiles",
        {
            "id": principal.id,
            "username": default_username(principal),
            "created_at": now,
            "updated_at": now,
        },
        on_conflict="id",
        ignore_duplicates=True,
    )
    if not res.ok:
        raise ProfileError(res.error.code, res.error.message or "Could not create profile")
    created = _record(res)
    if created is None:
        raise ProfileError("NOT_FOUND", "Profile missing after create")
    logger.info("profile_read_repaired id=%s", principal.id)
    return created


def update_profile(store: ListingStore, principal: Principal, *, username: str, location: str | None) -> ProfileRecord:
    username = (username or "").strip()
    if not username:
        raise ProfileError("VALIDATION_FAILED", "Username is required")
    ensure_profile(store, principal)
    res = store.update(
        "profiles",
        {"username": username, "location": (location or "").strip() or None, "updated_at": datetime.utcnow()},
        eq={"id": principal.id},
    )
    if not res.ok:
        raise ProfileError(res.error.code, res.error.message or "Could not update profile")
    return _record(res)


def set_avatar_url(store: ListingStore, principal: Principal, avatar_url: str) -> ProfileRecord:
    ensure_profile(store, principal)
    res = store.update(
        "profiles",
        {"avatar_url": avatar_url, "updated_at": datetime.utcnow()},
        eq={"id": principal.id},
    )
    if not res.ok:
        raise ProfileError(res.error.code, res.error.message or "Could not update avatar")
    return _record(res)
