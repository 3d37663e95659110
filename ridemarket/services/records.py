"""Typed row shapes returned by the listing store.

Rows arrive as plain dicts; ``from_row`` is the only place they are trusted,
so a malformed row fails here instead of deep inside rendering code.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from ridemarket.models.listing import LISTING_CONDITIONS


class RecordValidationError(ValueError):
    pass


def _required_str(row: dict, key: str) -> str:
    value = row.get(key)
    if value is None or str(value).strip() == "":
        raise RecordValidationError(f"{key} is required")
    return str(value)


def _optional_str(row: dict, key: str) -> Optional[str]:
    value = row.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _timestamp(row: dict, key: str) -> Optional[datetime]:
    value = row.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise RecordValidationError(f"{key} is not a timestamp: {value!r}")


@dataclass(frozen=True)
class ListingRecord:
    id: str
    title: str
    price: float
    category: str
    user_id: str
    description: str = ""
    subcategory: Optional[str] = None
    condition: Optional[str] = None
    location: Optional[str] = None
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ListingRecord":
        if not isinstance(row, dict):
            raise RecordValidationError("listing row must be a mapping")
        try:
            price = float(row.get("price"))
        except (TypeError, ValueError):
            raise RecordValidationError("price must be a number")
        if not math.isfinite(price):
            raise RecordValidationError("price must be a finite number")
        if price < 0:
            raise RecordValidationError("price must be non-negative")
        condition = _optional_str(row, "condition")
        if condition is not None and condition not in LISTING_CONDITIONS:
            raise RecordValidationError(f"unknown condition: {condition}")
        return cls(
            id=_required_str(row, "id"),
            title=_required_str(row, "title"),
            price=price,
            category=_required_str(row, "category"),
            user_id=_required_str(row, "user_id"),
            description=str(row.get("description") or ""),
            subcategory=_optional_str(row, "subcategory"),
            condition=condition,
            location=_optional_str(row, "location"),
            image_url=_optional_str(row, "image_url"),
            created_at=_timestamp(row, "created_at"),
        )


@dataclass(frozen=True)
class ProfileRecord:
    id: str
    username: str
    avatar_url: Optional[str] = None
    location: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ProfileRecord":
        if not isinstance(row, dict):
            raise RecordValidationError("profile row must be a mapping")
        return cls(
            id=_required_str(row, "id"),
            username=str(row.get("username") or ""),
            avatar_url=_optional_str(row, "avatar_url"),
            location=_optional_str(row, "location"),
            created_at=_timestamp(row, "created_at"),
            updated_at=_timestamp(row, "updated_at"),
        )


@dataclass(frozen=True)
class WishlistEntryRecord:
    user_id: str
    item_id: str
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "WishlistEntryRecord":
        if not isinstance(row, dict):
            raise RecordValidationError("wishlist row must be a mapping")
        raw_id = row.get("id")
        try:
            entry_id = int(raw_id) if raw_id is not None else None
        except (TypeError, ValueError):
            raise RecordValidationError("id must be an integer")
        return cls(
            id=entry_id,
            user_id=_required_str(row, "user_id"),
            item_id=_required_str(row, "item_id"),
            created_at=_timestamp(row, "created_at"),
        )
