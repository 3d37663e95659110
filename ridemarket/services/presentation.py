from __future__ import annotations

from typing import Optional

from ridemarket.services.image_urls import PLACEHOLDER_IMAGE_URL, ImageUrlResolver
from ridemarket.services.records import ListingRecord, ProfileRecord
from ridemarket.services.wishlist_sync import WishlistState, WishlistSync

DEFAULT_CURRENCY_SUFFIX = "kr DKK"
CURRENT_USER_LABEL = "You (Current User)"


def format_price(value, suffix: str = DEFAULT_CURRENCY_SUFFIX) -> str:
    """``1234.5`` -> ``"1,234.5 kr DKK"``."""
    try:
        amount = float(value)
    except (TypeError, ValueError):
        amount = 0.0
    text = f"{amount:,.2f}".rstrip("0").rstrip(".")
    if text in ("-0", ""):
        text = "0"
    suffix = (suffix or "").strip()
    return f"{text} {suffix}" if suffix else text


def parse_price_range(raw: Optional[str]) -> tuple[Optional[float], Optional[float]]:
    """Parse ``"min-max"`` or ``"min+"``. Raises ``ValueError`` on anything else."""
    text = (raw or "").strip()
    if not text:
        return None, None
    if text.endswith("+"):
        low = float(text[:-1])
        if low < 0:
            raise ValueError("price range must be non-negative")
        return low, None
    low_s, sep, high_s = text.partition("-")
    if not sep:
        raise ValueError(f"bad price range: {raw!r}")
    low, high = float(low_s), float(high_s)
    if low < 0 or high < low:
        raise ValueError(f"bad price range: {raw!r}")
    return low, high


def seller_display_name(seller_id: str, *, viewer_id: Optional[str] = None, profile: Optional[ProfileRecord] = None) -> str:
    if viewer_id and viewer_id == seller_id:
        return CURRENT_USER_LABEL
    if profile is not None and (profile.username or "").strip():
        return profile.username.strip()
    return f"User {(seller_id or '')[:6]}"


def listing_card(
    listing: ListingRecord,
    *,
    resolver: ImageUrlResolver,
    suffix: str = DEFAULT_CURRENCY_SUFFIX,
    viewer_id: Optional[str] = None,
    seller: Optional[ProfileRecord] = None,
    in_wishlist: bool = False,
) -> dict:
    return {
        "id": listing.id,
        "title": listing.title,
        "description": listing.description,
        "category": listing.category,
        "subcategory": listing.subcategory,
        "condition": listing.condition,
        "location": listing.location,
        "price": listing.price,
        "price_display": format_price(listing.price, suffix),
        "image_url": resolver.resolve(listing.image_url),
        "fallback_image_url": PLACEHOLDER_IMAGE_URL,
        "seller_id": listing.user_id,
        "seller_name": seller_display_name(listing.user_id, viewer_id=viewer_id, profile=seller),
        "is_own": bool(viewer_id and viewer_id == listing.user_id),
        "in_wishlist": bool(in_wishlist),
        "href": f"/listings/{listing.id}",
        "created_at": listing.created_at.isoformat() if listing.created_at else None,
    }


def wishlist_view(
    sync: Optional[WishlistSync],
    *,
    resolver: ImageUrlResolver,
    suffix: str = DEFAULT_CURRENCY_SUFFIX,
) -> dict:
    """Wishlist page payload.

    ``state`` is ``anonymous``, ``loading``, ``empty`` or ``ready``. Entries
    whose listing no longer exists are left out of ``items``.
    """
    state = sync.state if sync is not None else WishlistState.ANONYMOUS
    if state in (WishlistState.ANONYMOUS, WishlistState.DISPOSED):
        return {"state": "anonymous", "items": [], "count": 0}
    if state != WishlistState.READY:
        return {"state": "loading", "items": [], "count": 0}

    viewer_id = sync.owner_id
    items = sync.items
    cards = [
        listing_card(item.listing, resolver=resolver, suffix=suffix, viewer_id=viewer_id, in_wishlist=True)
        for item in items
        if item.listing is not None
    ]
    return {
        "state": "ready" if cards else "empty",
        "items": cards,
        "count": len(cards),
        "dangling": len(items) - len(cards),
    }
