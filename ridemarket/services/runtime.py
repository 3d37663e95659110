"""Per-app integration objects.

Built lazily from ``app.config`` on first use and cached in
``app.extensions`` so tests can swap config after ``create_app``.
"""

from __future__ import annotations

from flask import current_app, g

from ridemarket.integrations.identity import Principal
from ridemarket.integrations.payments.base import OnboardingProvider
from ridemarket.integrations.payments.factory import build_onboarding_provider
from ridemarket.integrations.storage.base import ObjectStorage
from ridemarket.integrations.storage.factory import build_object_storage
from ridemarket.services.image_urls import ImageUrlResolver
from ridemarket.services.listing_store import ListingStore, SqlListingStore
from ridemarket.services.wishlist_sync import WishlistSessionRegistry

_EXT_KEY = "ridemarket"


def _cache() -> dict:
    return current_app.extensions.setdefault(_EXT_KEY, {})


def reset_runtime(app) -> None:
    state = app.extensions.pop(_EXT_KEY, None) or {}
    registry = state.get("wishlist_registry")
    if registry is not None:
        registry.dispose_all()


def get_listing_store() -> ListingStore:
    cache = _cache()
    if "listing_store" not in cache:
        cache["listing_store"] = SqlListingStore()
    return cache["listing_store"]


def get_object_storage() -> ObjectStorage:
    cache = _cache()
    if "object_storage" not in cache:
        cache["object_storage"] = build_object_storage(current_app.config)
    return cache["object_storage"]


def get_onboarding_provider() -> OnboardingProvider:
    cache = _cache()
    if "onboarding_provider" not in cache:
        cache["onboarding_provider"] = build_onboarding_provider(current_app.config)
    return cache["onboarding_provider"]


def get_wishlist_registry() -> WishlistSessionRegistry:
    cache = _cache()
    if "wishlist_registry" not in cache:
        cache["wishlist_registry"] = WishlistSessionRegistry(
            get_listing_store(),
            max_sessions=int(current_app.config.get("WISHLIST_MAX_SESSIONS") or 5000),
        )
    return cache["wishlist_registry"]


def listing_image_resolver() -> ImageUrlResolver:
    return ImageUrlResolver(get_object_storage(), current_app.config.get("LISTING_IMAGES_BUCKET") or "listing-images")


def currency_suffix() -> str:
    return current_app.config.get("CURRENCY_SUFFIX") or "kr DKK"


def current_principal() -> Principal | None:
    return getattr(g, "principal", None)
