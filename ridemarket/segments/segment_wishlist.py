from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from ridemarket.services.presentation import wishlist_view
from ridemarket.services.runtime import current_principal, currency_suffix, get_wishlist_registry, listing_image_resolver
from ridemarket.utils.responses import error_response

wishlist_bp = Blueprint("wishlist_bp", __name__, url_prefix="/api")


def _sync(*, refresh: bool = False):
    principal = current_principal()
    if principal is None:
        return None
    return get_wishlist_registry().bind(principal, refresh=refresh)


@wishlist_bp.get("/wishlist")
def get_wishlist():
    view = wishlist_view(_sync(refresh=True), resolver=listing_image_resolver(), suffix=currency_suffix())
    return jsonify({"ok": True, **view})


@wishlist_bp.get("/wishlist/ids")
def get_wishlist_ids():
    sync = _sync(refresh=True)
    return jsonify({"ok": True, "ids": sync.wishlist_ids() if sync is not None else []})


@wishlist_bp.get("/wishlist/<listing_id>/status")
def get_wishlist_status(listing_id: str):
    sync = _sync(refresh=True)
    return jsonify({"ok": True, "in_wishlist": bool(sync and sync.is_in_wishlist(listing_id))})


@wishlist_bp.post("/wishlist/<listing_id>/toggle")
def toggle_wishlist(listing_id: str):
    sync = _sync()
    if sync is None:
        return error_response("UNAUTHORIZED", "Sign in to save favorites", 401)
    ok, error = sync.toggle(listing_id)
    if not ok:
        current_app.logger.warning("wishlist_toggle_failed item=%s err=%s", listing_id, error)
        return error_response("WISHLIST_UPDATE_FAILED", error or "Could not update wishlist", 502)
    return jsonify({"ok": True, "in_wishlist": sync.is_in_wishlist(listing_id)})


@wishlist_bp.post("/auth/signout")
def sign_out():
    principal = current_principal()
    if principal is None:
        return jsonify({"ok": True, "signed_out": False})
    disposed = get_wishlist_registry().sign_out(principal)
    current_app.logger.info("session_signed_out disposed=%s", disposed)
    return jsonify({"ok": True, "signed_out": True})
