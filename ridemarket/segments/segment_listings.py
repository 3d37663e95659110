from __future__ import annotations

import math
import os

from flask import Blueprint, Response, current_app, jsonify, request, send_from_directory

from ridemarket.integrations.storage.local_provider import LocalObjectStorage
from ridemarket.models import LISTING_CONDITIONS
from ridemarket.services.listing_store import NOT_FOUND
from ridemarket.services.presentation import listing_card, parse_price_range, seller_display_name
from ridemarket.services.profile_service import get_profile
from ridemarket.services.records import ListingRecord, ProfileRecord, RecordValidationError
from ridemarket.services.runtime import (
    current_principal,
    currency_suffix,
    get_listing_store,
    get_object_storage,
    get_wishlist_registry,
    listing_image_resolver,
)
from ridemarket.utils.responses import error_response
from ridemarket.utils.uploads import (
    LISTING_IMAGE_MAX_BYTES,
    LISTING_IMAGE_TYPES,
    UploadValidationError,
    listing_image_key,
    validate_image_upload,
)

listings_bp = Blueprint("listings_bp", __name__, url_prefix="/api")

_EDITABLE_FIELDS = ("title", "description", "category", "subcategory", "condition", "location", "price", "image_url")


def _records(rows: list[dict]) -> list[ListingRecord]:
    out = []
    for row in rows:
        try:
            out.append(ListingRecord.from_row(row))
        except RecordValidationError as e:
            current_app.logger.warning("listing_row_invalid id=%s err=%s", row.get("id"), e)
    return out


def _seller_profiles(seller_ids) -> dict[str, ProfileRecord]:
    ids = sorted({s for s in seller_ids if s})
    if not ids:
        return {}
    res = get_listing_store().select("profiles", in_={"id": ids})
    if not res.ok:
        current_app.logger.warning("seller_profiles_fetch_failed code=%s", res.error.code)
        return {}
    out = {}
    for row in res.rows:
        try:
            rec = ProfileRecord.from_row(row)
        except RecordValidationError:
            continue
        out[rec.id] = rec
    return out


def _cards(records: list[ListingRecord]) -> list[dict]:
    principal = current_principal()
    sync = get_wishlist_registry().bind(principal, refresh=request.method == "GET") if principal is not None else None
    profiles = _seller_profiles(r.user_id for r in records)
    resolver = listing_image_resolver()
    suffix = currency_suffix()
    return [
        listing_card(
            rec,
            resolver=resolver,
            suffix=suffix,
            viewer_id=principal.id if principal else None,
            seller=profiles.get(rec.user_id),
            in_wishlist=bool(sync and sync.is_in_wishlist(rec.id)),
        )
        for rec in records
    ]


def _list_payload(records: list[ListingRecord]) -> dict:
    items = _cards(records)
    return {"ok": True, "state": "ready" if items else "empty", "items": items, "count": len(items)}


def _load_listing(listing_id: str):
    res = get_listing_store().select_one("listings", eq={"id": listing_id})
    if not res.ok:
        if res.error.code == NOT_FOUND:
            return None, error_response("NOT_FOUND", "Listing not found", 404)
        current_app.logger.warning("listing_fetch_failed id=%s code=%s", listing_id, res.error.code)
        return None, error_response(res.error.code, "Could not load listing", 502)
    try:
        return ListingRecord.from_row(res.first()), None
    except RecordValidationError as e:
        current_app.logger.warning("listing_row_invalid id=%s err=%s", listing_id, e)
        return None, error_response("NOT_FOUND", "Listing not found", 404)


def _request_fields() -> tuple[dict, object]:
    """Return submitted fields and the uploaded image (multipart only)."""
    if request.content_type and "multipart/form-data" in request.content_type:
        fields = {k: request.form.get(k) for k in _EDITABLE_FIELDS if k in request.form}
        return fields, request.files.get("image")
    payload = request.get_json(silent=True) or {}
    return {k: payload.get(k) for k in _EDITABLE_FIELDS if k in payload}, None


def _clean_fields(fields: dict, *, partial: bool) -> dict:
    """Normalize listing fields; raises ValueError with a user-facing message."""
    out = {}
    for key in ("title", "category"):
        if key in fields or not partial:
            value = str(fields.get(key) or "").strip()
            if not value:
                raise ValueError(f"{key} is required")
            out[key] = value
    if "price" in fields or not partial:
        raw = fields.get("price")
        if raw is None or str(raw).strip() == "":
            raise ValueError("price is required")
        try:
            price = float(raw)
        except (TypeError, ValueError):
            raise ValueError("price must be a number")
        if not math.isfinite(price):
            raise ValueError("price must be a finite number")
        if price < 0:
            raise ValueError("price must be non-negative")
        out["price"] = price
    if "description" in fields:
        out["description"] = str(fields.get("description") or "").strip()
    for key in ("subcategory", "location", "image_url"):
        if key in fields:
            out[key] = str(fields.get(key) or "").strip() or None
    if "condition" in fields:
        condition = str(fields.get("condition") or "").strip().lower() or None
        if condition is not None and condition not in LISTING_CONDITIONS:
            raise ValueError("condition must be one of " + ", ".join(LISTING_CONDITIONS))
        out["condition"] = condition
    return out


def _upload_listing_image(file):
    """Validate and store an image. Returns (key, error_response)."""
    try:
        upload = validate_image_upload(file, max_bytes=LISTING_IMAGE_MAX_BYTES, allowed_types=LISTING_IMAGE_TYPES)
    except UploadValidationError as e:
        return None, error_response(e.code, e.message, 400)
    bucket = current_app.config.get("LISTING_IMAGES_BUCKET") or "listing-images"
    key = listing_image_key(upload.extension)
    res = get_object_storage().upload(bucket, key, upload.data, content_type=upload.content_type)
    if not res.ok:
        current_app.logger.warning("listing_image_upload_failed bucket=%s code=%s", bucket, res.code)
        return None, error_response("UPLOAD_FAILED", res.message or "Image upload failed", 502)
    return key, None


@listings_bp.get("/listings")
def list_listings():
    args = request.args
    try:
        low, high = parse_price_range(args.get("price_range"))
    except ValueError:
        return error_response("VALIDATION_FAILED", "price_range must look like 100-500 or 1000+", 400)

    eq = {}
    for key in ("category", "subcategory"):
        value = (args.get(key) or "").strip()
        if value:
            eq[key] = value
    contains = {}
    q = (args.get("q") or "").strip()
    if q:
        contains["title"] = q
    location = (args.get("location") or "").strip()
    if location:
        contains["location"] = location

    try:
        limit = max(1, min(int(args.get("limit") or 100), 200))
    except ValueError:
        limit = 100

    res = get_listing_store().select(
        "listings",
        eq=eq,
        contains=contains,
        gte={"price": low} if low is not None else None,
        lte={"price": high} if high is not None else None,
        order_by="created_at",
        descending=True,
        limit=limit,
    )
    if not res.ok:
        current_app.logger.warning("listings_fetch_failed code=%s", res.error.code)
        return error_response(res.error.code, "Could not load listings", 502)
    return jsonify(_list_payload(_records(res.rows)))


@listings_bp.get("/listings/<listing_id>")
def get_listing(listing_id: str):
    rec, err = _load_listing(listing_id)
    if err is not None:
        return err
    card = _cards([rec])[0]
    return jsonify({"ok": True, "listing": card})


@listings_bp.post("/listings")
def create_listing():
    principal = current_principal()
    if principal is None:
        return error_response("UNAUTHORIZED", "Sign in to create a listing", 401)

    fields, image = _request_fields()
    try:
        values = _clean_fields(fields, partial=False)
    except ValueError as e:
        return error_response("VALIDATION_FAILED", str(e), 400)

    if image is not None and (image.filename or "").strip():
        key, err = _upload_listing_image(image)
        if err is not None:
            return err
        values["image_url"] = key

    values["user_id"] = principal.id
    res = get_listing_store().insert("listings", values)
    if not res.ok:
        current_app.logger.warning("listing_create_failed user=%s code=%s", principal.id, res.error.code)
        return error_response(res.error.code, "Could not create listing", 502)
    rec = _records(res.rows)
    current_app.logger.info("listing_created id=%s user=%s", res.first().get("id"), principal.id)
    return jsonify({"ok": True, "listing": _cards(rec)[0] if rec else res.first()}), 201


@listings_bp.put("/listings/<listing_id>")
def update_listing(listing_id: str):
    principal = current_principal()
    if principal is None:
        return error_response("UNAUTHORIZED", "Sign in to edit a listing", 401)
    rec, err = _load_listing(listing_id)
    if err is not None:
        return err
    if rec.user_id != principal.id:
        return error_response("FORBIDDEN", "Only the seller can edit this listing", 403)

    fields, image = _request_fields()
    try:
        values = _clean_fields(fields, partial=True)
    except ValueError as e:
        return error_response("VALIDATION_FAILED", str(e), 400)
    if image is not None and (image.filename or "").strip():
        key, err = _upload_listing_image(image)
        if err is not None:
            return err
        values["image_url"] = key
    if not values:
        return error_response("VALIDATION_FAILED", "Nothing to update", 400)

    res = get_listing_store().update("listings", values, eq={"id": listing_id, "user_id": principal.id})
    if not res.ok:
        current_app.logger.warning("listing_update_failed id=%s code=%s", listing_id, res.error.code)
        return error_response(res.error.code, "Could not update listing", 502)
    updated = _records(res.rows)
    if not updated:
        return error_response("NOT_FOUND", "Listing not found", 404)
    return jsonify({"ok": True, "listing": _cards(updated)[0]})


@listings_bp.delete("/listings/<listing_id>")
def delete_listing(listing_id: str):
    principal = current_principal()
    if principal is None:
        return error_response("UNAUTHORIZED", "Sign in to delete a listing", 401)
    rec, err = _load_listing(listing_id)
    if err is not None:
        return err
    if rec.user_id != principal.id:
        return error_response("FORBIDDEN", "Only the seller can delete this listing", 403)

    res = get_listing_store().delete("listings", eq={"id": listing_id, "user_id": principal.id})
    if not res.ok:
        current_app.logger.warning("listing_delete_failed id=%s code=%s", listing_id, res.error.code)
        return error_response(res.error.code, "Could not delete listing", 502)
    current_app.logger.info("listing_deleted id=%s user=%s", listing_id, principal.id)
    return jsonify({"ok": True, "deleted": listing_id})


@listings_bp.get("/me/listings")
def my_listings():
    principal = current_principal()
    if principal is None:
        return error_response("UNAUTHORIZED", "Sign in to see your listings", 401)
    res = get_listing_store().select("listings", eq={"user_id": principal.id}, order_by="created_at", descending=True)
    if not res.ok:
        current_app.logger.warning("my_listings_fetch_failed user=%s code=%s", principal.id, res.error.code)
        return error_response(res.error.code, "Could not load your listings", 502)
    return jsonify(_list_payload(_records(res.rows)))


@listings_bp.get("/sellers/<seller_id>")
def seller_page(seller_id: str):
    store = get_listing_store()
    profile = get_profile(store, seller_id)
    res = store.select("listings", eq={"user_id": seller_id}, order_by="created_at", descending=True)
    if not res.ok:
        current_app.logger.warning("seller_listings_fetch_failed seller=%s code=%s", seller_id, res.error.code)
        return error_response(res.error.code, "Could not load seller", 502)
    payload = _list_payload(_records(res.rows))
    principal = current_principal()
    payload["seller"] = {
        "id": seller_id,
        "name": seller_display_name(seller_id, viewer_id=principal.id if principal else None, profile=profile),
        "avatar_url": profile.avatar_url if profile else None,
        "location": profile.location if profile else None,
    }
    return jsonify(payload)


@listings_bp.get("/placeholder/<int:width>/<int:height>")
def placeholder_image(width: int, height: int):
    width = max(1, min(width, 2000))
    height = max(1, min(height, 2000))
    svg = (
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}" '
        f'viewBox="0 0 {width} {height}">'
        f'<rect width="100%" height="100%" fill="#e5e7eb"/>'
        f'<text x="50%" y="50%" fill="#9ca3af" font-family="sans-serif" font-size="{max(10, min(width, height) // 10)}" '
        f'text-anchor="middle" dominant-baseline="middle">{width}x{height}</text>'
        f"</svg>"
    )
    resp = Response(svg, mimetype="image/svg+xml")
    resp.headers["Cache-Control"] = "public, max-age=86400"
    return resp


@listings_bp.get("/storage/<bucket>/<path:key>")
def get_stored_object(bucket: str, key: str):
    storage = get_object_storage()
    if not isinstance(storage, LocalObjectStorage):
        return error_response("NOT_FOUND", "Not found", 404)
    try:
        directory = storage.bucket_dir(bucket)
    except ValueError:
        return error_response("NOT_FOUND", "Not found", 404)
    if not os.path.isdir(directory):
        return error_response("NOT_FOUND", "Not found", 404)
    return send_from_directory(directory, key, max_age=3600)
