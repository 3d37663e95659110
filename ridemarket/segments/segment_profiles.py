from __future__ import annotations

from dataclasses import asdict

from flask import Blueprint, current_app, jsonify, request

from ridemarket.services.profile_service import ProfileError, ensure_profile, set_avatar_url, update_profile
from ridemarket.services.records import ProfileRecord
from ridemarket.services.runtime import current_principal, get_listing_store, get_object_storage
from ridemarket.utils.responses import error_response
from ridemarket.utils.uploads import AVATAR_MAX_BYTES, AVATAR_TYPES, UploadValidationError, avatar_key, validate_image_upload

profiles_bp = Blueprint("profiles_bp", __name__, url_prefix="/api")


def _profile_json(profile: ProfileRecord) -> dict:
    data = asdict(profile)
    for key in ("created_at", "updated_at"):
        data[key] = data[key].isoformat() if data[key] else None
    return data


def _profile_error(e: ProfileError):
    status = 400 if e.code == "VALIDATION_FAILED" else 502
    return error_response(e.code, e.message, status)


@profiles_bp.get("/me/profile")
def get_my_profile():
    principal = current_principal()
    if principal is None:
        return error_response("UNAUTHORIZED", "Sign in to see your profile", 401)
    try:
        profile = ensure_profile(get_listing_store(), principal)
    except ProfileError as e:
        current_app.logger.warning("profile_load_failed user=%s code=%s", principal.id, e.code)
        return _profile_error(e)
    return jsonify({"ok": True, "profile": _profile_json(profile)})


@profiles_bp.put("/me/profile")
def update_my_profile():
    principal = current_principal()
    if principal is None:
        return error_response("UNAUTHORIZED", "Sign in to edit your profile", 401)
    payload = request.get_json(silent=True) or {}
    try:
        profile = update_profile(
            get_listing_store(),
            principal,
            username=str(payload.get("username") or ""),
            location=payload.get("location"),
        )
    except ProfileError as e:
        if e.code != "VALIDATION_FAILED":
            current_app.logger.warning("profile_update_failed user=%s code=%s", principal.id, e.code)
        return _profile_error(e)
    return jsonify({"ok": True, "profile": _profile_json(profile)})


@profiles_bp.post("/me/profile/avatar")
def upload_my_avatar():
    principal = current_principal()
    if principal is None:
        return error_response("UNAUTHORIZED", "Sign in to change your avatar", 401)
    try:
        upload = validate_image_upload(request.files.get("avatar"), max_bytes=AVATAR_MAX_BYTES, allowed_types=AVATAR_TYPES)
    except UploadValidationError as e:
        return error_response(e.code, e.message, 400)

    storage = get_object_storage()
    bucket = current_app.config.get("AVATARS_BUCKET") or "avatars"
    key = avatar_key(principal.id)
    res = storage.upload(bucket, key, upload.data, content_type=upload.content_type)
    if not res.ok:
        current_app.logger.warning("avatar_upload_failed user=%s code=%s", principal.id, res.code)
        return error_response("UPLOAD_FAILED", res.message or "Avatar upload failed", 502)

    try:
        profile = set_avatar_url(get_listing_store(), principal, storage.get_public_url(bucket, key))
    except ProfileError as e:
        current_app.logger.warning("avatar_save_failed user=%s code=%s", principal.id, e.code)
        return _profile_error(e)
    return jsonify({"ok": True, "profile": _profile_json(profile)})
