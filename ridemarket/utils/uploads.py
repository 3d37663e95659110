from __future__ import annotations

import os
import secrets
import time
from dataclasses import dataclass

from werkzeug.utils import secure_filename

LISTING_IMAGE_MAX_BYTES = 10 * 1024 * 1024
LISTING_IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif")

AVATAR_MAX_BYTES = 2 * 1024 * 1024
AVATAR_TYPES = ("image/jpeg", "image/png", "image/webp")

_EXT_BY_TYPE = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


class UploadValidationError(ValueError):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass
class ValidatedUpload:
    data: bytes
    content_type: str
    extension: str


def _label(types) -> str:
    return ", ".join(t.split("/", 1)[-1].upper() for t in types)


def validate_image_upload(file, *, max_bytes: int, allowed_types) -> ValidatedUpload:
    """Read and check an uploaded image before anything is sent to storage."""
    if file is None or not (file.filename or "").strip():
        raise UploadValidationError("IMAGE_REQUIRED", "Please choose an image")

    content_type = (file.mimetype or "").strip().lower()
    if content_type == "image/jpg":
        content_type = "image/jpeg"
    if content_type not in allowed_types:
        raise UploadValidationError("IMAGE_TYPE_NOT_ALLOWED", f"Only {_label(allowed_types)} images are allowed")

    data = file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise UploadValidationError(
            "IMAGE_TOO_LARGE", f"Image must be smaller than {max_bytes // (1024 * 1024)}MB"
        )
    if not data:
        raise UploadValidationError("IMAGE_EMPTY", "Image file is empty")

    original = secure_filename(os.path.basename(file.filename or ""))
    ext = original.rsplit(".", 1)[-1].lower() if "." in original else ""
    if not ext or len(ext) > 5:
        ext = _EXT_BY_TYPE.get(content_type, "bin")
    return ValidatedUpload(data=data, content_type=content_type, extension=ext)


def listing_image_key(extension: str) -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}.{extension or 'bin'}"


def avatar_key(principal_id: str) -> str:
    return f"avatar-{principal_id}-{int(time.time() * 1000)}"
