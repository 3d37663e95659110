from __future__ import annotations

from typing import Optional

from ridemarket.integrations.storage.base import ObjectStorage, clean_key

PLACEHOLDER_IMAGE_URL = "/api/placeholder/400/300"

_ABSOLUTE_PREFIXES = ("http://", "https://")


def is_absolute_url(ref: str) -> bool:
    return (ref or "").strip().lower().startswith(_ABSOLUTE_PREFIXES)


class ImageUrlResolver:
    """Turns a stored image reference into a URL a browser can fetch.

    Absolute references are returned exactly as given, surrounding whitespace
    included. Anything else is a key in
    ``bucket`` and goes through the storage provider's public URL transform.
    No network calls; a missing object is the renderer's problem.
    """

    def __init__(self, storage: ObjectStorage, bucket: str):
        self.storage = storage
        self.bucket = bucket

    def resolve(self, ref: Optional[str]) -> Optional[str]:
        if ref is None:
            return None
        text = str(ref).strip()
        if not text:
            return None
        if is_absolute_url(text):
            return ref
        key = clean_key(text)
        if not key:
            return None
        return self.storage.get_public_url(self.bucket, key)

    __call__ = resolve
