from __future__ import annotations

import os

from werkzeug.utils import safe_join

from ridemarket.integrations.common import IntegrationResult
from ridemarket.integrations.storage.base import ObjectStorage, clean_key


class LocalObjectStorage(ObjectStorage):
    """Stores objects under ``<root>/<bucket>/<key>``, served by the storage route."""

    name = "local"

    def __init__(self, root_dir: str, *, public_base_url: str = ""):
        self.root_dir = os.path.abspath(root_dir)
        self.public_base_url = (public_base_url or "").rstrip("/")

    def bucket_dir(self, bucket: str) -> str:
        path = safe_join(self.root_dir, bucket)
        if path is None:
            raise ValueError(f"invalid bucket name: {bucket!r}")
        return path

    def object_path(self, bucket: str, key: str) -> str | None:
        return safe_join(self.bucket_dir(bucket), clean_key(key))

    def get_public_url(self, bucket: str, key: str) -> str:
        return f"{self.public_base_url}/api/storage/{bucket}/{clean_key(key)}"

    def upload(
        self,
        bucket: str,
        key: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
        cache_control: str = "3600",
        upsert: bool = False,
    ) -> IntegrationResult:
        path = self.object_path(bucket, key)
        if not path or not clean_key(key):
            return IntegrationResult(ok=False, code="INVALID_KEY", message="Invalid object key")
        if os.path.exists(path) and not upsert:
            return IntegrationResult(ok=False, code="DUPLICATE", message="The resource already exists")
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as fh:
                fh.write(data or b"")
        except OSError as e:
            return IntegrationResult(ok=False, code="WRITE_FAILED", message=str(e))
        return IntegrationResult(ok=True, raw={"Key": f"{bucket}/{clean_key(key)}"})

    def list(self, bucket: str) -> list[str]:
        base = self.bucket_dir(bucket)
        if not os.path.isdir(base):
            return []
        keys = []
        for dirpath, _dirnames, filenames in os.walk(base):
            for filename in filenames:
                rel = os.path.relpath(os.path.join(dirpath, filename), base)
                keys.append(rel.replace(os.sep, "/"))
        return sorted(keys)
