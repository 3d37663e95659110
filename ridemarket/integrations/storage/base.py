from __future__ import annotations

from ridemarket.integrations.common import IntegrationResult


class ObjectStorage:
    """Bucket/key object storage.

    ``get_public_url`` is a pure string transform over the bucket
    configuration; it never touches the network.
    """

    name = "unknown"

    def get_public_url(self, bucket: str, key: str) -> str:
        raise NotImplementedError

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
        raise NotImplementedError

    def list(self, bucket: str) -> list[str]:
        raise NotImplementedError


def clean_key(key: str) -> str:
    return (key or "").strip().lstrip("/")
