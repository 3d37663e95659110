from __future__ import annotations

from ridemarket.integrations.common import IntegrationMisconfiguredError
from ridemarket.integrations.storage.base import ObjectStorage
from ridemarket.integrations.storage.local_provider import LocalObjectStorage
from ridemarket.integrations.storage.supabase_provider import SupabaseObjectStorage


def build_object_storage(config) -> ObjectStorage:
    provider = (config.get("STORAGE_PROVIDER") or "local").strip().lower()

    if provider == "local":
        return LocalObjectStorage(
            config.get("STORAGE_LOCAL_ROOT") or "uploads",
            public_base_url=(config.get("STORAGE_PUBLIC_BASE_URL") or "").strip(),
        )

    if provider != "supabase":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:storage_provider={provider}")

    url = (config.get("SUPABASE_URL") or "").strip()
    key = (config.get("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not url or not key:
        raise IntegrationMisconfiguredError(
            "INTEGRATION_MISCONFIGURED:missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY"
        )
    return SupabaseObjectStorage(url, key)
