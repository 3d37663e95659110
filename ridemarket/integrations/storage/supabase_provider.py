from __future__ import annotations

from urllib.parse import quote

import requests

from ridemarket.integrations.common import IntegrationResult
from ridemarket.integrations.storage.base import ObjectStorage, clean_key


class SupabaseObjectStorage(ObjectStorage):
    name = "supabase"

    def __init__(self, project_url: str, service_key: str, *, timeout: int = 25, list_page_size: int = 100):
        self.project_url = (project_url or "").rstrip("/")
        self.service_key = service_key
        self.timeout = timeout
        self.list_page_size = max(1, int(list_page_size))

    def _headers(self, extra: dict | None = None) -> dict:
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
        }
        if extra:
            headers.update(extra)
        return headers

    def get_public_url(self, bucket: str, key: str) -> str:
        return f"{self.project_url}/storage/v1/object/public/{bucket}/{quote(clean_key(key), safe='/')}"

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
        url = f"{self.project_url}/storage/v1/object/{bucket}/{quote(clean_key(key), safe='/')}"
        headers = self._headers(
            {
                "Content-Type": content_type,
                "cache-control": f"max-age={cache_control}",
                "x-upsert": "true" if upsert else "false",
            }
        )
        try:
            r = requests.post(url, headers=headers, data=data or b"", timeout=self.timeout)
        except requests.RequestException as e:
            return IntegrationResult(ok=False, code="STORAGE_UNREACHABLE", message=str(e))
        try:
            j = r.json() if r.content else {}
        except ValueError:
            j = {}
        if r.status_code < 200 or r.status_code >= 300:
            msg = ""
            if isinstance(j, dict):
                msg = str(j.get("message") or j.get("error") or "")
            return IntegrationResult(
                ok=False,
                code=f"HTTP_{r.status_code}",
                message=msg.strip() or f"HTTP {r.status_code}",
                raw=j if isinstance(j, dict) else None,
            )
        return IntegrationResult(ok=True, raw=j if isinstance(j, dict) else None)

    def list(self, bucket: str) -> list[str]:
        url = f"{self.project_url}/storage/v1/object/list/{bucket}"
        keys: list[str] = []
        offset = 0
        while True:
            body = {
                "prefix": "",
                "limit": self.list_page_size,
                "offset": offset,
                "sortBy": {"column": "name", "order": "asc"},
            }
            r = requests.post(url, headers=self._headers(), json=body, timeout=self.timeout)
            r.raise_for_status()
            rows = r.json() or []
            for row in rows:
                name = (row.get("name") or "").strip() if isinstance(row, dict) else ""
                if name:
                    keys.append(name)
            if len(rows) < self.list_page_size:
                break
            offset += self.list_page_size
        return keys
