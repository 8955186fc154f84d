from __future__ import annotations

from typing import Protocol

import requests


class StorageError(RuntimeError):
    """A bulk delete call was rejected by object storage or never reached it."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ObjectStorage(Protocol):
    def remove(self, bucket: str, paths: list[str]) -> None:
        """Delete `paths` from `bucket`; raises StorageError on failure.

        Paths that are already absent count as deleted.
        """


class SupabaseStorage:
    def __init__(self, base_url: str, service_key: str, *, timeout: float = 30.0, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
                "Content-Type": "application/json",
            }
        )

    def remove(self, bucket: str, paths: list[str]) -> None:
        if not paths:
            return
        url = f"{self.base_url}/storage/v1/object/{bucket}"
        try:
            resp = self.session.delete(url, json={"prefixes": list(paths)}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise StorageError(f"storage request failed: {exc}") from exc
        if resp.ok:
            return
        raise StorageError(
            f"storage delete returned {resp.status_code}: {resp.text[:500]}",
            status_code=resp.status_code,
        )

    def close(self) -> None:
        self.session.close()


def build_storage(settings) -> SupabaseStorage:
    base_url = settings.resolved_storage_url
    if not base_url or not settings.supabase_service_key:
        raise RuntimeError("SUPABASE_URL (or STORAGE_URL) and SUPABASE_SERVICE_ROLE_KEY are required for storage access")
    return SupabaseStorage(base_url, settings.supabase_service_key, timeout=settings.storage_timeout_seconds)
