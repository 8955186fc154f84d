import pytest
import requests

from app.config import Settings
from app.storage import StorageError, SupabaseStorage, build_storage


class _Response:
    def __init__(self, status_code, text=""):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self.text = text


class _Session:
    def __init__(self, response=None, error=None):
        self.headers = {}
        self.response = response
        self.error = error
        self.calls = []
        self.closed = False

    def delete(self, url, json=None, timeout=None):
        self.calls.append({"url": url, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response

    def close(self):
        self.closed = True


def test_remove_sends_bulk_delete_with_service_key():
    session = _Session(_Response(200, "[]"))
    storage = SupabaseStorage("https://proj.supabase.co/", "service-key", timeout=5, session=session)

    storage.remove("events", ["event-banners/a.jpg", "event-banners/b.jpg"])

    assert session.calls == [
        {
            "url": "https://proj.supabase.co/storage/v1/object/events",
            "json": {"prefixes": ["event-banners/a.jpg", "event-banners/b.jpg"]},
            "timeout": 5,
        }
    ]
    assert session.headers["apikey"] == "service-key"
    assert session.headers["Authorization"] == "Bearer service-key"


def test_remove_with_no_paths_skips_the_call():
    session = _Session(_Response(200))
    SupabaseStorage("https://proj.supabase.co", "k", session=session).remove("events", [])
    assert session.calls == []


def test_remove_raises_on_error_status():
    session = _Session(_Response(503, "upstream unavailable"))
    storage = SupabaseStorage("https://proj.supabase.co", "k", session=session)

    with pytest.raises(StorageError) as excinfo:
        storage.remove("events", ["a.jpg"])
    assert excinfo.value.status_code == 503
    assert "upstream unavailable" in str(excinfo.value)


def test_remove_wraps_transport_errors():
    session = _Session(error=requests.ConnectionError("connection refused"))
    storage = SupabaseStorage("https://proj.supabase.co", "k", session=session)

    with pytest.raises(StorageError) as excinfo:
        storage.remove("events", ["a.jpg"])
    assert excinfo.value.status_code is None


def test_close_closes_session():
    session = _Session()
    SupabaseStorage("https://proj.supabase.co", "k", session=session).close()
    assert session.closed is True


def test_build_storage_prefers_explicit_storage_url():
    config = Settings(
        database_url="sqlite://",
        supabase_url="https://proj.supabase.co",
        storage_url="https://storage.internal/",
        supabase_service_key="k",
    )
    storage = build_storage(config)
    try:
        assert storage.base_url == "https://storage.internal"
    finally:
        storage.close()


def test_build_storage_requires_service_key(monkeypatch):
    for name in ("SUPABASE_SERVICE_KEY", "SUPABASE_SERVICE_ROLE_KEY", "SERVICE_ROLE_KEY"):
        monkeypatch.delenv(name, raising=False)
    config = Settings(database_url="sqlite://", supabase_url="https://proj.supabase.co")
    with pytest.raises(RuntimeError):
        build_storage(config)
