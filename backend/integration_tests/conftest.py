import os
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from fastapi.testclient import TestClient
from sqlalchemy import text


if os.environ.get("RUN_INTEGRATION_TESTS") != "1":
    pytest.skip(
        "Integration tests are disabled. Set RUN_INTEGRATION_TESTS=1 to enable.",
        allow_module_level=True,
    )

if not os.environ.get("DATABASE_URL"):
    pytest.skip("DATABASE_URL must be set for integration tests.", allow_module_level=True)

os.environ.setdefault("SUPABASE_URL", "http://supabase.test")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "integration-service-key")

from app import api as api_module, models  # noqa: E402
from app.api import app  # noqa: E402
from app.database import Base, SessionLocal, engine, get_db  # noqa: E402

from tests.fakes import OTHER_ID, OWNER_ID, FakeStorage, StaticIdentityResolver  # noqa: E402

STORAGE_BASE = "https://proj.supabase.co/storage/v1/object/public"


def _run_migrations() -> None:
    backend_root = Path(__file__).resolve().parents[1]
    alembic_ini = backend_root / "alembic.ini"
    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(backend_root / "alembic"))
    command.upgrade(config, "head")


@pytest.fixture(scope="session", autouse=True)
def _ensure_schema():
    _run_migrations()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session():
    db = SessionLocal()
    try:
        tables = [t.name for t in Base.metadata.sorted_tables]
        if tables:
            db.execute(text(f"TRUNCATE TABLE {', '.join(tables)} RESTART IDENTITY CASCADE"))
            db.commit()
        yield db
    finally:
        db.close()


@pytest.fixture()
def storage():
    return FakeStorage()


@pytest.fixture()
def client(db_session, storage):
    def _override_get_db():
        yield db_session

    def _override_get_storage():
        yield storage

    identity = StaticIdentityResolver({"owner-token": OWNER_ID, "other-token": OTHER_ID})
    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[api_module.get_storage] = _override_get_storage
    app.dependency_overrides[api_module.get_identity_resolver] = lambda: identity
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def helpers(client, db_session, storage):
    def make_tribe(cover: tuple[str, str] | None = None):
        tribe = models.Tribe(
            owner=OWNER_ID,
            title="Integration Tribe",
            city="San Francisco, CA",
            cover_url=f"{STORAGE_BASE}/{cover[0]}/{cover[1]}" if cover else None,
        )
        db_session.add(tribe)
        db_session.commit()
        if cover:
            storage.put(*cover)
        return tribe

    def make_event(tribe, banner: tuple[str, str]):
        event = models.Event(
            tribe_id=tribe.id,
            title="Integration Event",
            banner_url=f"{STORAGE_BASE}/{banner[0]}/{banner[1]}",
        )
        db_session.add(event)
        db_session.commit()
        storage.put(*banner)
        return event

    def auth_header(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}

    return {
        "client": client,
        "db": db_session,
        "storage": storage,
        "make_tribe": make_tribe,
        "make_event": make_event,
        "auth_header": auth_header,
    }
