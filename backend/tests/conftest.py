import os

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("SUPABASE_URL", "http://supabase.test")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "service-test-key")

from app import api as api_module, models
from app.api import app
from app.database import Base, engine, get_db, SessionLocal

from tests.fakes import OTHER_ID, OWNER_ID, FakeStorage, StaticIdentityResolver

STORAGE_BASE = "https://proj.supabase.co/storage/v1/object/public"


@pytest.fixture(scope="session", autouse=True)
def _ensure_schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session():
    db = SessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()
        yield db
    finally:
        db.close()


@pytest.fixture()
def storage():
    return FakeStorage()


@pytest.fixture()
def identity():
    return StaticIdentityResolver({"owner-token": OWNER_ID, "other-token": OTHER_ID})


@pytest.fixture()
def client(db_session, storage, identity):
    def _override_get_db():
        yield db_session

    def _override_get_storage():
        yield storage

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[api_module.get_storage] = _override_get_storage
    app.dependency_overrides[api_module.get_identity_resolver] = lambda: identity
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def helpers(client, db_session, storage):
    def public_url(bucket: str, path: str) -> str:
        return f"{STORAGE_BASE}/{bucket}/{path}"

    def make_tribe(owner: str = OWNER_ID, cover: tuple[str, str] | None = None, title: str = "SF Tech Innovators"):
        tribe = models.Tribe(
            owner=owner,
            title=title,
            city="San Francisco, CA",
            cover_url=public_url(*cover) if cover else None,
        )
        db_session.add(tribe)
        db_session.commit()
        db_session.refresh(tribe)
        if cover:
            storage.put(*cover)
        return tribe

    def make_event(tribe, banner: tuple[str, str] | None = None, title: str = "Weekly meetup"):
        event = models.Event(
            tribe_id=tribe.id,
            title=title,
            banner_url=public_url(*banner) if banner else None,
        )
        db_session.add(event)
        db_session.commit()
        db_session.refresh(event)
        if banner:
            storage.put(*banner)
        return event

    def jobs(**filters):
        query = db_session.query(models.DeletionJob)
        for key, value in filters.items():
            query = query.filter(getattr(models.DeletionJob, key) == value)
        return query.order_by(models.DeletionJob.id.asc()).all()

    def auth_header(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}

    return {
        "client": client,
        "db": db_session,
        "storage": storage,
        "public_url": public_url,
        "make_tribe": make_tribe,
        "make_event": make_event,
        "jobs": jobs,
        "auth_header": auth_header,
    }
