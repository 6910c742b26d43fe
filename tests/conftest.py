import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("HEALTHPASS_JWT_SECRET", "test-secret")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from healthpass import models, utils  # noqa: E402
from healthpass.db import Base, SessionLocal, engine  # noqa: E402
from healthpass.store import Store  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db):
    return Store(db)


@pytest.fixture
def client():
    from healthpass.main import app

    return TestClient(app)


@pytest.fixture
def auth():
    def _auth(user_id: str) -> dict:
        return {"Authorization": f"Bearer {utils.sign_token({'sub': user_id})}"}

    return _auth


@pytest.fixture
def make_profile(store):
    def _make(user_id=None, roles=(), **fields):
        profile = models.Profile(id=user_id or models.gen_uuid(), **fields)
        store.insert(profile)
        for role in roles:
            store.insert(models.UserRole(user_id=profile.id, role=role))
        return profile

    return _make
