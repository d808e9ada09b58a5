import os
import tempfile

# Settings are read at import time, so they must be in place before shortlinks loads.
_DB_DIR = tempfile.mkdtemp(prefix="shortlinks-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["ENVIRONMENT"] = "dev"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "admin-pass"
os.environ.pop("PUBLIC_BASE_URL", None)

import pytest
from fastapi.testclient import TestClient

from shortlinks import auth, database, models
from shortlinks.main import app


@pytest.fixture(autouse=True)
def fresh_schema():
    models.Base.metadata.drop_all(bind=database.engine)
    models.Base.metadata.create_all(bind=database.engine)
    yield


@pytest.fixture
def db():
    session = database.SessionLocal()
    yield session
    session.close()


@pytest.fixture
def client():
    return TestClient(app)


def _bearer(user):
    token = auth.create_access_token({"sub": user})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def alice():
    return _bearer("alice")


@pytest.fixture
def bob():
    return _bearer("bob")


@pytest.fixture
def admin():
    return _bearer("admin")
