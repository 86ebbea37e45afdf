import os
import tempfile

# configure before the application modules read their environment
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("AUDIT_DIR", tempfile.mkdtemp(prefix="orgstructure-audit-"))
os.environ.setdefault("AUDIT_MIRROR_ENABLED", "0")

import pytest
from fastapi.testclient import TestClient

from orgstructure.main import app as api_app
from app.core.database import Base, engine, SessionLocal
from app.models import ChangeLogEntry


@pytest.fixture()
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db):
    with TestClient(api_app) as c:
        yield c


@pytest.fixture()
def log_count(db):
    def _count():
        return db.query(ChangeLogEntry).count()
    return _count
