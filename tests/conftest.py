import os
import sys
import tempfile
from pathlib import Path

import pytest

# configure before app/database are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_PATH"] = os.path.join(tempfile.mkdtemp(prefix="life-dashboard-"), "app.log")
os.environ["LEDGER_VERIFY"] = "1"
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fastapi.testclient import TestClient

from database import Base, engine, SessionLocal
from models import User, Finances
import app as app_module


@pytest.fixture(autouse=True)
def fresh_schema():
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
def finances(db):
    user = User(username="alice")
    db.add(user); db.flush()
    fin = Finances(user_id=user.id)
    db.add(fin); db.commit(); db.refresh(fin)
    return fin


@pytest.fixture
def client():
    with TestClient(app_module.app) as c:
        yield c


@pytest.fixture
def user_id(client):
    resp = client.post("/users", json={"username": "alice"})
    assert resp.status_code == 201
    return resp.json()["id"]
