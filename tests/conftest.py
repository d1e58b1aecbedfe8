import pytest
from fastapi.testclient import TestClient

from backend.app.api import create_app
from backend.app.config import Settings
from backend.app.db import create_session, ensure_db


@pytest.fixture
def db_path(tmp_path):
    """Fresh SQLite database with the schema applied."""
    path = tmp_path / "motor.db"
    ensure_db(path)
    return path


@pytest.fixture
def session_id(db_path):
    session = create_session(db_path, participant_id="p-001", session_id="s-001", user_id="u-001")
    return session["sessionId"]


@pytest.fixture
def settings(tmp_path):
    # tiny buckets so chunking shows up with a handful of items
    return Settings(
        db_path=tmp_path / "api.db",
        trace_bucket_capacity=3,
        attempt_bucket_capacity=2,
        raw_retention_days=90,
        max_batch_items=50,
        log_level="WARNING",
    )


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as c:
        yield c


@pytest.fixture
def registered(client):
    resp = client.post(
        "/api/sessions",
        json={"sessionId": "s-api", "participantId": "p-api", "userId": "u-api"},
    )
    assert resp.status_code == 200
    return resp.json()["session"]
