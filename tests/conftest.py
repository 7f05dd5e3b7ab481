import os
import tempfile
import time
from unittest.mock import MagicMock

import jwt
import pytest

# Settings are read at import time; configure the environment first.
_DB_DIR = tempfile.mkdtemp(prefix="stride-refapp-tests-")
os.environ["CLIENT_ID"] = "test-client-id"
os.environ["CLIENT_SECRET"] = "test-client-secret"
os.environ["ENV"] = "development"
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/refapp.db"

from fastapi.testclient import TestClient  # noqa: E402

from stride_refapp.services.stride import StrideClient  # noqa: E402

CLIENT_SECRET = os.environ["CLIENT_SECRET"]


def _jwt(
    cloud_id="T1",
    conversation_id="C1",
    user_id="U1",
    secret=CLIENT_SECRET,
    expires_in=300,
    **claims,
):
    now = int(time.time())
    payload = {
        "iss": "test-client-id",
        "sub": user_id,
        "context": {"cloudId": cloud_id, "resourceId": conversation_id},
        "iat": now,
        "exp": now + expires_in,
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def make_jwt():
    """Factory for inbound platform tokens signed with the app secret."""
    return _jwt


@pytest.fixture
def fake_stride():
    """StrideClient double; every async operation is an AsyncMock."""
    stride = MagicMock(spec=StrideClient)
    stride.get_user.return_value = {"id": "U1", "displayName": "Joe Blog"}
    return stride


@pytest.fixture
def client(fake_stride):
    from stride_refapp.main import app
    from stride_refapp.routers.dependencies import get_stride

    app.dependency_overrides[get_stride] = lambda: fake_stride
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    from stride_refapp.database import SessionLocal

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
