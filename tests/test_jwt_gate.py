"""Tests for the inbound JWT gate."""

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from stride_refapp.schemas import RequestContext
from stride_refapp.utils.jwt_gate import InvalidJwtError, verify_jwt, validate_jwt


@pytest.fixture
def gate():
    """A one-route app behind the gate; records every handler invocation."""
    app = FastAPI()
    seen: list[RequestContext] = []

    @app.get("/protected")
    async def protected(context: RequestContext = Depends(validate_jwt)):
        seen.append(context)
        return {
            "cloud_id": context.cloud_id,
            "conversation_id": context.conversation_id,
            "user_id": context.user_id,
        }

    return TestClient(app), seen


def test_valid_bearer_token_yields_context(gate, make_jwt):
    client, seen = gate
    token = make_jwt(cloud_id="T1", conversation_id="C1", user_id="U1")

    resp = client.get("/protected", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 200
    assert seen == [RequestContext(cloud_id="T1", conversation_id="C1", user_id="U1")]


def test_query_parameter_token(gate, make_jwt):
    client, seen = gate

    resp = client.get("/protected", params={"jwt": make_jwt()})

    assert resp.status_code == 200
    assert resp.json() == {"cloud_id": "T1", "conversation_id": "C1", "user_id": "U1"}


def test_query_parameter_preferred_over_header(gate, make_jwt):
    client, seen = gate

    resp = client.get(
        "/protected",
        params={"jwt": make_jwt(user_id="from-query")},
        headers={"Authorization": f"Bearer {make_jwt(user_id='from-header')}"},
    )

    assert resp.status_code == 200
    assert seen[0].user_id == "from-query"


@pytest.mark.parametrize("header_name", ["authorization", "AUTHORIZATION", "Authorization"])
def test_header_name_is_case_insensitive(gate, make_jwt, header_name):
    client, _ = gate

    resp = client.get("/protected", headers={header_name: f"Bearer {make_jwt()}"})

    assert resp.status_code == 200


def test_header_without_bearer_prefix_is_accepted(gate, make_jwt):
    client, _ = gate

    resp = client.get("/protected", headers={"Authorization": make_jwt()})

    assert resp.status_code == 200


def test_wrong_secret_is_rejected_without_calling_handler(gate, make_jwt):
    client, seen = gate
    token = make_jwt(secret="not-the-app-secret")

    resp = client.get("/protected", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 403
    assert seen == []


def test_missing_token_is_rejected(gate):
    client, seen = gate

    resp = client.get("/protected")

    assert resp.status_code == 403
    assert seen == []


def test_expired_token_is_rejected(gate, make_jwt):
    client, seen = gate

    resp = client.get("/protected", params={"jwt": make_jwt(expires_in=-60)})

    assert resp.status_code == 403
    assert seen == []


def test_malformed_token_is_rejected(gate):
    client, seen = gate

    resp = client.get("/protected", headers={"Authorization": "Bearer not.a.jwt"})

    assert resp.status_code == 403
    assert seen == []


def test_token_without_context_is_rejected(gate, make_jwt):
    client, seen = gate

    resp = client.get("/protected", params={"jwt": make_jwt(context={"cloudId": "T1"})})

    assert resp.status_code == 403
    assert seen == []


def test_verify_jwt_returns_typed_claims(make_jwt):
    claims = verify_jwt(make_jwt(cloud_id="T9", conversation_id="C9", user_id="U9"), "test-client-secret")

    assert claims.sub == "U9"
    assert claims.context.cloud_id == "T9"
    assert claims.context.resource_id == "C9"


def test_verify_jwt_rejects_missing_subject(make_jwt):
    with pytest.raises(InvalidJwtError):
        verify_jwt(make_jwt(user_id=""), "test-client-secret")
