"""Tests for StrideClient against a mocked platform API."""

import asyncio
import json

import httpx
import pytest
import pytest_asyncio

from stride_refapp.services.documents import text_doc
from stride_refapp.services.stride import StrideAPIError, StrideClient

BASE_URL = "https://api.stg.atlassian.com"


class FakePlatform:
    """Records requests and answers them from a route table."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], httpx.Response] = {}
        self.token_responses: list[httpx.Response] = []
        self.token_calls = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/oauth/token":
            self.token_calls += 1
            if self.token_responses:
                return self.token_responses.pop(0)
            return httpx.Response(200, json={"access_token": f"access-{self.token_calls}", "expires_in": 3600})
        response = self.routes.get((request.method, request.url.path))
        if response is None:
            return httpx.Response(404, text="not found")
        return response

    def api_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path != "/oauth/token"]


@pytest.fixture
def platform():
    return FakePlatform()


@pytest_asyncio.fixture
async def stride(platform):
    client = StrideClient(
        client_id="cid",
        client_secret="csecret",
        base_url=BASE_URL,
        transport=httpx.MockTransport(platform.handler),
    )
    yield client
    await client.aclose()


@pytest.mark.asyncio
async def test_token_request_uses_client_credentials(stride, platform):
    token = await stride.get_access_token()

    assert token == "access-1"
    request = platform.requests[0]
    assert request.method == "POST"
    assert str(request.url) == f"{BASE_URL}/oauth/token"
    assert json.loads(request.content) == {
        "grant_type": "client_credentials",
        "client_id": "cid",
        "client_secret": "csecret",
    }


@pytest.mark.asyncio
async def test_concurrent_calls_issue_one_token_request(stride, platform):
    platform.routes[("GET", "/site/T1/conversation/C1")] = httpx.Response(200, json={"id": "C1", "name": "room"})
    platform.routes[("GET", "/scim/site/T1/Users/U1")] = httpx.Response(200, json={"id": "U1"})

    conversation, user = await asyncio.gather(
        stride.get_conversation("T1", "C1"),
        stride.get_user("T1", "U1"),
    )

    assert platform.token_calls == 1
    assert conversation["name"] == "room"
    assert user["id"] == "U1"
    assert {r.headers["authorization"] for r in platform.api_requests()} == {"Bearer access-1"}


@pytest.mark.asyncio
async def test_send_message_posts_document(stride, platform):
    platform.routes[("POST", "/site/T1/conversation/C1/message")] = httpx.Response(201, json={"id": "M1"})
    document = text_doc("hello")

    result = await stride.send_message("T1", "C1", document)

    assert result == {"id": "M1"}
    request = platform.api_requests()[0]
    assert request.headers["cache-control"] == "no-cache"
    assert json.loads(request.content) == {"body": document}


@pytest.mark.asyncio
async def test_update_message_puts_to_message_id(stride, platform):
    platform.routes[("PUT", "/site/T1/conversation/C1/message/M1")] = httpx.Response(200, json={})

    await stride.update_message("T1", "C1", "M1", text_doc("edited"))

    assert platform.api_requests()[0].method == "PUT"


@pytest.mark.asyncio
async def test_error_response_raises_and_does_not_retry(stride, platform):
    platform.routes[("GET", "/site/T1/conversation/C1")] = httpx.Response(500, text="boom")

    with pytest.raises(StrideAPIError) as exc_info:
        await stride.get_conversation("T1", "C1")

    assert exc_info.value.status_code == 500
    assert exc_info.value.body == "boom"
    assert len(platform.api_requests()) == 1


@pytest.mark.asyncio
async def test_failed_token_fetch_is_retried_on_next_call(stride, platform):
    platform.token_responses.append(httpx.Response(401, json={"error": "invalid_client"}))

    with pytest.raises(StrideAPIError):
        await stride.get_access_token()

    assert await stride.get_access_token() == "access-2"
    assert platform.token_calls == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"error": "nope"}),
        httpx.Response(200, text="<html>"),
    ],
)
async def test_malformed_token_response_raises_api_error(stride, platform, response):
    platform.token_responses.append(response)

    with pytest.raises(StrideAPIError) as exc_info:
        await stride.get_access_token()

    assert exc_info.value.status_code == 200
    assert exc_info.value.url == f"{BASE_URL}/oauth/token"
    assert await stride.get_access_token() == "access-2"


@pytest.mark.asyncio
async def test_network_error_is_wrapped():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = StrideClient("cid", "csecret", BASE_URL, transport=httpx.MockTransport(handler))
    try:
        with pytest.raises(StrideAPIError) as exc_info:
            await client.get_access_token()
    finally:
        await client.aclose()

    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_send_private_message_looks_up_direct_conversation(stride, platform):
    platform.routes[("GET", "/site/T1/conversation/user/U2")] = httpx.Response(200, json={"id": "DM1"})
    platform.routes[("POST", "/site/T1/conversation/DM1/message")] = httpx.Response(201, json={"id": "M9"})

    result = await stride.send_private_message("T1", "U2", text_doc("psst"))

    assert result == {"id": "M9"}
    assert [r.url.path for r in platform.api_requests()] == [
        "/site/T1/conversation/user/U2",
        "/site/T1/conversation/DM1/message",
    ]


@pytest.mark.asyncio
async def test_send_private_message_without_conversation_id_fails(stride, platform):
    platform.routes[("GET", "/site/T1/conversation/user/U2")] = httpx.Response(200, json={})

    with pytest.raises(StrideAPIError):
        await stride.send_private_message("T1", "U2", text_doc("psst"))


@pytest.mark.asyncio
async def test_conversation_history_is_limited(stride, platform):
    platform.routes[("GET", "/site/T1/conversation/C1/message")] = httpx.Response(200, json={"messages": []})

    await stride.get_conversation_history("T1", "C1")

    assert platform.api_requests()[0].url.params["limit"] == "5"


@pytest.mark.asyncio
async def test_send_media_uploads_bytes(stride, platform):
    platform.routes[("POST", "/site/T1/conversation/C1/media")] = httpx.Response(200, json={"data": {"id": "F1"}})

    result = await stride.send_media("T1", "C1", "image.gif", b"GIF89a")

    request = platform.api_requests()[0]
    assert result["data"]["id"] == "F1"
    assert request.url.params["name"] == "image.gif"
    assert request.headers["content-type"] == "application/octet-stream"
    assert request.content == b"GIF89a"


@pytest.mark.asyncio
async def test_send_media_without_file_id_raises(stride, platform):
    path = "/site/T1/conversation/C1/media"
    platform.routes[("POST", path)] = httpx.Response(200, json={})

    with pytest.raises(StrideAPIError) as exc_info:
        await stride.send_media("T1", "C1", "image.gif", b"GIF89a")

    assert exc_info.value.url == f"{BASE_URL}{path}"


@pytest.mark.asyncio
async def test_update_glance_state_payload(stride, platform):
    path = "/app/module/chat/conversation/chat:glance/refapp-glance/state"
    platform.routes[("POST", path)] = httpx.Response(204)

    result = await stride.update_glance_state("T1", "C1", "refapp-glance", "Click me!")

    assert result is None
    assert json.loads(platform.api_requests()[0].content) == {
        "context": {"cloudId": "T1", "conversationId": "C1"},
        "label": "Click me!",
        "metadata": {},
    }


@pytest.mark.asyncio
async def test_update_configuration_state_accepts_false(stride, platform):
    path = "/app/module/chat/conversation/chat:configuration/refapp-config/state"
    platform.routes[("POST", path)] = httpx.Response(204)

    await stride.update_configuration_state("T1", "C1", "refapp-config", False)

    assert json.loads(platform.api_requests()[0].content)["configured"] is False


@pytest.mark.asyncio
async def test_convert_doc_to_text_returns_plain_text(stride, platform):
    platform.routes[("POST", "/pf-editor-service/render")] = httpx.Response(
        200, text="hello", headers={"content-type": "text/plain"}
    )

    assert await stride.convert_doc_to_text(text_doc("hello")) == "hello"


@pytest.mark.asyncio
async def test_create_doc_mentioning_user(stride, platform):
    platform.routes[("GET", "/scim/site/T1/Users/U1")] = httpx.Response(
        200, json={"id": "U1", "displayName": "Joe Blog"}
    )

    document = await stride.create_doc_mentioning_user("T1", "U1", "Beware {{MENTION}}, I know where you live")

    mention = {"type": "mention", "attrs": {"id": "U1", "text": "Joe Blog"}}
    assert document["content"][0]["content"] == [
        {"type": "text", "text": "Beware "},
        mention,
        {"type": "text", "text": ", I know where you live"},
    ]


@pytest.mark.asyncio
async def test_reply_uses_inbound_conversation(stride, platform):
    platform.routes[("POST", "/site/T1/conversation/C7/message")] = httpx.Response(201, json={"id": "M1"})
    payload = {"cloudId": "T1", "conversation": {"id": "C7"}}

    await stride.reply_with_text(payload, "hi")

    assert json.loads(platform.api_requests()[0].content)["body"] == text_doc("hi")


@pytest.mark.asyncio
async def test_missing_params_raise_before_any_request(stride, platform):
    with pytest.raises(ValueError, match="missing param conversation_id"):
        await stride.send_message("T1", "", text_doc("x"))
    with pytest.raises(ValueError, match="wrong message format"):
        await stride.send_message("T1", "C1", {"type": "doc"})
    with pytest.raises(ValueError, match="missing param name"):
        await stride.create_conversation("T1", "")

    assert platform.requests == []
