"""
Light async wrapper around the Stride REST API.

Every outbound call is bearer-authenticated with an access token obtained
through the OAuth client-credentials grant and kept in a TokenCache owned by
the client. A StrideClient is created once at startup and closed at shutdown.
"""
import logging
import time
from typing import Any

import httpx

from stride_refapp.services.documents import text_doc
from stride_refapp.services.token_cache import TokenCache

logger = logging.getLogger("app.stride")

MENTION_PLACEHOLDER = "{{MENTION}}"


class StrideAPIError(Exception):
    """An outbound call failed: network error or non-2xx response."""

    def __init__(self, method: str, url: str, status_code: int | None = None, body: str = "") -> None:
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = body
        detail = f"status {status_code}" if status_code is not None else "network error"
        super().__init__(f"Stride request failed: {method} {url} ({detail})")


def _require(operation: str, **params: Any) -> None:
    for name, value in params.items():
        if not value:
            raise ValueError(f"Stride/{operation}: missing param {name}!")


def _require_document(operation: str, document: Any) -> None:
    _require(operation, document=document)
    if not isinstance(document.get("content"), list):
        raise ValueError(f"Stride/{operation}: wrong message format!")


class StrideClient:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str,
        timeout: float = 15,
        refresh_margin: int = 60,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)
        self.token_cache = TokenCache(self._fetch_token, refresh_margin=refresh_margin)

    async def aclose(self) -> None:
        await self._http.aclose()
        self.token_cache.clear()
        logger.info("stride_client_closed")

    # ── HTTP primitive ──────────────────────────────────────────────────

    async def _send(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        json: Any = None,
        content: bytes | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        logger.info(
            "stride_request_started",
            extra={"extra": {"method": method, "url": url}},
        )
        start = time.time()
        try:
            response = await self._http.request(
                method, url, headers=headers, json=json, content=content, params=params,
            )
        except httpx.HTTPError as exc:
            logger.error(
                "stride_request_failed",
                extra={
                    "extra": {
                        "method": method,
                        "url": url,
                        "error": str(exc),
                        "duration_ms": round((time.time() - start) * 1000, 1),
                    }
                },
            )
            raise StrideAPIError(method, url) from exc

        duration_ms = round((time.time() - start) * 1000, 1)
        if not 200 <= response.status_code < 300:
            logger.error(
                "stride_request_error_response",
                extra={
                    "extra": {
                        "method": method,
                        "url": url,
                        "status_code": response.status_code,
                        "duration_ms": duration_ms,
                        "response_body": response.text[:1000],
                    }
                },
            )
            raise StrideAPIError(method, url, response.status_code, response.text)

        logger.info(
            "stride_request_completed",
            extra={
                "extra": {
                    "method": method,
                    "url": url,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                }
            },
        )
        return response

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Authenticated call; returns parsed JSON, or text for non-JSON bodies."""
        access_token = await self.get_access_token()
        headers = {"authorization": f"Bearer {access_token}", "cache-control": "no-cache"}
        headers.update(kwargs.pop("headers", None) or {})
        response = await self._send(method, path, headers=headers, **kwargs)
        if not response.content:
            return None
        if "json" in response.headers.get("content-type", ""):
            return response.json()
        return response.text

    # ── Access token ────────────────────────────────────────────────────

    async def _fetch_token(self) -> tuple[str, int]:
        logger.info(
            "stride_token_request",
            extra={"extra": {"client_id": self.client_id}},
        )
        response = await self._send(
            "POST",
            "/oauth/token",
            json={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )
        try:
            payload = response.json()
            return payload["access_token"], int(payload.get("expires_in", 3600))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.error(
                "stride_token_response_invalid",
                extra={
                    "extra": {
                        "status_code": response.status_code,
                        "response_body": response.text[:1000],
                    }
                },
            )
            raise StrideAPIError("POST", str(response.request.url), response.status_code, response.text) from exc

    async def get_access_token(self) -> str:
        return await self.token_cache.get()

    # ── Messages ────────────────────────────────────────────────────────

    async def send_message(self, cloud_id: str, conversation_id: str, document: dict) -> Any:
        """Send a message in the Atlassian document format."""
        _require("sendMessage", cloud_id=cloud_id, conversation_id=conversation_id)
        _require_document("sendMessage", document)
        return await self.request(
            "POST",
            f"/site/{cloud_id}/conversation/{conversation_id}/message",
            json={"body": document},
        )

    async def update_message(
        self, cloud_id: str, conversation_id: str, message_id: str, document: dict,
    ) -> Any:
        _require("updateMessage", cloud_id=cloud_id, conversation_id=conversation_id, message_id=message_id)
        _require_document("updateMessage", document)
        return await self.request(
            "PUT",
            f"/site/{cloud_id}/conversation/{conversation_id}/message/{message_id}",
            json={"body": document},
        )

    async def send_private_message(self, cloud_id: str, user_id: str, document: dict) -> Any:
        """
        Send a direct message to a user.

        Looking up the user's conversation installs the app in it on the
        platform side; that can fail while the installation is still in
        progress, in which case the caller should try again later.
        """
        _require("sendPrivateMessage", cloud_id=cloud_id, user_id=user_id)
        _require_document("sendPrivateMessage", document)

        conversation = await self.request("GET", f"/site/{cloud_id}/conversation/user/{user_id}")
        conversation_id = (conversation or {}).get("id")
        if not conversation_id:
            raise StrideAPIError(
                "GET",
                f"{self.base_url}/site/{cloud_id}/conversation/user/{user_id}",
                body="Error getting details about the direct conversation",
            )
        return await self.send_message(cloud_id, conversation_id, document)

    # ── Conversations ───────────────────────────────────────────────────

    async def get_conversation(self, cloud_id: str, conversation_id: str) -> dict:
        _require("getConversation", cloud_id=cloud_id, conversation_id=conversation_id)
        return await self.request("GET", f"/site/{cloud_id}/conversation/{conversation_id}")

    async def create_conversation(
        self, cloud_id: str, name: str, privacy: str = "public", topic: str = "",
    ) -> dict:
        _require("createConversation", cloud_id=cloud_id, name=name)
        return await self.request(
            "POST",
            f"/site/{cloud_id}/conversation",
            json={"name": name, "privacy": privacy, "topic": topic},
        )

    async def archive_conversation(self, cloud_id: str, conversation_id: str) -> Any:
        _require("archiveConversation", cloud_id=cloud_id, conversation_id=conversation_id)
        return await self.request("PUT", f"/site/{cloud_id}/conversation/{conversation_id}/archive")

    async def get_conversation_history(self, cloud_id: str, conversation_id: str, limit: int = 5) -> dict:
        _require("getConversationHistory", cloud_id=cloud_id, conversation_id=conversation_id)
        return await self.request(
            "GET",
            f"/site/{cloud_id}/conversation/{conversation_id}/message",
            params={"limit": limit},
        )

    async def get_conversation_roster(self, cloud_id: str, conversation_id: str) -> dict:
        _require("getConversationRoster", cloud_id=cloud_id, conversation_id=conversation_id)
        return await self.request("GET", f"/site/{cloud_id}/conversation/{conversation_id}/roster")

    # ── Media and app modules ───────────────────────────────────────────

    async def send_media(self, cloud_id: str, conversation_id: str, name: str, content: bytes) -> Any:
        """Upload a file to a conversation; the returned id can then be used in a message."""
        _require("sendMedia", cloud_id=cloud_id, conversation_id=conversation_id, name=name, content=content)
        path = f"/site/{cloud_id}/conversation/{conversation_id}/media"
        response = await self.request(
            "POST",
            path,
            params={"name": name},
            headers={"content-type": "application/octet-stream"},
            content=content,
        )
        if not isinstance(response, dict) or not (response.get("data") or {}).get("id"):
            raise StrideAPIError("POST", f"{self.base_url}{path}", body=str(response or ""))
        return response

    async def update_glance_state(
        self, cloud_id: str, conversation_id: str, glance_key: str, state_txt: str,
    ) -> Any:
        """Update the glance label shown in the right sidebar for a conversation."""
        _require(
            "updateGlanceState",
            cloud_id=cloud_id, conversation_id=conversation_id, glance_key=glance_key, state_txt=state_txt,
        )
        return await self.request(
            "POST",
            f"/app/module/chat/conversation/chat:glance/{glance_key}/state",
            json={
                "context": {"cloudId": cloud_id, "conversationId": conversation_id},
                "label": state_txt,
                "metadata": {},
            },
        )

    async def update_configuration_state(
        self, cloud_id: str, conversation_id: str, config_key: str, state: bool,
    ) -> Any:
        _require("updateConfigurationState", cloud_id=cloud_id, conversation_id=conversation_id, config_key=config_key)
        if state is None:
            raise ValueError("Stride/updateConfigurationState: missing param state!")
        return await self.request(
            "POST",
            f"/app/module/chat/conversation/chat:configuration/{config_key}/state",
            json={
                "context": {"cloudId": cloud_id, "conversationId": conversation_id},
                "configured": state,
            },
        )

    # ── Users ───────────────────────────────────────────────────────────

    async def get_user(self, cloud_id: str, user_id: str) -> dict:
        _require("getUser", cloud_id=cloud_id, user_id=user_id)
        return await self.request("GET", f"/scim/site/{cloud_id}/Users/{user_id}")

    # ── Utilities ───────────────────────────────────────────────────────

    async def send_text_message(self, cloud_id: str, conversation_id: str, text: str) -> Any:
        _require("sendTextMessage", cloud_id=cloud_id, conversation_id=conversation_id, text=text)
        return await self.send_message(cloud_id, conversation_id, text_doc(text))

    async def create_doc_mentioning_user(self, cloud_id: str, user_id: str, text: str) -> dict:
        """
        Build a document mentioning a user, e.g.
        "Beware {{MENTION}}, I know where you live..."
        """
        _require("createDocMentioningUser", cloud_id=cloud_id, user_id=user_id, text=text)
        user = await self.get_user(cloud_id, user_id)
        mention = {
            "type": "mention",
            "attrs": {"id": user["id"], "text": user.get("displayName", "")},
        }

        parts = text.split(MENTION_PLACEHOLDER)
        content: list[dict] = []
        if len(parts) > 1:
            content.append({"type": "text", "text": parts.pop(0)})
        for part in parts:
            content.append(mention)
            content.append({"type": "text", "text": part})

        return {
            "version": 1,
            "type": "doc",
            "content": [{"type": "paragraph", "content": content}],
        }

    async def reply(self, payload: dict, document: dict) -> Any:
        """Send a document to the conversation an inbound event came from."""
        _require("reply", payload=payload)
        _require_document("reply", document)
        return await self.send_message(payload["cloudId"], payload["conversation"]["id"], document)

    async def reply_with_text(self, payload: dict, text: str) -> Any:
        _require("replyWithText", payload=payload, text=text)
        return await self.send_text_message(payload["cloudId"], payload["conversation"]["id"], text)

    async def convert_doc_to_text(self, document: dict) -> str:
        _require_document("convertDocToText", document)
        return await self.request(
            "POST",
            "/pf-editor-service/render",
            headers={"content-type": "application/json", "accept": "text/plain"},
            json=document,
        )

    async def convert_markdown_to_doc(self, markdown: str) -> dict:
        _require("convertMarkdownToDoc", markdown=markdown)
        return await self.request(
            "POST",
            "/pf-editor-service/convert",
            params={"from": "markdown", "to": "adf"},
            headers={"content-type": "application/json"},
            json={"input": markdown},
        )
