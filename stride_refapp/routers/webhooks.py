"""
core:webhook: conversation and roster events.

Webhooks only fire for conversations the app is authorized to access.
"""
import json
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from stride_refapp.database import get_db
from stride_refapp.models import WebhookEvent
from stride_refapp.schemas import RequestContext
from stride_refapp.utils.jwt_gate import validate_jwt

router = APIRouter()
logger = logging.getLogger("app.webhooks")


async def _record_event(
    event_type: str,
    request: Request,
    context: RequestContext,
    db: Session,
) -> dict:
    payload = await request.json()
    conversation_id = (payload.get("conversation") or {}).get("id") or context.conversation_id
    action = payload.get("action")

    event = WebhookEvent(
        event_type=event_type,
        cloud_id=context.cloud_id,
        conversation_id=conversation_id,
        action=action if action is None or isinstance(action, str) else json.dumps(action),
        payload_json=json.dumps(payload),
    )
    db.add(event)
    db.commit()

    logger.info(
        f"{event_type}_received",
        extra={
            "extra": {
                "request_id": request.state.request_id,
                "conversation_id": conversation_id,
                "action": action,
                "webhook_event_id": event.id,
            }
        },
    )
    return {"status": "ok"}


@router.post("/conversation-updated")
async def conversation_updated(
    request: Request,
    context: RequestContext = Depends(validate_jwt),
    db: Session = Depends(get_db),
):
    return await _record_event("conversation_updated", request, context, db)


@router.post("/roster-updated")
async def roster_updated(
    request: Request,
    context: RequestContext = Depends(validate_jwt),
    db: Session = Depends(get_db),
):
    """A user joined or left a conversation."""
    return await _record_event("roster_updated", request, context, db)
