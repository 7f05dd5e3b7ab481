"""
chat:bot: called whenever a user mentions the bot in a conversation.

The platform resends the mention if it does not get a 200 quickly, so the
route replies once, answers, and runs the long walkthrough in the background.
"""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response

from stride_refapp.routers.dependencies import get_stride
from stride_refapp.schemas import RequestContext
from stride_refapp.services.stride import StrideClient
from stride_refapp.services.walkthrough import run_walkthrough
from stride_refapp.utils.jwt_gate import validate_jwt

router = APIRouter()
logger = logging.getLogger("app.bot")


@router.post("/bot-mention")
async def bot_mention(
    request: Request,
    background_tasks: BackgroundTasks,
    context: RequestContext = Depends(validate_jwt),
    stride: StrideClient = Depends(get_stride),
):
    request_id = request.state.request_id
    payload = await request.json()
    payload["host"] = request.headers.get("host")
    payload["request_id"] = request_id

    logger.info(
        "bot_mention_received",
        extra={
            "extra": {
                "request_id": request_id,
                "cloud_id": context.cloud_id,
                "conversation_id": context.conversation_id,
                "sender_id": (payload.get("sender") or {}).get("id"),
                "text": (payload.get("message") or {}).get("text"),
            }
        },
    )

    await stride.reply_with_text(payload, "Beep boop I'm a bot!")

    background_tasks.add_task(run_walkthrough, stride, payload)
    logger.info("bot_mention_walkthrough_enqueued", extra={"extra": {"request_id": request_id}})

    return Response(status_code=200)
