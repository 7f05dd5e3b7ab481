"""
App modules declared in the descriptor: glance, sidebar, dialog,
configuration and action targets, plus the descriptor itself.
"""
import json
import logging
from pathlib import Path
from string import Template

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from stride_refapp.database import get_db
from stride_refapp.models import ConversationConfig
from stride_refapp.routers.dependencies import get_stride
from stride_refapp.schemas import ActionResponse, GlanceStateResponse, RequestContext
from stride_refapp.services.stride import StrideAPIError, StrideClient
from stride_refapp.services.walkthrough import build_incident_update
from stride_refapp.utils.jwt_gate import validate_jwt

router = APIRouter()
logger = logging.getLogger("app.modules")

STATIC_DIR = Path(__file__).resolve().parent.parent / "static"
DESCRIPTOR_PATH = STATIC_DIR / "app-descriptor.json"
CONFIG_KEY = "refapp-config"

NEXT_ACTIONS = {
    "open sidebar": lambda params: {"target": {"key": "refapp-action-openSidebar"}},
    "open dialog": lambda params: {"target": {"openDialog": {"key": "refapp-dialog"}}},
    "open conversation": lambda params: {
        "target": {"openConversation": {"conversationId": params.get("conversationId")}}
    },
    "open highlights": lambda params: {"target": {"openHighlights": {}}},
    "open files and links": lambda params: {"target": {"openFilesAndLinks": {}}},
}


class ConfigurationState(BaseModel):
    configured: bool


@router.get("/descriptor")
async def descriptor(request: Request):
    """The descriptor with ${host} substituted by the app's public base URL."""
    template = Template(DESCRIPTOR_PATH.read_text(encoding="utf-8"))
    body = template.safe_substitute(host=f"https://{request.headers.get('host', '')}")
    return Response(content=body, media_type="application/json")


# ── chat:dialog / chat:sidebar ──────────────────────────────────────────

@router.get("/module/dialog")
async def module_dialog(context: RequestContext = Depends(validate_jwt)):
    return RedirectResponse("/app-module-dialog.html")


@router.get("/module/sidebar")
async def module_sidebar(context: RequestContext = Depends(validate_jwt)):
    """Loaded in an iframe when a user clicks the glance."""
    return RedirectResponse("/app-module-sidebar.html")


# ── chat:glance ─────────────────────────────────────────────────────────

@router.get("/module/glance/state", response_model=GlanceStateResponse)
async def glance_state(context: RequestContext = Depends(validate_jwt)):
    """Initial glance value, queried when a user opens a conversation."""
    return {"label": {"value": "Click me!"}}


# ── chat:configuration ──────────────────────────────────────────────────

@router.get("/module/config/state")
async def get_configuration_state(
    context: RequestContext = Depends(validate_jwt),
    db: Session = Depends(get_db),
):
    config = db.execute(
        select(ConversationConfig).where(
            ConversationConfig.conversation_id == context.conversation_id,
            ConversationConfig.config_key == CONFIG_KEY,
        )
    ).scalar_one_or_none()
    return {"configured": bool(config and config.configured)}


@router.post("/module/config/state")
async def set_configuration_state(
    state: ConfigurationState,
    request: Request,
    context: RequestContext = Depends(validate_jwt),
    db: Session = Depends(get_db),
    stride: StrideClient = Depends(get_stride),
):
    config = db.execute(
        select(ConversationConfig).where(
            ConversationConfig.conversation_id == context.conversation_id,
            ConversationConfig.config_key == CONFIG_KEY,
        )
    ).scalar_one_or_none()
    if config is None:
        config = ConversationConfig(
            conversation_id=context.conversation_id,
            cloud_id=context.cloud_id,
            config_key=CONFIG_KEY,
        )
    config.configured = state.configured
    db.add(config)
    db.commit()

    await stride.update_configuration_state(
        context.cloud_id, context.conversation_id, CONFIG_KEY, state.configured,
    )
    logger.info(
        "configuration_state_updated",
        extra={
            "extra": {
                "request_id": request.state.request_id,
                "conversation_id": context.conversation_id,
                "configured": state.configured,
            }
        },
    )
    return {"configured": config.configured}


# ── chat:actionTarget ───────────────────────────────────────────────────

def build_action_response(parameters: dict) -> ActionResponse:
    response = ActionResponse()
    if parameters.get("returnError"):
        response.error = "Things failed because of some reason"
    else:
        response.message = "Done!"

    next_action = NEXT_ACTIONS.get(parameters.get("then"))
    if next_action:
        response.next_action = next_action(parameters)
    return response


async def _notify_action_clicked(stride: StrideClient, context: RequestContext, parameters: dict) -> None:
    try:
        await stride.send_text_message(
            context.cloud_id,
            context.conversation_id,
            "A button was clicked! The following parameters were passed: " + json.dumps(parameters),
        )
    except StrideAPIError:
        logger.exception(
            "action_notification_failed",
            extra={"extra": {"conversation_id": context.conversation_id}},
        )


@router.post("/module/action/refapp-service")
async def action_call_service(
    request: Request,
    background_tasks: BackgroundTasks,
    context: RequestContext = Depends(validate_jwt),
    stride: StrideClient = Depends(get_stride),
):
    """A user clicked a "callService" action in a card."""
    body = await request.json()
    parameters = body.get("parameters") or {}
    logger.info(
        "action_call_service_received",
        extra={"extra": {"request_id": request.state.request_id, "parameters": parameters}},
    )

    response = build_action_response(parameters)
    background_tasks.add_task(_notify_action_clicked, stride, context, parameters)
    return JSONResponse(
        status_code=403 if parameters.get("returnError") else 200,
        content=response.model_dump(by_alias=True, exclude_none=True),
    )


@router.post("/module/action/refapp-service-updateMessage")
async def action_update_message(
    request: Request,
    context: RequestContext = Depends(validate_jwt),
    stride: StrideClient = Depends(get_stride),
):
    """Replace the card that carried the clicked action with its next state."""
    body = await request.json()
    parameters = body.get("parameters") or {}
    message_id = body["context"]["message"]["mid"]

    document = build_incident_update(parameters.get("incidentAction"))
    await stride.update_message(context.cloud_id, context.conversation_id, message_id, document)
    logger.info(
        "action_message_updated",
        extra={
            "extra": {
                "request_id": request.state.request_id,
                "message_id": message_id,
                "incident_action": parameters.get("incidentAction"),
            }
        },
    )
    return {}
