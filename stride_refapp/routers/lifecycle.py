"""
Installation lifecycle.

When a user installs or uninstalls the app in a conversation, the platform
calls the endpoints declared under "lifecycle" in the app descriptor with
the installation context: cloudId, resourceId (conversation) and userId.
"""
import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stride_refapp.database import get_db
from stride_refapp.models import Installation
from stride_refapp.routers.dependencies import get_stride
from stride_refapp.schemas import InstallationEvent
from stride_refapp.services.stride import StrideClient

router = APIRouter()
logger = logging.getLogger("app.lifecycle")

WELCOME_TEXT = (
    "Hi there! Thanks for adding me to this conversation. "
    "To see me in action, just mention me in a message."
)


@router.post("/installed")
async def installed(
    event: InstallationEvent,
    request: Request,
    db: Session = Depends(get_db),
    stride: StrideClient = Depends(get_stride),
):
    request_id = request.state.request_id
    existing = db.execute(
        select(Installation).where(Installation.conversation_id == event.resource_id)
    ).scalar_one_or_none()

    if existing:
        logger.info(
            "app_already_installed",
            extra={
                "extra": {
                    "request_id": request_id,
                    "cloud_id": existing.cloud_id,
                    "conversation_id": existing.conversation_id,
                    "installed_by": existing.installed_by,
                }
            },
        )
    else:
        db.add(
            Installation(
                conversation_id=event.resource_id,
                cloud_id=event.cloud_id,
                installed_by=event.user_id,
            )
        )
        try:
            db.commit()
        except IntegrityError:
            # a concurrent install of the same conversation won
            db.rollback()
            logger.info(
                "app_install_duplicate_ignored",
                extra={"extra": {"request_id": request_id, "conversation_id": event.resource_id}},
            )
        else:
            logger.info(
                "app_installed",
                extra={
                    "extra": {
                        "request_id": request_id,
                        "cloud_id": event.cloud_id,
                        "conversation_id": event.resource_id,
                        "installed_by": event.user_id,
                    }
                },
            )

    await stride.send_text_message(event.cloud_id, event.resource_id, WELCOME_TEXT)
    return Response(status_code=200)


@router.post("/uninstalled", status_code=204)
async def uninstalled(
    event: InstallationEvent,
    request: Request,
    db: Session = Depends(get_db),
):
    # messages can no longer be sent to the conversation
    result = db.execute(
        delete(Installation).where(Installation.conversation_id == event.resource_id)
    )
    db.commit()
    logger.info(
        "app_uninstalled",
        extra={
            "extra": {
                "request_id": request.state.request_id,
                "conversation_id": event.resource_id,
                "removed": result.rowcount,
            }
        },
    )
    return Response(status_code=204)
