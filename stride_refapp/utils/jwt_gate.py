"""
Securing the app with JWT.

Whenever the platform calls the app (webhook, glance, sidebar, bot), it passes
a JSON Web Token signed with the app's client secret. The token carries the
context of the call: cloudId, conversation (resourceId) and user (sub).
`validate_jwt` is a FastAPI dependency: it verifies the signature and hands
the route a RequestContext, or rejects the call with 403 before the route runs.
"""
import logging

import jwt
from fastapi import HTTPException, Request, status
from pydantic import ValidationError

from stride_refapp.config import settings
from stride_refapp.schemas import RequestContext, StrideJwtClaims

logger = logging.getLogger("app.jwt_gate")

BEARER_PREFIX = "Bearer "
ALGORITHMS = ["HS256"]


class InvalidJwtError(Exception):
    pass


def extract_jwt(request: Request) -> str:
    """Token from the ``jwt`` query parameter, else from the Authorization header."""
    token = request.query_params.get("jwt")
    if token:
        return token

    # Starlette header lookup is case-insensitive
    authorization = request.headers.get("authorization", "").strip()
    if authorization.startswith(BEARER_PREFIX):
        authorization = authorization[len(BEARER_PREFIX):].strip()
    if authorization:
        return authorization

    raise InvalidJwtError("expected encoded JWT not found")


def peek_claims(encoded: str) -> dict:
    """Unverified claims, for logging only."""
    try:
        return jwt.decode(encoded, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return {}


def verify_jwt(encoded: str, secret: str) -> StrideJwtClaims:
    try:
        # aud is the app itself and not checked; exp is enforced when present
        claims = jwt.decode(encoded, secret, algorithms=ALGORITHMS, options={"verify_aud": False})
    except jwt.InvalidTokenError as exc:
        raise InvalidJwtError(str(exc)) from exc
    try:
        return StrideJwtClaims.model_validate(claims)
    except ValidationError as exc:
        raise InvalidJwtError(f"missing required claims: {exc.error_count()} error(s)") from exc


def validate_jwt(request: Request) -> RequestContext:
    request_id = getattr(request.state, "request_id", None)
    log_details = {
        "request_id": request_id,
        "endpoint": request.url.path,
        "method": request.method,
    }

    try:
        encoded = extract_jwt(request)
        unverified = peek_claims(encoded)
        logger.debug(
            "jwt_validating",
            extra={"extra": {**log_details, "unverified_sub": unverified.get("sub")}},
        )

        claims = verify_jwt(encoded, settings.CLIENT_SECRET)
    except InvalidJwtError as exc:
        logger.warning(
            "jwt_invalid",
            extra={"extra": {**log_details, "error": str(exc)}},
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    context = RequestContext.from_claims(claims)
    request.state.context = context
    logger.info(
        "jwt_valid",
        extra={
            "extra": {
                **log_details,
                "cloud_id": context.cloud_id,
                "conversation_id": context.conversation_id,
                "user_id": context.user_id,
            }
        },
    )
    return context
