from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    status: str


class JwtContextClaim(BaseModel):
    cloud_id: str = Field(alias="cloudId", min_length=1)
    resource_id: str = Field(alias="resourceId", min_length=1)


class StrideJwtClaims(BaseModel):
    """Verified claims of an inbound platform JWT."""
    model_config = ConfigDict(extra="ignore")

    sub: str = Field(min_length=1)
    context: JwtContextClaim


@dataclass(frozen=True)
class RequestContext:
    """Tenant/conversation/caller of one inbound call; never persisted."""
    cloud_id: str
    conversation_id: str
    user_id: str

    @classmethod
    def from_claims(cls, claims: StrideJwtClaims) -> "RequestContext":
        return cls(
            cloud_id=claims.context.cloud_id,
            conversation_id=claims.context.resource_id,
            user_id=claims.sub,
        )


class InstallationEvent(BaseModel):
    """Body of the installed/uninstalled lifecycle calls."""
    model_config = ConfigDict(extra="allow")

    cloud_id: str = Field(alias="cloudId")
    resource_id: str = Field(alias="resourceId")
    user_id: str | None = Field(default=None, alias="userId")


class GlanceLabel(BaseModel):
    value: str


class GlanceStateResponse(BaseModel):
    label: GlanceLabel


class ActionResponse(BaseModel):
    message: str | None = None
    error: str | None = None
    next_action: dict[str, Any] | None = Field(default=None, serialization_alias="nextAction")
