"""
Type models for the upload service.

Provider rows arrive as snake_case JSON (``ProfileRowDict``) and are normalised
into ``Profile``; API responses are pydantic models whose field names are the
camelCase keys the frontend reads.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, TypedDict

from pydantic import BaseModel, Field

DEFAULT_PLAN_KEY = "free"
DEFAULT_ROLE = "user"


class ProfileRowDict(TypedDict, total=False):
    """Row of the provider's ``profiles`` table."""
    id: str
    email: Optional[str]
    plan: Optional[str]
    role: Optional[str]
    monthly_render_count: Optional[int]
    monthly_render_limit: Optional[int]
    upload_override_bytes: Optional[int]


class ProviderUserDict(TypedDict, total=False):
    """Identity returned by the provider for an access token."""
    id: str
    email: Optional[str]
    role: Optional[str]


def _int_or_none(value: Any) -> Optional[int]:
    # bool is an int subclass; a JSON true is not a count
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


@dataclass(frozen=True)
class Profile:
    id: str
    plan: str = DEFAULT_PLAN_KEY
    role: str = DEFAULT_ROLE
    monthly_render_count: int = 0
    monthly_render_limit: Optional[int] = None
    upload_override_bytes: Optional[int] = None
    email: Optional[str] = None

    @classmethod
    def from_row(cls, row: ProfileRowDict) -> "Profile":
        count = _int_or_none(row.get("monthly_render_count"))
        return cls(
            id=str(row.get("id", "")),
            plan=row.get("plan") or DEFAULT_PLAN_KEY,
            role=row.get("role") or DEFAULT_ROLE,
            monthly_render_count=max(count, 0) if count is not None else 0,
            monthly_render_limit=_int_or_none(row.get("monthly_render_limit")),
            upload_override_bytes=_int_or_none(row.get("upload_override_bytes")),
            email=row.get("email"),
        )


# API response models

class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    error: str


class PlanSummary(BaseModel):
    key: str
    name: str
    maxUploadBytes: int
    maxMonthlyRenders: Optional[int] = Field(
        None, description="null when the plan has no monthly render ceiling"
    )
    signedUrlTtlSeconds: int


class PlanCatalogResponse(BaseModel):
    plans: List[PlanSummary]
    hasIdentityProviderConfigured: bool


class PlanLimitsSnapshot(PlanSummary):
    """Effective limits for one caller plus their current usage."""
    monthlyRenderCount: int


class UploadResponse(BaseModel):
    audioUrl: str
    expiresAt: int
    originalName: str
    size: int
    mimeType: str
    plan: str
    planLimits: PlanLimitsSnapshot
    usageRecorded: bool = Field(
        True, description="False when the render count could not be updated"
    )


class ProfileResponse(BaseModel):
    id: str
    email: Optional[str] = None
    plan: str
    role: str
    planLimits: PlanLimitsSnapshot


def error_body(message: str) -> Dict[str, str]:
    return ErrorResponse(error=message).model_dump()
