from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from services.access_service.models import (
    ApprovalAction,
    GateDecision,
    RouteKind,
)


class GateResponse(BaseModel):
    decision: GateDecision
    allowed: bool
    route: RouteKind
    email: Optional[str] = None
    redirect: Optional[str] = None
    signed_out: bool = False


class BlockedMeResponse(BaseModel):
    blocked: bool
    reason: Optional[str] = None


class ApprovalRequest(BaseModel):
    email: EmailStr
    action: ApprovalAction
    reason: Optional[str] = Field(default=None, max_length=500)
    # Supabase auth id, lets a block also revoke the user's sessions
    user_id: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class ApprovalActionResponse(BaseModel):
    ok: bool = True
    email: str
    action: ApprovalAction
    sessions_revoked: Optional[bool] = None


class ApprovalEntry(BaseModel):
    email: str
    status: str
    # Supabase auth id, only known for pending sign-ups
    user_id: Optional[str] = None
    requested_at: Optional[datetime] = None
    allowed_at: Optional[datetime] = None
    blocked_at: Optional[datetime] = None
    reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ApprovalListResponse(BaseModel):
    items: list[ApprovalEntry]
    total: int
    page: int
    limit: int
