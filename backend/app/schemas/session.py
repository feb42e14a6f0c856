from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.enums import ANONYMOUS_USER, InterfaceType, SessionStatus


class SessionCreate(BaseModel):
    device_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    location_id: str = Field(..., min_length=1, max_length=64)
    interface_type: InterfaceType
    station_id: Optional[str] = None


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    device_id: str
    user_id: str
    location_id: str
    interface_type: str
    station_id: Optional[str] = None
    started_at: datetime
    last_activity: datetime
    ip_address: Optional[str] = None
    status: SessionStatus
    permissions: list[str]
    expires_at: datetime
    terminated_at: Optional[datetime] = None
    terminated_reason: Optional[str] = None

    @field_validator("user_id", mode="before")
    @classmethod
    def anonymous_sentinel(cls, v: object) -> object:
        return v or ANONYMOUS_USER


class SessionCreateResponse(BaseModel):
    session: SessionResponse
    session_token: str


class SessionListResponse(BaseModel):
    sessions: list[SessionResponse]
    total: int


class HeartbeatResponse(BaseModel):
    ok: bool = True
    status: Optional[SessionStatus] = None  # None when the session is unknown


class TerminateResponse(BaseModel):
    ok: bool = True
    message: str


class InterfaceAccessRequest(BaseModel):
    interface_type: InterfaceType
    user_role: Optional[str] = None


class InterfaceAccessResponse(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    requires_approval: bool = False
    permissions: list[str] = []
