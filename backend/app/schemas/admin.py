import enum
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import DeviceType, InterfaceType
from app.schemas.device import DeviceCapabilities, DeviceResponse, DeviceRestrictions


class AdminLogin(BaseModel):
    username: str
    password: str


class AdminCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=8)


class AdminUserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    username: str
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class DeviceAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"
    suspend = "suspend"
    reactivate = "reactivate"
    block = "block"
    maintenance = "maintenance"
    update_location = "update_location"
    update_capabilities = "update_capabilities"
    update_restrictions = "update_restrictions"
    update_interfaces = "update_interfaces"
    assign_user = "assign_user"


class DeviceActionRequest(BaseModel):
    action: DeviceAction
    reason: Optional[str] = None
    location_id: Optional[str] = None
    capabilities: Optional[DeviceCapabilities] = None
    restrictions: Optional[DeviceRestrictions] = None
    allowed_interfaces: Optional[list[InterfaceType]] = None
    assigned_user_id: Optional[str] = None


class AdminDeviceCreate(BaseModel):
    """Pre-register a device before it first connects; it still needs approval."""

    fingerprint: str = Field(..., min_length=1, max_length=128)
    name: str = Field(..., min_length=1, max_length=255)
    device_type: DeviceType
    location_id: str = Field(..., min_length=1, max_length=64)
    station_id: Optional[str] = None
    assigned_user_id: Optional[str] = None
    allowed_interfaces: Optional[list[InterfaceType]] = None
    restrictions: Optional[DeviceRestrictions] = None
    capabilities: Optional[DeviceCapabilities] = None


class DeviceSessionSummary(BaseModel):
    id: str
    interface_type: str
    status: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    end_reason: Optional[str] = None
    is_active: bool


class AdminDeviceDetail(DeviceResponse):
    user_agent: Optional[str] = None
    last_ip_address: Optional[str] = None
    sessions: list[DeviceSessionSummary] = []


class DeviceListResponse(BaseModel):
    devices: list[AdminDeviceDetail]
    total: int


class SweepResponse(BaseModel):
    idle: int
    expired: int
