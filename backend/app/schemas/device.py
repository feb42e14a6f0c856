import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.enums import ConnectionType, DeviceStatus, DeviceType, InterfaceType

WEEKDAYS = ("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY")
_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class DeviceCapabilities(BaseModel):
    """Immutable snapshot of what the device reported on its last contact."""

    model_config = ConfigDict(frozen=True)

    screen_width: int = Field(0, ge=0)
    screen_height: int = Field(0, ge=0)
    touch_enabled: bool = False
    camera_enabled: bool = False
    microphone_enabled: bool = False
    bluetooth_enabled: bool = False
    nfc_enabled: bool = False
    printer_connected: bool = False
    cash_drawer_connected: bool = False
    barcode_scanner: bool = False
    card_reader: bool = False
    user_agent: str = ""
    platform: str = ""
    connection_type: ConnectionType = ConnectionType.unknown
    battery_level: Optional[int] = Field(None, ge=0, le=100)
    is_charging: Optional[bool] = None


class TimeWindow(BaseModel):
    start: str  # HH:MM, inclusive
    end: str  # HH:MM, inclusive
    days: list[str]

    @field_validator("start", "end")
    @classmethod
    def hhmm(cls, v: str) -> str:
        if not _HHMM.match(v or ""):
            raise ValueError("must be HH:MM (24h)")
        return v

    @field_validator("days")
    @classmethod
    def weekday_names(cls, v: list[str]) -> list[str]:
        days = [d.strip().upper() for d in v]
        unknown = [d for d in days if d not in WEEKDAYS]
        if unknown:
            raise ValueError(f"unknown weekday(s): {', '.join(unknown)}")
        return days


class DeviceRestrictions(BaseModel):
    requires_approval: bool = False
    max_session_duration: Optional[int] = Field(None, gt=0)  # minutes
    allowed_time_windows: list[TimeWindow] = []
    ip_whitelist: list[str] = []
    location_restricted: bool = True


class DeviceAuthRequest(BaseModel):
    """Authenticate-device request. Required fields are validated before any registry access."""

    device_fingerprint: str = Field(..., min_length=1, max_length=128)
    device_name: Optional[str] = Field(None, max_length=255)
    device_type: DeviceType
    capabilities: DeviceCapabilities = Field(default_factory=DeviceCapabilities)
    requested_location: str = Field(..., min_length=1, max_length=64)
    requested_interface: InterfaceType
    user_id: Optional[str] = Field(None, max_length=64)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @field_validator("device_fingerprint", "requested_location", mode="before")
    @classmethod
    def not_blank(cls, v: object) -> object:
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError("is required")
        return v

    @field_validator("user_id", "device_name", mode="before")
    @classmethod
    def blank_to_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class DeviceAuthResponse(BaseModel):
    success: bool
    device_id: Optional[str] = None
    session_id: Optional[str] = None
    session_token: Optional[str] = None
    allowed_interfaces: list[str] = []
    restrictions: Optional[DeviceRestrictions] = None
    permissions: list[str] = []
    expires_at: Optional[datetime] = None
    heartbeat_interval_seconds: Optional[int] = None
    error: Optional[str] = None
    requires_approval: bool = False
    approval_message: Optional[str] = None


class DeviceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    device_type: DeviceType
    fingerprint: str
    capabilities: DeviceCapabilities
    status: DeviceStatus
    location_id: Optional[str] = None
    station_id: Optional[str] = None
    assigned_user_id: Optional[str] = None
    allowed_interfaces: list[str]
    restrictions: DeviceRestrictions
    last_seen: Optional[datetime] = None
    registered_at: Optional[datetime] = None
    registered_by: str
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ApprovalRequestCreate(BaseModel):
    device_fingerprint: str = Field(..., min_length=1, max_length=128)
    location_id: str = Field(..., min_length=1, max_length=64)
    requested_interface: Optional[InterfaceType] = None
    user_id: Optional[str] = None


class ApprovalRequestResponse(BaseModel):
    ok: bool
    device_id: Optional[str] = None
    message: str
