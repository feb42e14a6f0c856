from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base, JSONType
from app.core.enums import DeviceStatus, DeviceType


class Device(Base):
    """A physical POS device, identified by its environment fingerprint."""

    __tablename__ = "devices"

    id = Column(String(36), primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(1024), nullable=True)
    device_type = Column(Enum(DeviceType), nullable=False, index=True)
    # natural key; the unique index is what resolves concurrent first contact
    fingerprint = Column(String(128), unique=True, index=True, nullable=False)
    capabilities = Column(JSONType, nullable=False, default=dict)
    status = Column(
        Enum(DeviceStatus),
        default=DeviceStatus.PENDING_APPROVAL,
        nullable=False,
        index=True,
    )
    location_id = Column(String(64), nullable=True, index=True)
    station_id = Column(String(64), nullable=True)
    assigned_user_id = Column(String(64), nullable=True, index=True)
    allowed_interfaces = Column(JSONType, nullable=False, default=list)

    # restrictions bundle
    requires_approval = Column(Boolean, default=False, nullable=False)
    max_session_minutes = Column(Integer, nullable=True)
    allowed_time_windows = Column(JSONType, nullable=True)  # [{start, end, days}]
    ip_whitelist = Column(JSONType, nullable=True)
    location_restricted = Column(Boolean, default=True, nullable=False)

    user_agent = Column(String(1024), nullable=True)
    last_ip_address = Column(String(45), nullable=True)
    registered_by = Column(String(64), nullable=False, default="system")
    approved_by = Column(String(64), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    last_seen = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # relationships
    sessions = relationship("DeviceSession", back_populates="device", order_by="DeviceSession.started_at.desc()")

    @property
    def restrictions(self) -> dict:
        return {
            "requires_approval": bool(self.requires_approval),
            "max_session_duration": self.max_session_minutes,
            "allowed_time_windows": list(self.allowed_time_windows or []),
            "ip_whitelist": list(self.ip_whitelist or []),
            "location_restricted": bool(self.location_restricted),
        }

    @property
    def registered_at(self):
        return self.created_at
