from sqlalchemy import Column, DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base, JSONType
from app.core.enums import TERMINAL_SESSION_STATUSES, SessionStatus


class DeviceSession(Base):
    __tablename__ = "device_sessions"

    id = Column(String(36), primary_key=True, index=True)
    # no ON DELETE CASCADE: device deletion terminates sessions explicitly first
    device_id = Column(String(36), ForeignKey("devices.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=True, index=True)  # NULL = anonymous
    location_id = Column(String(64), nullable=False, index=True)
    interface_type = Column(String(50), nullable=False)
    station_id = Column(String(64), nullable=True)
    session_token_hash = Column(String(64), unique=True, index=True, nullable=False)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(1024), nullable=True)
    status = Column(
        Enum(SessionStatus),
        default=SessionStatus.ACTIVE,
        nullable=False,
        index=True,
    )
    permissions = Column(JSONType, nullable=False, default=list)
    started_at = Column(DateTime(timezone=True), nullable=False)
    last_activity = Column(DateTime(timezone=True), nullable=False)
    # fixed at creation
    expires_at = Column(DateTime(timezone=True), nullable=False)
    terminated_at = Column(DateTime(timezone=True), nullable=True)
    terminated_reason = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # relationships
    device = relationship("Device", back_populates="sessions")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SESSION_STATUSES
