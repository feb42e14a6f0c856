from app.core.database import Base
from app.models.admin_user import AdminUser
from app.models.audit_log import AuditLog
from app.models.device import Device
from app.models.device_session import DeviceSession

__all__ = [
    "Base",
    "AdminUser",
    "AuditLog",
    "Device",
    "DeviceSession",
]
