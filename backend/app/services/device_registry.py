"""
Device registry: fingerprint-keyed store of known POS devices.

Lookups have no side effects. `register` relies on the unique fingerprint index
to resolve two first contacts from the same device: the loser of the insert race
rolls back and returns the row the winner created.
"""

import logging
import uuid
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.enums import DeviceStatus, DeviceType
from app.core.time import utcnow
from app.models.device import Device
from app.schemas.device import DeviceAuthRequest, DeviceCapabilities
from app.services import audit
from app.services.authorization import requires_approval
from app.services.exceptions import RegistryUnavailableError
from app.services.permissions import default_interfaces_for

logger = logging.getLogger(__name__)


def _short(value: Optional[str]) -> str:
    return (value or "")[:8]


class DeviceRegistry:
    def __init__(self, db: Session, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock or utcnow

    def get(self, device_id: str) -> Optional[Device]:
        return self.db.query(Device).filter(Device.id == device_id).first()

    def find_by_fingerprint(self, fingerprint: str) -> Optional[Device]:
        return self.db.query(Device).filter(Device.fingerprint == fingerprint).first()

    def register(self, request: DeviceAuthRequest, ip_address: Optional[str] = None) -> Device:
        """Persist a first-contact device. Status depends on the approval policy."""
        device_type = DeviceType(request.device_type)
        interface = request.requested_interface.value
        gated = requires_approval(interface, device_type.value)
        now = self.clock()
        device = Device(
            id=str(uuid.uuid4()),
            name=request.device_name or f"{device_type.value} Device",
            device_type=device_type,
            fingerprint=request.device_fingerprint,
            capabilities=request.capabilities.model_dump(mode="json"),
            status=DeviceStatus.PENDING_APPROVAL if gated else DeviceStatus.ACTIVE,
            location_id=request.requested_location,
            assigned_user_id=request.user_id,
            allowed_interfaces=default_interfaces_for(device_type),
            requires_approval=gated,
            max_session_minutes=None,
            allowed_time_windows=[],
            ip_whitelist=[],
            location_restricted=True,
            user_agent=request.user_agent or request.capabilities.user_agent or None,
            last_ip_address=ip_address,
            registered_by=request.user_id or "system",
            last_seen=now,
            created_at=now,
            updated_at=now,
        )
        self.db.add(device)
        audit.record(
            self.db,
            action="device.registered",
            resource_type="device",
            resource_id=device.id,
            actor_type="user" if request.user_id else "system",
            actor_id=request.user_id,
            details={
                "device_type": device_type.value,
                "location_id": request.requested_location,
                "requested_interface": interface,
                "status": device.status.value,
            },
            ip_address=ip_address,
        )
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.find_by_fingerprint(request.device_fingerprint)
            if existing is None:
                logger.exception("Device insert for fingerprint %s failed", _short(request.device_fingerprint))
                raise RegistryUnavailableError("Device registration failed")
            logger.info(
                "Concurrent registration for fingerprint %s resolved to device %s",
                _short(request.device_fingerprint),
                existing.id,
            )
            return existing
        self.db.refresh(device)
        logger.info(
            "Registered %s device %s at %s (status %s)",
            device_type.value,
            device.id,
            device.location_id,
            device.status.value,
        )
        return device

    def touch(
        self,
        device_id: str,
        capabilities: DeviceCapabilities,
        name: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Optional[Device]:
        """Record a contact from a known device. Failures are logged and never propagate."""
        try:
            device = self.get(device_id)
            if device is None:
                logger.warning("Touch for unknown device %s ignored", device_id)
                return None
            now = self.clock()
            device.capabilities = capabilities.model_dump(mode="json")
            device.last_seen = now
            device.updated_at = now
            if name:
                device.name = name
            if ip_address:
                device.last_ip_address = ip_address
            if user_agent:
                device.user_agent = user_agent
            self.db.commit()
            self.db.refresh(device)
            return device
        except SQLAlchemyError:
            self.db.rollback()
            logger.warning("Failed to update last contact for device %s", device_id, exc_info=True)
            return None

    def list_devices(
        self,
        status: Optional[DeviceStatus] = None,
        device_type: Optional[DeviceType] = None,
        location_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[Device]:
        q = self.db.query(Device)
        if status is not None:
            q = q.filter(Device.status == status)
        if device_type is not None:
            q = q.filter(Device.device_type == device_type)
        if location_id:
            q = q.filter(Device.location_id == location_id)
        if search:
            term = f"%{search.strip()}%"
            q = q.filter(or_(Device.name.ilike(term), Device.fingerprint.ilike(term), Device.id.ilike(term)))
        return q.order_by(Device.created_at.desc()).all()
