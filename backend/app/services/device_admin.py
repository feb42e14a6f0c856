"""Administrative device lifecycle: approval, suspension, reconfiguration and deletion."""

import logging
import uuid
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.core.enums import DeviceStatus, DeviceType
from app.core.time import utcnow
from app.models.admin_user import AdminUser
from app.models.device import Device
from app.schemas.admin import AdminDeviceCreate, DeviceAction, DeviceActionRequest
from app.services import audit
from app.services.device_registry import DeviceRegistry
from app.services.exceptions import DeviceNotFoundError, InvalidDeviceActionError
from app.services.permissions import default_interfaces_for
from app.services.session_manager import SessionManager

logger = logging.getLogger(__name__)

# status actions that end every live session of the device
_CASCADE = {
    DeviceAction.suspend: (DeviceStatus.INACTIVE, "DEVICE_SUSPENDED"),
    DeviceAction.block: (DeviceStatus.BLOCKED, "DEVICE_BLOCKED"),
    DeviceAction.reject: (DeviceStatus.BLOCKED, "DEVICE_REJECTED"),
    DeviceAction.maintenance: (DeviceStatus.MAINTENANCE, "DEVICE_MAINTENANCE"),
}


class DeviceAdminService:
    def __init__(self, db: Session, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock or utcnow
        self.registry = DeviceRegistry(db, self.clock)
        self.sessions = SessionManager(db, self.clock)

    def _get(self, device_id: str) -> Device:
        device = self.registry.get(device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)
        return device

    def create(self, body: AdminDeviceCreate, admin: AdminUser) -> Device:
        """Pre-register a device. It still starts PENDING_APPROVAL."""
        if self.registry.find_by_fingerprint(body.fingerprint) is not None:
            raise InvalidDeviceActionError("Device with this fingerprint already exists")
        now = self.clock()
        restrictions = body.restrictions
        device_type = DeviceType(body.device_type)
        device = Device(
            id=str(uuid.uuid4()),
            name=body.name,
            device_type=device_type,
            fingerprint=body.fingerprint,
            capabilities=body.capabilities.model_dump(mode="json") if body.capabilities else {},
            status=DeviceStatus.PENDING_APPROVAL,
            location_id=body.location_id,
            station_id=body.station_id,
            assigned_user_id=body.assigned_user_id,
            allowed_interfaces=(
                [i.value for i in body.allowed_interfaces]
                if body.allowed_interfaces
                else default_interfaces_for(device_type)
            ),
            requires_approval=True,
            location_restricted=True,
            registered_by=admin.username,
            created_at=now,
            updated_at=now,
        )
        if restrictions is not None:
            self._apply_restrictions(device, restrictions.model_dump(mode="json"))
            # pre-registered devices always need an approval step
            device.requires_approval = True
        self.db.add(device)
        audit.record(
            self.db,
            action="device.created",
            resource_type="device",
            resource_id=device.id,
            actor_type="admin",
            actor_id=admin.id,
            details={"device_type": device_type.value, "location_id": body.location_id},
        )
        self.db.commit()
        self.db.refresh(device)
        logger.info("Admin %s pre-registered device %s", admin.username, device.id)
        return device

    @staticmethod
    def _apply_restrictions(device: Device, restrictions: dict) -> None:
        device.requires_approval = restrictions["requires_approval"]
        device.max_session_minutes = restrictions["max_session_duration"]
        device.allowed_time_windows = restrictions["allowed_time_windows"]
        device.ip_whitelist = restrictions["ip_whitelist"]
        device.location_restricted = restrictions["location_restricted"]

    def apply_action(self, device_id: str, body: DeviceActionRequest, admin: AdminUser) -> Device:
        device = self._get(device_id)
        now = self.clock()
        action = body.action
        status = DeviceStatus(device.status)
        terminated = 0

        if action == DeviceAction.approve:
            if status != DeviceStatus.PENDING_APPROVAL:
                raise InvalidDeviceActionError("Only devices pending approval can be approved")
            device.status = DeviceStatus.ACTIVE
            device.approved_by = admin.username
            device.approved_at = now
        elif action == DeviceAction.reject and status != DeviceStatus.PENDING_APPROVAL:
            raise InvalidDeviceActionError("Only devices pending approval can be rejected")
        elif action in _CASCADE:
            new_status, reason = _CASCADE[action]
            device.status = new_status
            terminated = self.sessions.terminate_all_for_device(device.id, reason, commit=False)
        elif action == DeviceAction.reactivate:
            if status == DeviceStatus.PENDING_APPROVAL:
                raise InvalidDeviceActionError("Device must be approved, not reactivated")
            device.status = DeviceStatus.ACTIVE
        elif action == DeviceAction.update_location:
            if not body.location_id:
                raise InvalidDeviceActionError("location_id is required")
            if body.location_id != device.location_id:
                terminated = self.sessions.terminate_all_for_device(device.id, "LOCATION_CHANGED", commit=False)
            device.location_id = body.location_id
        elif action == DeviceAction.update_capabilities:
            if body.capabilities is None:
                raise InvalidDeviceActionError("capabilities are required")
            device.capabilities = body.capabilities.model_dump(mode="json")
        elif action == DeviceAction.update_restrictions:
            if body.restrictions is None:
                raise InvalidDeviceActionError("restrictions are required")
            self._apply_restrictions(device, body.restrictions.model_dump(mode="json"))
        elif action == DeviceAction.update_interfaces:
            if not body.allowed_interfaces:
                raise InvalidDeviceActionError("allowed_interfaces must not be empty")
            device.allowed_interfaces = [i.value for i in body.allowed_interfaces]
        elif action == DeviceAction.assign_user:
            device.assigned_user_id = body.assigned_user_id or None

        device.updated_at = now
        audit.record(
            self.db,
            action=f"device.{action.value}",
            resource_type="device",
            resource_id=device.id,
            actor_type="admin",
            actor_id=admin.id,
            details={
                "reason": body.reason,
                "previous_status": status.value,
                "status": DeviceStatus(device.status).value,
                "sessions_terminated": terminated,
            },
        )
        self.db.commit()
        self.db.refresh(device)
        logger.info("Admin %s applied %s to device %s", admin.username, action.value, device.id)
        return device

    def delete(self, device_id: str, admin: AdminUser, hard: bool = False) -> int:
        """Soft delete marks the device INACTIVE. Hard delete removes it with its sessions.

        Both terminate live sessions first. Returns the number terminated.
        """
        device = self._get(device_id)
        terminated = self.sessions.terminate_all_for_device(device.id, "DEVICE_DELETED", commit=False)
        audit.record(
            self.db,
            action="device.deleted" if hard else "device.deactivated",
            resource_type="device",
            resource_id=device.id,
            actor_type="admin",
            actor_id=admin.id,
            details={"fingerprint": device.fingerprint[:8], "sessions_terminated": terminated},
        )
        if hard:
            for session in list(device.sessions):
                self.db.delete(session)
            self.db.delete(device)
        else:
            device.status = DeviceStatus.INACTIVE
            device.updated_at = self.clock()
        self.db.commit()
        logger.info("Admin %s %s device %s", admin.username, "deleted" if hard else "deactivated", device_id)
        return terminated
