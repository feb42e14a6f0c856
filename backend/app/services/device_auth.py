"""Combined device authentication: lookup or register, authorize, open a session."""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.time import ensure_utc, utcnow
from app.models.device import Device
from app.schemas.device import DeviceAuthRequest, DeviceAuthResponse, DeviceRestrictions
from app.services.authorization import AuthorizationDecision, AuthorizationEngine
from app.services.device_registry import DeviceRegistry
from app.services.exceptions import RegistryUnavailableError
from app.services.session_manager import SessionManager

logger = logging.getLogger(__name__)

APPROVAL_MESSAGE = "This device must be approved by an administrator before it can be used"


class DeviceAuthService:
    def __init__(self, db: Session, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock or utcnow
        self.registry = DeviceRegistry(db, self.clock)
        self.engine = AuthorizationEngine(self.clock)
        self.sessions = SessionManager(db, self.clock)

    def authenticate(self, request: DeviceAuthRequest, ip_address: Optional[str] = None) -> DeviceAuthResponse:
        """Raises RegistryUnavailableError when the store fails; no access is granted in that case."""
        try:
            return self._authenticate(request, ip_address)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Device authentication failed for fingerprint %s", request.device_fingerprint[:8])
            raise RegistryUnavailableError("Device authentication failed")

    def _authenticate(self, request: DeviceAuthRequest, ip_address: Optional[str]) -> DeviceAuthResponse:
        device = self.registry.find_by_fingerprint(request.device_fingerprint)
        if device is None:
            device = self.registry.register(request, ip_address)
        else:
            self.registry.touch(
                device.id,
                request.capabilities,
                name=request.device_name,
                ip_address=ip_address,
                user_agent=request.user_agent,
            )

        interface = request.requested_interface.value
        decision = self.engine.authorize(
            device,
            interface,
            request.requested_location,
            user_id=request.user_id,
            ip_address=ip_address,
        )
        if not decision.allowed:
            return self._refusal(device, decision)

        session, token = self.sessions.create_session(
            device_id=device.id,
            user_id=request.user_id,
            location_id=request.requested_location,
            interface_type=interface,
            ip_address=ip_address,
            permissions=decision.permissions,
            station_id=device.station_id,
            user_agent=request.user_agent,
            max_minutes=device.max_session_minutes,
        )
        return DeviceAuthResponse(
            success=True,
            device_id=device.id,
            session_id=session.id,
            session_token=token,
            allowed_interfaces=list(device.allowed_interfaces or []),
            restrictions=DeviceRestrictions(**device.restrictions),
            permissions=list(session.permissions or []),
            expires_at=ensure_utc(session.expires_at),
            heartbeat_interval_seconds=settings.HEARTBEAT_INTERVAL_SECONDS,
        )

    @staticmethod
    def _refusal(device: Device, decision: AuthorizationDecision) -> DeviceAuthResponse:
        return DeviceAuthResponse(
            success=False,
            device_id=device.id,
            allowed_interfaces=list(device.allowed_interfaces or []),
            error=decision.reason,
            requires_approval=decision.requires_approval,
            approval_message=APPROVAL_MESSAGE if decision.requires_approval else None,
        )
