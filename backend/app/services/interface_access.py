"""
Use-time interface access check.

A session that was allowed when it opened is not trusted on its own: each access
re-reads the owning device and runs the authorization policy again, so suspension
or a location change takes effect on the next check.
"""

from typing import Optional

from app.core.enums import TERMINAL_SESSION_STATUSES
from app.models.device_session import DeviceSession
from app.schemas.device import DeviceCapabilities
from app.schemas.session import InterfaceAccessResponse
from app.services.authorization import AuthorizationEngine
from app.services.permissions import can_access_interface, get_interface_config, meets_device_requirements
from app.services.session_manager import SessionManager


def check_interface_access(
    sessions: SessionManager,
    engine: AuthorizationEngine,
    session: DeviceSession,
    interface: str,
    user_role: Optional[str] = None,
) -> InterfaceAccessResponse:
    interface = str(getattr(interface, "value", interface))
    if session.status in TERMINAL_SESSION_STATUSES:
        return InterfaceAccessResponse(allowed=False, reason="Session is no longer active")
    if sessions.is_expired(session):
        sessions.refresh_status(session)
        return InterfaceAccessResponse(allowed=False, reason="Session expired")

    config = get_interface_config(interface)
    if config is None:
        return InterfaceAccessResponse(allowed=False, reason="Unknown interface")

    device = session.device
    decision = engine.authorize(
        device,
        interface,
        session.location_id,
        user_id=session.user_id,
        ip_address=session.ip_address,
    )
    if not decision.allowed:
        return InterfaceAccessResponse(
            allowed=False,
            reason=decision.reason,
            requires_approval=decision.requires_approval,
        )

    granted = list(session.permissions or [])
    missing = sorted(config.required_permissions - set(granted))
    if missing:
        return InterfaceAccessResponse(
            allowed=False,
            reason=f"Session lacks permission: {', '.join(missing)}",
            permissions=granted,
        )
    if not can_access_interface(interface, user_role, granted, has_active_session=True):
        return InterfaceAccessResponse(
            allowed=False,
            reason="Role not permitted for this interface",
            permissions=granted,
        )
    capabilities = DeviceCapabilities(**(device.capabilities or {}))
    if not meets_device_requirements(capabilities, config.device_requirements):
        return InterfaceAccessResponse(
            allowed=False,
            reason="Device does not meet interface requirements",
            permissions=granted,
        )
    return InterfaceAccessResponse(allowed=True, permissions=granted)
