from datetime import datetime
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.core.auth import get_current_device_session
from app.core.deps import get_clock, get_db
from app.core.enums import SessionStatus
from app.models.device_session import DeviceSession
from app.routers.devices import client_ip
from app.schemas.session import (
    HeartbeatResponse,
    InterfaceAccessRequest,
    InterfaceAccessResponse,
    SessionCreate,
    SessionCreateResponse,
    SessionListResponse,
    SessionResponse,
    TerminateResponse,
)
from app.services.authorization import AuthorizationEngine
from app.services.device_registry import DeviceRegistry
from app.services.interface_access import check_interface_access
from app.services.session_manager import SessionManager

router = APIRouter()


@router.get("", response_model=SessionListResponse)
def list_sessions(
    device_id: Optional[str] = None,
    user_id: Optional[str] = None,
    location_id: Optional[str] = None,
    status: Optional[SessionStatus] = None,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    sessions = SessionManager(db, clock).list_sessions(
        device_id=device_id,
        user_id=user_id,
        location_id=location_id,
        status=status,
    )
    return SessionListResponse(
        sessions=[SessionResponse.model_validate(s) for s in sessions],
        total=len(sessions),
    )


@router.post("", response_model=SessionCreateResponse, status_code=201)
def create_session(
    body: SessionCreate,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Open a session for an already registered device. The device is authorized first."""
    device = DeviceRegistry(db, clock).get(body.device_id)
    if not device:
        raise HTTPException(status_code=404, detail="Device not found")
    ip_address = client_ip(request)
    interface = body.interface_type.value
    decision = AuthorizationEngine(clock).authorize(
        device,
        interface,
        body.location_id,
        user_id=body.user_id,
        ip_address=ip_address,
    )
    if not decision.allowed:
        raise HTTPException(status_code=403, detail=decision.reason)
    session, token = SessionManager(db, clock).create_session(
        device_id=device.id,
        user_id=body.user_id,
        location_id=body.location_id,
        interface_type=interface,
        ip_address=ip_address,
        permissions=decision.permissions,
        station_id=body.station_id or device.station_id,
        user_agent=request.headers.get("user-agent"),
        max_minutes=device.max_session_minutes,
    )
    return SessionCreateResponse(session=SessionResponse.model_validate(session), session_token=token)


@router.post("/access", response_model=InterfaceAccessResponse)
def interface_access(
    body: InterfaceAccessRequest,
    session: DeviceSession = Depends(get_current_device_session),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Re-validate the bearer's session and device before an interface is opened."""
    return check_interface_access(
        SessionManager(db, clock),
        AuthorizationEngine(clock),
        session,
        body.interface_type.value,
        user_role=body.user_role,
    )


@router.get("/{session_id}", response_model=SessionResponse)
def get_session(
    session_id: str,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    manager = SessionManager(db, clock)
    session = manager.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return manager.refresh_status(session)


@router.post("/{session_id}/heartbeat", response_model=HeartbeatResponse)
def heartbeat(
    session_id: str,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Idempotent; an unknown session answers ok with no status."""
    session = SessionManager(db, clock).heartbeat(session_id)
    return HeartbeatResponse(status=session.status if session else None)


@router.delete("/{session_id}", response_model=TerminateResponse)
def terminate_session(
    session_id: str,
    reason: str = "LOGOUT",
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    session = SessionManager(db, clock).terminate(session_id, reason)
    if session is None:
        return TerminateResponse(message="Session not found")
    return TerminateResponse(message=f"Session {session.status.value.lower()}")
