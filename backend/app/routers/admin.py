import logging
import uuid
from datetime import datetime
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.auth import get_current_admin
from app.core.deps import get_clock, get_db
from app.core.enums import DeviceStatus, DeviceType
from app.core.security import create_access_token, get_password_hash, verify_password
from app.models.admin_user import AdminUser
from app.models.device import Device
from app.schemas.admin import (
    AdminCreate,
    AdminDeviceCreate,
    AdminDeviceDetail,
    AdminLogin,
    AdminUserResponse,
    DeviceActionRequest,
    DeviceListResponse,
    DeviceSessionSummary,
    SweepResponse,
    TokenResponse,
)
from app.schemas.device import DeviceResponse
from app.schemas.session import TerminateResponse
from app.services.device_admin import DeviceAdminService
from app.services.device_registry import DeviceRegistry
from app.services.exceptions import DeviceNotFoundError, InvalidDeviceActionError
from app.services.session_manager import SessionManager

logger = logging.getLogger(__name__)

router = APIRouter()


def _device_detail(device: Device) -> AdminDeviceDetail:
    base = DeviceResponse.model_validate(device).model_dump()
    sessions = [
        DeviceSessionSummary(
            id=s.id,
            interface_type=s.interface_type,
            status=s.status.value,
            started_at=s.started_at,
            ended_at=s.terminated_at,
            end_reason=s.terminated_reason,
            is_active=not s.is_terminal,
        )
        for s in device.sessions
    ]
    return AdminDeviceDetail(
        **base,
        user_agent=device.user_agent,
        last_ip_address=device.last_ip_address,
        sessions=sessions,
    )


@router.post("/login", response_model=TokenResponse)
def admin_login(
    body: AdminLogin,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    admin = db.query(AdminUser).filter(AdminUser.username == body.username).first()
    if not admin or not verify_password(body.password, admin.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid username or password")
    if not admin.is_active:
        raise HTTPException(status_code=403, detail="Admin account is inactive")
    admin.last_login_at = clock()
    db.commit()
    token = create_access_token(subject=admin.id, extra_claims={"role": "admin"})
    return TokenResponse(access_token=token)


@router.post("/users", response_model=AdminUserResponse)
def create_admin_user(
    body: AdminCreate,
    db: Session = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
):
    """Create another device administrator."""
    existing = db.query(AdminUser).filter(AdminUser.username == body.username).first()
    if existing:
        raise HTTPException(status_code=400, detail="Username already exists")
    new_admin = AdminUser(
        id=str(uuid.uuid4()),
        username=body.username,
        hashed_password=get_password_hash(body.password),
    )
    db.add(new_admin)
    db.commit()
    db.refresh(new_admin)
    logger.info("Admin %s created admin user %s", admin.username, new_admin.username)
    return new_admin


@router.get("/users", response_model=list[AdminUserResponse])
def list_admin_users(
    db: Session = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
):
    return db.query(AdminUser).order_by(AdminUser.username).all()


@router.get("/devices", response_model=DeviceListResponse)
def list_devices(
    status: Optional[DeviceStatus] = None,
    device_type: Optional[DeviceType] = None,
    location_id: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
):
    """List devices, newest first. Filters combine."""
    devices = DeviceRegistry(db).list_devices(
        status=status,
        device_type=device_type,
        location_id=location_id,
        search=search,
    )
    return DeviceListResponse(devices=[_device_detail(d) for d in devices], total=len(devices))


@router.post("/devices", response_model=AdminDeviceDetail, status_code=201)
def create_device(
    body: AdminDeviceCreate,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
    admin: AdminUser = Depends(get_current_admin),
):
    try:
        device = DeviceAdminService(db, clock).create(body, admin)
    except InvalidDeviceActionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _device_detail(device)


@router.get("/devices/{device_id}", response_model=AdminDeviceDetail)
def get_device(
    device_id: str,
    db: Session = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
):
    device = DeviceRegistry(db).get(device_id)
    if not device:
        raise HTTPException(status_code=404, detail="Device not found")
    return _device_detail(device)


@router.put("/devices/{device_id}", response_model=AdminDeviceDetail)
def update_device(
    device_id: str,
    body: DeviceActionRequest,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
    admin: AdminUser = Depends(get_current_admin),
):
    """Approve, reject, suspend, block, reactivate or reconfigure a device."""
    try:
        device = DeviceAdminService(db, clock).apply_action(device_id, body, admin)
    except DeviceNotFoundError:
        raise HTTPException(status_code=404, detail="Device not found")
    except InvalidDeviceActionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _device_detail(device)


@router.delete("/devices/{device_id}", response_model=TerminateResponse)
def delete_device(
    device_id: str,
    hard: bool = False,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
    admin: AdminUser = Depends(get_current_admin),
):
    """Soft delete (INACTIVE) by default; hard=true removes the device and its sessions."""
    try:
        terminated = DeviceAdminService(db, clock).delete(device_id, admin, hard=hard)
    except DeviceNotFoundError:
        raise HTTPException(status_code=404, detail="Device not found")
    verb = "deleted" if hard else "deactivated"
    return TerminateResponse(message=f"Device {verb}, {terminated} session(s) terminated")


@router.post("/sessions/sweep", response_model=SweepResponse)
def sweep_sessions(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
    admin: AdminUser = Depends(get_current_admin),
):
    idle, expired = SessionManager(db, clock).sweep()
    return SweepResponse(idle=idle, expired=expired)
