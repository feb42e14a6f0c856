import logging
from datetime import datetime
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.core.deps import get_clock, get_db
from app.core.enums import DeviceStatus
from app.schemas.device import (
    ApprovalRequestCreate,
    ApprovalRequestResponse,
    DeviceAuthRequest,
    DeviceAuthResponse,
    DeviceResponse,
)
from app.services import audit
from app.services.device_auth import DeviceAuthService
from app.services.device_registry import DeviceRegistry
from app.services.exceptions import RegistryUnavailableError

logger = logging.getLogger(__name__)

router = APIRouter()


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


@router.post("/auth", response_model=DeviceAuthResponse)
def authenticate_device(
    body: DeviceAuthRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """
    Authenticate a device for one interface at one location.
    Unknown fingerprints are registered on the spot. Denials and pending approval
    come back as success=false with the reason; store failures are a 503.
    """
    try:
        return DeviceAuthService(db, clock).authenticate(body, client_ip(request) or body.ip_address)
    except RegistryUnavailableError:
        raise HTTPException(status_code=503, detail="Device authentication failed")


@router.get("/fingerprint/{fingerprint}", response_model=DeviceResponse)
def get_device_by_fingerprint(fingerprint: str, db: Session = Depends(get_db)):
    device = DeviceRegistry(db).find_by_fingerprint(fingerprint)
    if not device:
        raise HTTPException(status_code=404, detail="Device not found")
    return device


@router.post("/approval-requests", response_model=ApprovalRequestResponse)
def request_approval(
    body: ApprovalRequestCreate,
    request: Request,
    db: Session = Depends(get_db),
):
    """Device asks administrators to approve it. Recorded in the audit log."""
    device = DeviceRegistry(db).find_by_fingerprint(body.device_fingerprint)
    if not device:
        raise HTTPException(status_code=404, detail="Device not found")
    if device.status != DeviceStatus.PENDING_APPROVAL:
        return ApprovalRequestResponse(
            ok=False,
            device_id=device.id,
            message="Device is not awaiting approval",
        )
    audit.record(
        db,
        action="device.approval_requested",
        resource_type="device",
        resource_id=device.id,
        actor_type="device",
        actor_id=body.user_id,
        details={
            "location_id": body.location_id,
            "requested_interface": body.requested_interface.value if body.requested_interface else None,
        },
        ip_address=client_ip(request),
    )
    db.commit()
    logger.info("Approval requested for device %s at %s", device.id, body.location_id)
    return ApprovalRequestResponse(
        ok=True,
        device_id=device.id,
        message="Approval request sent to administrators",
    )


@router.get("/{device_id}", response_model=DeviceResponse)
def get_device(device_id: str, db: Session = Depends(get_db)):
    device = DeviceRegistry(db).get(device_id)
    if not device:
        raise HTTPException(status_code=404, detail="Device not found")
    return device
