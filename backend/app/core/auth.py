from datetime import datetime
from typing import Callable, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.deps import get_clock, get_db
from app.core.security import decode_access_token
from app.models.admin_user import AdminUser
from app.models.device_session import DeviceSession
from app.services.session_manager import SessionManager

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> AdminUser:
    if not credentials or not credentials.credentials:
        raise _unauthorized("Not authenticated")
    payload = decode_access_token(credentials.credentials)
    if not payload or payload.get("role") != "admin" or "sub" not in payload:
        raise _unauthorized("Invalid or expired token")
    admin = db.query(AdminUser).filter(AdminUser.id == payload["sub"]).first()
    if not admin:
        raise _unauthorized("Admin not found")
    if not admin.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin account is inactive",
        )
    return admin


def get_current_device_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> DeviceSession:
    """Session behind a device bearer token. Terminal or expired sessions are still returned; callers decide."""
    if not credentials or not credentials.credentials:
        raise _unauthorized("Not authenticated")
    session = SessionManager(db, clock).resolve_token(credentials.credentials)
    if session is None:
        raise _unauthorized("Invalid session token")
    return session
