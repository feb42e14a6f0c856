"""
Server-side device sessions.

State machine: ACTIVE <-> IDLE -> EXPIRED | TERMINATED. ACTIVE and IDLE sessions are
usable; the two terminal states are final. Stored status is a cache: expiry is always
re-checked against `expires_at` so a lagging sweep never extends a session.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.enums import ANONYMOUS_USER, TERMINAL_SESSION_STATUSES, DeviceStatus, SessionStatus
from app.core.security import SESSION_TOKEN_TYPE, create_session_token, decode_access_token, hash_session_token
from app.core.time import ensure_utc, utcnow
from app.models.device_session import DeviceSession

logger = logging.getLogger(__name__)

LIVE_STATUSES = (SessionStatus.ACTIVE, SessionStatus.IDLE)
# device statuses that end any session which slipped past the termination cascade
REVOKING_DEVICE_STATUSES = (DeviceStatus.BLOCKED, DeviceStatus.MAINTENANCE, DeviceStatus.INACTIVE)


class SessionManager:
    def __init__(
        self,
        db: Session,
        clock: Optional[Callable[[], datetime]] = None,
        duration: Optional[timedelta] = None,
        idle_after: Optional[timedelta] = None,
    ):
        self.db = db
        self.clock = clock or utcnow
        self.duration = duration or timedelta(hours=settings.SESSION_DURATION_HOURS)
        self.idle_after = idle_after or timedelta(minutes=settings.SESSION_IDLE_MINUTES)

    def create_session(
        self,
        device_id: str,
        user_id: Optional[str],
        location_id: str,
        interface_type: str,
        ip_address: Optional[str],
        permissions: Iterable[str],
        station_id: Optional[str] = None,
        user_agent: Optional[str] = None,
        max_minutes: Optional[int] = None,
    ) -> tuple[DeviceSession, str]:
        """Open an ACTIVE session. Returns the row and the bearer token (only its hash is stored)."""
        now = self.clock()
        lifetime = self.duration
        if max_minutes:
            lifetime = min(lifetime, timedelta(minutes=max_minutes))
        expires_at = now + lifetime
        session_id = str(uuid.uuid4())
        token = create_session_token(session_id, device_id, expires_at)
        row = DeviceSession(
            id=session_id,
            device_id=device_id,
            user_id=user_id,
            location_id=location_id,
            interface_type=str(getattr(interface_type, "value", interface_type)),
            station_id=station_id,
            session_token_hash=hash_session_token(token),
            ip_address=ip_address,
            user_agent=user_agent,
            status=SessionStatus.ACTIVE,
            permissions=list(permissions),
            started_at=now,
            last_activity=now,
            expires_at=expires_at,
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        logger.info("Session %s opened for device %s on %s", row.id, device_id, row.interface_type)
        return row, token

    def get(self, session_id: str) -> Optional[DeviceSession]:
        return self.db.query(DeviceSession).filter(DeviceSession.id == session_id).first()

    def is_expired(self, session: DeviceSession) -> bool:
        """Decided by the timestamp alone, whatever the stored status says."""
        return self.clock() > ensure_utc(session.expires_at)

    def is_usable(self, session: DeviceSession) -> bool:
        return session.status not in TERMINAL_SESSION_STATUSES and not self.is_expired(session)

    def _expire(self, session: DeviceSession, now: datetime) -> None:
        session.status = SessionStatus.EXPIRED
        session.terminated_at = now
        session.terminated_reason = "EXPIRED"
        session.updated_at = now

    def _revoke_for_device(self, session: DeviceSession, now: datetime) -> bool:
        """Terminate the session if its device was suspended, blocked or put in maintenance."""
        device = session.device
        if device is None or device.status not in REVOKING_DEVICE_STATUSES:
            return False
        session.status = SessionStatus.TERMINATED
        session.terminated_at = now
        session.terminated_reason = f"DEVICE_{DeviceStatus(device.status).value}"
        session.updated_at = now
        logger.info("Session %s terminated: device %s is %s", session.id, device.id, device.status.value)
        return True

    def refresh_status(self, session: DeviceSession) -> DeviceSession:
        """Bring the stored status in line with the clock and the device before handing the row out."""
        if session.status in TERMINAL_SESSION_STATUSES:
            return session
        now = self.clock()
        if self.is_expired(session):
            self._expire(session, now)
            self.db.commit()
            self.db.refresh(session)
        elif self._revoke_for_device(session, now):
            self.db.commit()
            self.db.refresh(session)
        elif session.status == SessionStatus.ACTIVE and now - ensure_utc(session.last_activity) > self.idle_after:
            session.status = SessionStatus.IDLE
            session.updated_at = now
            self.db.commit()
            self.db.refresh(session)
        return session

    def heartbeat(self, session_id: str) -> Optional[DeviceSession]:
        """Record activity. Never moves `expires_at`; unknown or terminal sessions are left alone.

        A session whose device is no longer usable is terminated instead.
        """
        session = self.get(session_id)
        if session is None or session.status in TERMINAL_SESSION_STATUSES:
            return session
        now = self.clock()
        if self.is_expired(session):
            self._expire(session, now)
        elif self._revoke_for_device(session, now):
            pass
        else:
            session.last_activity = now
            session.updated_at = now
            if session.status == SessionStatus.IDLE:
                session.status = SessionStatus.ACTIVE
        self.db.commit()
        self.db.refresh(session)
        return session

    def terminate(self, session_id: str, reason: str = "LOGOUT") -> Optional[DeviceSession]:
        session = self.get(session_id)
        if session is None or session.status in TERMINAL_SESSION_STATUSES:
            return session
        now = self.clock()
        session.status = SessionStatus.TERMINATED
        session.terminated_at = now
        session.terminated_reason = reason
        session.updated_at = now
        self.db.commit()
        self.db.refresh(session)
        logger.info("Session %s terminated (%s)", session_id, reason)
        return session

    def terminate_all_for_device(self, device_id: str, reason: str, commit: bool = True) -> int:
        """Terminate every live session of a device. Returns how many were closed."""
        now = self.clock()
        live = (
            self.db.query(DeviceSession)
            .filter(DeviceSession.device_id == device_id, DeviceSession.status.in_(LIVE_STATUSES))
            .all()
        )
        for session in live:
            session.status = SessionStatus.TERMINATED
            session.terminated_at = now
            session.terminated_reason = reason
            session.updated_at = now
        if commit:
            self.db.commit()
        if live:
            logger.info("Terminated %d session(s) of device %s (%s)", len(live), device_id, reason)
        return len(live)

    def list_sessions(
        self,
        device_id: Optional[str] = None,
        user_id: Optional[str] = None,
        location_id: Optional[str] = None,
        status: Optional[SessionStatus] = None,
    ) -> list[DeviceSession]:
        q = self.db.query(DeviceSession)
        if device_id:
            q = q.filter(DeviceSession.device_id == device_id)
        if user_id == ANONYMOUS_USER:
            q = q.filter(DeviceSession.user_id.is_(None))
        elif user_id:
            q = q.filter(DeviceSession.user_id == user_id)
        if location_id:
            q = q.filter(DeviceSession.location_id == location_id)
        if status is not None:
            q = q.filter(DeviceSession.status == status)
        return q.order_by(DeviceSession.started_at.desc()).all()

    def sweep(self) -> tuple[int, int]:
        """Mark stale ACTIVE sessions IDLE and overdue live sessions EXPIRED. Returns (idle, expired)."""
        now = self.clock()
        idle = expired = 0
        live = self.db.query(DeviceSession).filter(DeviceSession.status.in_(LIVE_STATUSES)).all()
        for session in live:
            if now > ensure_utc(session.expires_at):
                self._expire(session, now)
                expired += 1
            elif session.status == SessionStatus.ACTIVE and now - ensure_utc(session.last_activity) > self.idle_after:
                session.status = SessionStatus.IDLE
                session.updated_at = now
                idle += 1
        self.db.commit()
        if idle or expired:
            logger.info("Session sweep: %d idle, %d expired", idle, expired)
        return idle, expired

    def resolve_token(self, token: str) -> Optional[DeviceSession]:
        """Session for a bearer token, or None if the token is invalid or unknown.

        Expiry is judged from the stored row against the service clock, not the token claim.
        """
        payload = decode_access_token(token, verify_exp=False)
        if not payload or payload.get("typ") != SESSION_TOKEN_TYPE or "sub" not in payload:
            return None
        session = (
            self.db.query(DeviceSession)
            .filter(DeviceSession.session_token_hash == hash_session_token(token))
            .first()
        )
        if session is None or session.id != payload["sub"]:
            return None
        return session
