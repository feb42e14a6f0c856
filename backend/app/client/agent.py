"""
Device agent: keeps one POS device authenticated against the device gate.

On start it tries the cached session (confirmed by the server) and falls back to a
full authentication. While authenticated, a heartbeat task reports activity; it is
cancelled on logout and on close so no timer outlives the session.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from app.client.api import DeviceGateClient, DeviceGateError, DeviceGateUnavailable
from app.client.config import AgentSettings
from app.client.detector import detect_capabilities, detect_device_type, device_name
from app.client.environment import DeviceEnvironment, collect_environment
from app.client.fingerprint import generate
from app.client.session_cache import CachedSession, SessionCache
from app.core.enums import SessionStatus
from app.core.time import ensure_utc, utcnow
from app.schemas.device import ApprovalRequestCreate, ApprovalRequestResponse, DeviceAuthRequest, DeviceCapabilities
from app.schemas.session import InterfaceAccessResponse

logger = logging.getLogger(__name__)

USABLE_STATUSES = (SessionStatus.ACTIVE, SessionStatus.IDLE)
GENERIC_ERROR = "Authentication failed, please retry"


@dataclass
class DeviceAuthState:
    is_authenticated: bool = False
    is_authenticating: bool = False
    device_id: Optional[str] = None
    session_id: Optional[str] = None
    session_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    capabilities: Optional[DeviceCapabilities] = None
    error: Optional[str] = None
    requires_approval: bool = False
    allowed_interfaces: list[str] = field(default_factory=list)
    permissions: list[str] = field(default_factory=list)


class DeviceAuthAgent:
    def __init__(
        self,
        settings: AgentSettings,
        client: Optional[DeviceGateClient] = None,
        cache: Optional[SessionCache] = None,
        environment: Optional[DeviceEnvironment] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self.client = client or DeviceGateClient(settings.API_URL, timeout=settings.REQUEST_TIMEOUT_SECONDS)
        self.cache = cache or SessionCache(settings.CACHE_PATH, clock)
        self.clock = clock or utcnow
        self.environment = environment
        self.state = DeviceAuthState()
        self.heartbeat_interval = settings.HEARTBEAT_INTERVAL_SECONDS
        self._heartbeat_task: Optional[asyncio.Task] = None

    def _environment(self) -> DeviceEnvironment:
        if self.environment is None:
            self.environment = collect_environment(self.settings)
        return self.environment

    @property
    def fingerprint(self) -> str:
        return generate(self._environment())

    async def start(self) -> bool:
        """Resume the cached session if the server still honours it, else authenticate."""
        if await self.resume_cached_session():
            return True
        return await self.authenticate()

    async def resume_cached_session(self) -> bool:
        entry = self.cache.load()
        if entry is None:
            return False
        try:
            session = await self.client.get_session(entry.session_id)
            device = await self.client.get_device(entry.device_id)
        except (DeviceGateUnavailable, DeviceGateError):
            logger.warning("Could not confirm cached session %s; re-authenticating", entry.session_id)
            self.cache.clear()
            return False
        if (
            device is None
            or session is None
            or session.status not in USABLE_STATUSES
            or session.device_id != entry.device_id
        ):
            self.cache.clear()
            return False
        self.state = DeviceAuthState(
            is_authenticated=True,
            device_id=entry.device_id,
            session_id=entry.session_id,
            session_token=entry.session_token,
            expires_at=ensure_utc(session.expires_at),
            permissions=list(session.permissions),
            allowed_interfaces=list(device.allowed_interfaces),
            capabilities=device.capabilities,
        )
        logger.info("Resumed session %s for device %s", entry.session_id, entry.device_id)
        self._start_heartbeat()
        return True

    async def authenticate(self, interface: Optional[str] = None) -> bool:
        self.state.is_authenticating = True
        self.state.error = None
        env = self._environment()
        capabilities = await detect_capabilities(env, self.settings)
        device_type = detect_device_type(env)
        request = DeviceAuthRequest(
            device_fingerprint=generate(env),
            device_name=self.settings.DEVICE_NAME or device_name(device_type, capabilities),
            device_type=device_type,
            capabilities=capabilities,
            requested_location=self.settings.LOCATION_ID,
            requested_interface=interface or self.settings.INTERFACE,
            user_id=self.settings.USER_ID,
            user_agent=env.user_agent,
        )
        try:
            result = await self.client.authenticate(request)
        except DeviceGateUnavailable:
            logger.warning("Device gate unavailable during authentication", exc_info=True)
            self._fail(capabilities, GENERIC_ERROR)
            return False
        except DeviceGateError as e:
            self._fail(capabilities, e.detail)
            return False

        if not (result.success and result.session_id and result.session_token):
            self._fail(capabilities, result.error or GENERIC_ERROR, result.requires_approval)
            return False

        self.state = DeviceAuthState(
            is_authenticated=True,
            device_id=result.device_id,
            session_id=result.session_id,
            session_token=result.session_token,
            expires_at=ensure_utc(result.expires_at),
            capabilities=capabilities,
            allowed_interfaces=list(result.allowed_interfaces),
            permissions=list(result.permissions),
        )
        if result.heartbeat_interval_seconds:
            self.heartbeat_interval = result.heartbeat_interval_seconds
        self.cache.save(
            CachedSession(
                device_id=result.device_id,
                session_id=result.session_id,
                session_token=result.session_token,
                expires_at=ensure_utc(result.expires_at),
            )
        )
        logger.info("Device %s authenticated, session %s", result.device_id, result.session_id)
        self._start_heartbeat()
        return True

    def _fail(self, capabilities: DeviceCapabilities, error: str, requires_approval: bool = False) -> None:
        self.state = DeviceAuthState(
            capabilities=capabilities,
            error=error,
            requires_approval=requires_approval,
        )

    async def logout(self) -> None:
        await self._stop_heartbeat()
        session_id = self.state.session_id
        if session_id:
            try:
                await self.client.terminate(session_id)
            except (DeviceGateUnavailable, DeviceGateError):
                logger.warning("Could not end session %s on the server", session_id, exc_info=True)
        self.cache.clear()
        self.state = DeviceAuthState()

    async def request_approval(self) -> ApprovalRequestResponse:
        body = ApprovalRequestCreate(
            device_fingerprint=self.fingerprint,
            location_id=self.settings.LOCATION_ID,
            requested_interface=self.settings.INTERFACE,
            user_id=self.settings.USER_ID,
        )
        return await self.client.request_approval(body)

    def can_access_interface(self, interface: str) -> bool:
        """Local pre-check only; the server decides in check_interface_access."""
        interface = str(getattr(interface, "value", interface))
        return self.state.is_authenticated and interface in self.state.allowed_interfaces

    async def check_interface_access(self, interface: str, user_role: Optional[str] = None) -> InterfaceAccessResponse:
        if not self.state.session_token:
            return InterfaceAccessResponse(allowed=False, reason="Not authenticated")
        interface = str(getattr(interface, "value", interface))
        return await self.client.check_access(
            self.state.session_token,
            interface,
            user_role or self.settings.USER_ROLE,
        )

    def is_session_expired(self) -> bool:
        if self.state.expires_at is None:
            return False
        return self.clock() > self.state.expires_at

    async def close(self) -> None:
        await self._stop_heartbeat()
        await self.client.close()

    def _start_heartbeat(self) -> None:
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(), name="device-heartbeat")

    async def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            session_id = self.state.session_id
            if session_id is None:
                return
            if self.is_session_expired():
                self._session_lost("Session expired")
                return
            try:
                resp = await self.client.heartbeat(session_id)
            except (DeviceGateUnavailable, DeviceGateError):
                logger.warning("Heartbeat for session %s failed", session_id, exc_info=True)
                continue
            if resp.status not in USABLE_STATUSES:
                self._session_lost("Session ended")
                return

    def _session_lost(self, reason: str) -> None:
        logger.info("Session %s no longer usable: %s", self.state.session_id, reason)
        self.cache.clear()
        self.state = DeviceAuthState(capabilities=self.state.capabilities, error=reason)
