"""HTTP client for the device gate API, used by the device agent."""

import logging
from typing import Optional

import httpx

from app.schemas.device import (
    ApprovalRequestCreate,
    ApprovalRequestResponse,
    DeviceAuthRequest,
    DeviceAuthResponse,
    DeviceResponse,
)
from app.schemas.session import HeartbeatResponse, InterfaceAccessResponse, SessionResponse

logger = logging.getLogger(__name__)


class DeviceGateError(Exception):
    """Request rejected by the server (4xx other than the handled cases)."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class DeviceGateUnavailable(Exception):
    """Server or network failure; the caller may retry later."""


class DeviceGateClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise DeviceGateUnavailable(f"{method} {url} failed: {e}") from e
        if resp.status_code >= 500:
            logger.warning("Device gate returned %s for %s %s", resp.status_code, method, url)
            raise DeviceGateUnavailable(f"{method} {url} returned {resp.status_code}")
        return resp

    @staticmethod
    def _raise_for_status(resp: httpx.Response) -> None:
        if resp.is_success:
            return
        try:
            detail = resp.json().get("detail", resp.text)
        except ValueError:
            detail = resp.text
        raise DeviceGateError(resp.status_code, str(detail))

    async def authenticate(self, request: DeviceAuthRequest) -> DeviceAuthResponse:
        resp = await self._request("POST", "/device/auth", json=request.model_dump(mode="json"))
        self._raise_for_status(resp)
        return DeviceAuthResponse.model_validate(resp.json())

    async def get_session(self, session_id: str) -> Optional[SessionResponse]:
        resp = await self._request("GET", f"/device/sessions/{session_id}")
        if resp.status_code == 404:
            return None
        self._raise_for_status(resp)
        return SessionResponse.model_validate(resp.json())

    async def get_device(self, device_id: str) -> Optional[DeviceResponse]:
        resp = await self._request("GET", f"/device/{device_id}")
        if resp.status_code == 404:
            return None
        self._raise_for_status(resp)
        return DeviceResponse.model_validate(resp.json())

    async def heartbeat(self, session_id: str) -> HeartbeatResponse:
        resp = await self._request("POST", f"/device/sessions/{session_id}/heartbeat")
        self._raise_for_status(resp)
        return HeartbeatResponse.model_validate(resp.json())

    async def terminate(self, session_id: str, reason: str = "LOGOUT") -> None:
        resp = await self._request("DELETE", f"/device/sessions/{session_id}", params={"reason": reason})
        self._raise_for_status(resp)

    async def request_approval(self, body: ApprovalRequestCreate) -> ApprovalRequestResponse:
        resp = await self._request("POST", "/device/approval-requests", json=body.model_dump(mode="json"))
        self._raise_for_status(resp)
        return ApprovalRequestResponse.model_validate(resp.json())

    async def check_access(
        self,
        session_token: str,
        interface_type: str,
        user_role: Optional[str] = None,
    ) -> InterfaceAccessResponse:
        resp = await self._request(
            "POST",
            "/device/sessions/access",
            json={"interface_type": interface_type, "user_role": user_role},
            headers={"Authorization": f"Bearer {session_token}"},
        )
        self._raise_for_status(resp)
        return InterfaceAccessResponse.model_validate(resp.json())
