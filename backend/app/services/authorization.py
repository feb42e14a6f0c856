"""
Device authorization policy.

`AuthorizationEngine.authorize` decides whether a registered device may open a
requested interface at a requested location. Checks run in a fixed order and the
first failing check wins; denials are returned as values, never raised.
"""

import enum
import ipaddress
import logging
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Callable, Iterable, Optional
from zoneinfo import ZoneInfo

from app.core.config import settings
from app.core.enums import DeviceStatus, DeviceType, InterfaceType
from app.core.time import utcnow
from app.models.device import Device
from app.schemas.device import WEEKDAYS
from app.services.permissions import permissions_for_interface

logger = logging.getLogger(__name__)

SENSITIVE_INTERFACES = frozenset({InterfaceType.MANAGER_TERMINAL, InterfaceType.PAYMENT_TERMINAL})


class Outcome(str, enum.Enum):
    ALLOW = "ALLOW"
    DENY = "DENY"
    NEEDS_APPROVAL = "NEEDS_APPROVAL"


@dataclass(frozen=True)
class AuthorizationDecision:
    outcome: Outcome
    reason: Optional[str] = None
    permissions: tuple = field(default_factory=tuple)

    @classmethod
    def allow(cls, permissions: Iterable[str]) -> "AuthorizationDecision":
        return cls(Outcome.ALLOW, None, tuple(permissions))

    @classmethod
    def deny(cls, reason: str) -> "AuthorizationDecision":
        return cls(Outcome.DENY, reason)

    @classmethod
    def needs_approval(cls, reason: str) -> "AuthorizationDecision":
        return cls(Outcome.NEEDS_APPROVAL, reason)

    @property
    def allowed(self) -> bool:
        return self.outcome == Outcome.ALLOW

    @property
    def requires_approval(self) -> bool:
        return self.outcome == Outcome.NEEDS_APPROVAL


def requires_approval(requested_interface: str, device_type: str) -> bool:
    """Gate applied once, at first registration."""
    return (
        requested_interface in {i.value for i in SENSITIVE_INTERFACES}
        or device_type == DeviceType.MANAGER_STATION.value
    )


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def within_time_windows(windows: Iterable[dict], moment: datetime) -> bool:
    """True if `moment` (already in business time) falls inside any window.

    Bounds are inclusive to the minute. A window whose end is before its start
    runs past midnight and belongs to the weekday it starts on.
    """
    current = moment.time().replace(second=0, microsecond=0)
    today = WEEKDAYS[moment.weekday()]
    yesterday = WEEKDAYS[(moment.weekday() - 1) % 7]
    for window in windows:
        days = {d.upper() for d in window.get("days") or []}
        start = _parse_hhmm(window["start"])
        end = _parse_hhmm(window["end"])
        if start <= end:
            if today in days and start <= current <= end:
                return True
        else:
            if today in days and current >= start:
                return True
            if yesterday in days and current <= end:
                return True
    return False


def ip_permitted(whitelist: Iterable[str], ip_address: Optional[str]) -> bool:
    """Entries may be single addresses or CIDR networks."""
    if not ip_address:
        return False
    try:
        address = ipaddress.ip_address(ip_address)
    except ValueError:
        return False
    for entry in whitelist:
        try:
            if address in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            logger.warning("Ignoring malformed IP allow-list entry %r", entry)
    return False


def _status(device: Device) -> DeviceStatus:
    return DeviceStatus(device.status)


class AuthorizationEngine:
    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        tz: Optional[str] = None,
    ):
        self.clock = clock or utcnow
        self.tz = ZoneInfo(tz or settings.BUSINESS_TIMEZONE)

    def authorize(
        self,
        device: Device,
        requested_interface: str,
        requested_location: str,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> AuthorizationDecision:
        decision = self._decide(device, requested_interface, requested_location, user_id, ip_address)
        if not decision.allowed:
            logger.info(
                "Device %s %s for %s at %s: %s",
                device.id,
                decision.outcome.value,
                requested_interface,
                requested_location,
                decision.reason,
            )
        return decision

    def _decide(
        self,
        device: Device,
        requested_interface: str,
        requested_location: str,
        user_id: Optional[str],
        ip_address: Optional[str],
    ) -> AuthorizationDecision:
        status = _status(device)
        if status == DeviceStatus.PENDING_APPROVAL:
            return AuthorizationDecision.needs_approval("Device pending approval")
        if status == DeviceStatus.BLOCKED:
            return AuthorizationDecision.deny("Device is blocked")
        if status == DeviceStatus.MAINTENANCE:
            return AuthorizationDecision.deny("Device is in maintenance mode")
        if status == DeviceStatus.INACTIVE:
            return AuthorizationDecision.deny("Device is inactive")

        # a restricted device without a home location matches nothing
        if device.location_restricted and device.location_id != requested_location:
            return AuthorizationDecision.deny("Device not authorized for this location")

        if requested_interface not in (device.allowed_interfaces or []):
            return AuthorizationDecision.deny("Interface not permitted on this device")

        windows = device.allowed_time_windows or []
        if windows:
            local_now = self.clock().astimezone(self.tz)
            if not within_time_windows(windows, local_now):
                return AuthorizationDecision.deny("Access not permitted at this time")

        whitelist = device.ip_whitelist or []
        if whitelist and not ip_permitted(whitelist, ip_address):
            return AuthorizationDecision.deny("IP address not permitted")

        if device.assigned_user_id and device.assigned_user_id != user_id:
            return AuthorizationDecision.deny("Device assigned to different user")

        return AuthorizationDecision.allow(permissions_for_interface(requested_interface))
