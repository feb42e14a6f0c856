from datetime import datetime, timezone

import pytest

from app.core.enums import DeviceStatus, DeviceType, InterfaceType
from app.models import Device
from app.services.authorization import (
    AuthorizationEngine,
    Outcome,
    ip_permitted,
    requires_approval,
    within_time_windows,
)
from app.services.permissions import default_interfaces_for

from conftest import FrozenClock, T0


def device(**overrides) -> Device:
    device_type = overrides.pop("device_type", DeviceType.MANAGER_STATION)
    fields = dict(
        id="dev-1",
        name="Test",
        device_type=device_type,
        fingerprint="fp",
        capabilities={},
        status=DeviceStatus.ACTIVE,
        location_id="loc-1",
        allowed_interfaces=default_interfaces_for(device_type),
        requires_approval=False,
        max_session_minutes=None,
        allowed_time_windows=[],
        ip_whitelist=[],
        location_restricted=True,
        assigned_user_id=None,
    )
    fields.update(overrides)
    return Device(**fields)


@pytest.fixture
def engine():
    return AuthorizationEngine(FrozenClock(), tz="UTC")


def test_active_device_allowed(engine):
    decision = engine.authorize(device(), "ORDER_ENTRY", "loc-1")
    assert decision.outcome == Outcome.ALLOW
    assert "pos:order_entry" in decision.permissions
    assert "pos:basic_access" in decision.permissions


def test_pending_device_needs_approval(engine):
    decision = engine.authorize(device(status=DeviceStatus.PENDING_APPROVAL), "ORDER_ENTRY", "loc-1")
    assert decision.outcome == Outcome.NEEDS_APPROVAL
    assert decision.reason == "Device pending approval"
    assert decision.requires_approval


@pytest.mark.parametrize(
    "status, reason",
    [
        (DeviceStatus.BLOCKED, "Device is blocked"),
        (DeviceStatus.MAINTENANCE, "Device is in maintenance mode"),
        (DeviceStatus.INACTIVE, "Device is inactive"),
    ],
)
def test_unusable_statuses_are_denied(engine, status, reason):
    decision = engine.authorize(device(status=status), "ORDER_ENTRY", "loc-1")
    assert decision.outcome == Outcome.DENY
    assert decision.reason == reason


@pytest.mark.parametrize("status", [DeviceStatus.BLOCKED, DeviceStatus.MAINTENANCE])
@pytest.mark.parametrize("interface", [i.value for i in InterfaceType])
@pytest.mark.parametrize("location", ["loc-1", "loc-2"])
@pytest.mark.parametrize("user_id", [None, "u-1"])
def test_blocked_or_maintenance_never_allowed(engine, status, interface, location, user_id):
    d = device(
        status=status,
        allowed_interfaces=[i.value for i in InterfaceType],
        location_restricted=False,
    )
    assert engine.authorize(d, interface, location, user_id=user_id).outcome != Outcome.ALLOW


@pytest.mark.parametrize("interface", [i.value for i in InterfaceType])
@pytest.mark.parametrize("user_id", [None, "u-1"])
def test_restricted_device_denied_at_other_location(engine, interface, user_id):
    d = device(allowed_interfaces=[i.value for i in InterfaceType])
    decision = engine.authorize(d, interface, "loc-2", user_id=user_id)
    assert decision.outcome == Outcome.DENY
    assert decision.reason == "Device not authorized for this location"


def test_restricted_device_without_location_is_denied(engine):
    decision = engine.authorize(device(location_id=None), "ORDER_ENTRY", "loc-1")
    assert decision.reason == "Device not authorized for this location"


def test_unrestricted_device_allowed_elsewhere(engine):
    # device at loc-1 requested at loc-2
    decision = engine.authorize(device(location_restricted=False), "ORDER_ENTRY", "loc-2")
    assert decision.outcome == Outcome.ALLOW


def test_interface_not_in_allowed_list(engine):
    d = device(device_type=DeviceType.PAYMENT_TERMINAL, allowed_interfaces=["PAYMENT_TERMINAL"])
    decision = engine.authorize(d, "MANAGER_TERMINAL", "loc-1")
    assert decision.outcome == Outcome.DENY
    assert decision.reason == "Interface not permitted on this device"


def test_location_checked_before_interface(engine):
    d = device(allowed_interfaces=["PAYMENT_TERMINAL"])
    decision = engine.authorize(d, "MANAGER_TERMINAL", "loc-2")
    assert decision.reason == "Device not authorized for this location"


def test_time_window_allows_inside():
    windows = [{"start": "09:00", "end": "17:00", "days": ["MONDAY"]}]
    engine = AuthorizationEngine(FrozenClock(T0), tz="UTC")  # Monday 12:00
    assert engine.authorize(device(allowed_time_windows=windows), "ORDER_ENTRY", "loc-1").allowed


def test_time_window_denies_outside():
    windows = [{"start": "09:00", "end": "11:00", "days": ["MONDAY"]}]
    engine = AuthorizationEngine(FrozenClock(T0), tz="UTC")
    decision = engine.authorize(device(allowed_time_windows=windows), "ORDER_ENTRY", "loc-1")
    assert decision.reason == "Access not permitted at this time"


def test_time_window_uses_business_timezone():
    # 12:00 UTC is 07:00 in New York (EST, before DST starts)
    windows = [{"start": "06:00", "end": "08:00", "days": ["MONDAY"]}]
    engine = AuthorizationEngine(FrozenClock(T0), tz="America/New_York")
    assert engine.authorize(device(allowed_time_windows=windows), "ORDER_ENTRY", "loc-1").allowed


def test_time_window_bounds_are_inclusive():
    windows = [{"start": "09:00", "end": "12:00", "days": ["MONDAY"]}]
    moment = datetime(2026, 3, 2, 12, 0, 59, tzinfo=timezone.utc)
    assert within_time_windows(windows, moment)


def test_time_window_wrong_day():
    windows = [{"start": "00:00", "end": "23:59", "days": ["TUESDAY"]}]
    assert not within_time_windows(windows, T0)


def test_overnight_window_spans_midnight():
    windows = [{"start": "22:00", "end": "02:00", "days": ["MONDAY"]}]
    assert within_time_windows(windows, datetime(2026, 3, 2, 23, 0, tzinfo=timezone.utc))
    assert within_time_windows(windows, datetime(2026, 3, 3, 1, 30, tzinfo=timezone.utc))
    assert not within_time_windows(windows, datetime(2026, 3, 3, 3, 0, tzinfo=timezone.utc))


def test_ip_whitelist(engine):
    d = device(ip_whitelist=["10.0.0.0/24", "192.168.1.5"])
    assert engine.authorize(d, "ORDER_ENTRY", "loc-1", ip_address="10.0.0.42").allowed
    assert engine.authorize(d, "ORDER_ENTRY", "loc-1", ip_address="192.168.1.5").allowed
    denied = engine.authorize(d, "ORDER_ENTRY", "loc-1", ip_address="172.16.0.1")
    assert denied.reason == "IP address not permitted"
    assert not engine.authorize(d, "ORDER_ENTRY", "loc-1", ip_address=None).allowed


def test_ip_permitted_ignores_malformed_entries():
    assert ip_permitted(["not-an-ip", "10.0.0.1"], "10.0.0.1")
    assert not ip_permitted(["10.0.0.1"], "testclient")


def test_assigned_user_must_match(engine):
    d = device(assigned_user_id="u-1")
    assert engine.authorize(d, "ORDER_ENTRY", "loc-1", user_id="u-1").allowed
    for other in ("u-2", None):
        decision = engine.authorize(d, "ORDER_ENTRY", "loc-1", user_id=other)
        assert decision.reason == "Device assigned to different user"


def test_unassigned_device_accepts_any_user(engine):
    assert engine.authorize(device(), "ORDER_ENTRY", "loc-1", user_id=None).allowed
    assert engine.authorize(device(), "ORDER_ENTRY", "loc-1", user_id="anyone").allowed


@pytest.mark.parametrize(
    "interface, device_type, expected",
    [
        ("MANAGER_TERMINAL", "TABLET_POS", True),
        ("PAYMENT_TERMINAL", "PAYMENT_TERMINAL", True),
        ("ORDER_ENTRY", "MANAGER_STATION", True),
        ("KITCHEN_DISPLAY", "KITCHEN_DISPLAY", False),
        ("CUSTOMER_KIOSK", "CUSTOMER_KIOSK", False),
    ],
)
def test_requires_approval_policy(interface, device_type, expected):
    assert requires_approval(interface, device_type) is expected
