import asyncio

import pytest

from app.client import detector
from app.client.config import AgentSettings
from app.core.enums import ConnectionType, DeviceType, InterfaceType
from app.schemas.device import DeviceCapabilities

from conftest import make_env


@pytest.mark.parametrize(
    "overrides, expected",
    [
        ({"user_agent": "pos-device-agent/0.1.0 kiosk"}, DeviceType.CUSTOMER_KIOSK),
        ({"user_agent": "Mozilla/5.0 (Linux; Android 14) Mobile"}, DeviceType.MOBILE_POS),
        ({"user_agent": "pos-device-agent/0.1.0 tablet"}, DeviceType.TABLET_POS),
        ({"screen_width": 1280, "screen_height": 800, "touch_enabled": True}, DeviceType.TABLET_POS),
        ({"screen_width": 1920, "screen_height": 1080}, DeviceType.MANAGER_STATION),
        ({"screen_width": 640, "screen_height": 400}, DeviceType.MOBILE_POS),
        ({"screen_width": 1024, "screen_height": 800}, DeviceType.TABLET_POS),
        ({"screen_width": 2560, "screen_height": 1440, "touch_enabled": True}, DeviceType.MANAGER_STATION),
    ],
)
def test_detect_device_type(overrides, expected):
    assert detector.detect_device_type(make_env(**overrides)) == expected


@pytest.mark.parametrize(
    "names, expected",
    [
        (["eth0", "wlan0"], ConnectionType.ethernet),
        (["wlp3s0"], ConnectionType.wifi),
        (["wwan0"], ConnectionType.cellular),
        (["docker0"], ConnectionType.unknown),
        ([], ConnectionType.unknown),
    ],
)
def test_classify_connection(names, expected):
    assert detector.classify_connection(names) == expected


@pytest.fixture
def quiet_probes(monkeypatch):
    monkeypatch.setattr(detector, "probe_camera", lambda: True)
    monkeypatch.setattr(detector, "probe_microphone", lambda: False)
    monkeypatch.setattr(detector, "probe_bluetooth", lambda: True)
    monkeypatch.setattr(detector, "probe_nfc", lambda: False)
    monkeypatch.setattr(detector, "probe_printer", lambda: False)
    monkeypatch.setattr(detector, "probe_battery", lambda: (55, True))
    monkeypatch.setattr(detector, "probe_connection", lambda: ConnectionType.wifi)


def test_detect_capabilities(quiet_probes):
    settings = AgentSettings(CARD_READER=True, PRINTER_CONNECTED=True)
    env = make_env(touch_enabled=True)
    caps = asyncio.run(detector.detect_capabilities(env, settings))
    assert caps.screen_width == 1920
    assert caps.touch_enabled is True
    assert caps.camera_enabled is True
    assert caps.bluetooth_enabled is True
    assert caps.card_reader is True
    assert caps.printer_connected is True
    assert caps.cash_drawer_connected is False
    assert caps.battery_level == 55
    assert caps.is_charging is True
    assert caps.connection_type == ConnectionType.wifi
    assert caps.user_agent == env.user_agent


def test_failing_probe_reports_absent(quiet_probes, monkeypatch, caplog):
    def broken():
        raise PermissionError("/dev/video0")

    monkeypatch.setattr(detector, "probe_camera", broken)
    monkeypatch.setattr(detector, "probe_battery", broken)
    caps = asyncio.run(detector.detect_capabilities(make_env(), AgentSettings()))
    assert caps.camera_enabled is False
    assert caps.battery_level is None
    assert caps.bluetooth_enabled is True
    assert "Capability probe camera failed" in caplog.text


def test_device_name():
    caps = DeviceCapabilities(screen_width=1280, screen_height=800, platform="Linux armv7l")
    assert detector.device_name(DeviceType.TABLET_POS, caps) == "Tablet POS (Linux armv7l - 1280x800)"
    assert detector.device_name(DeviceType.KITCHEN_DISPLAY, caps) == "Kitchen Display (1280x800)"
    assert detector.device_name(DeviceType.MOBILE_POS, DeviceCapabilities()) == "Mobile POS (Unknown)"


def test_recommended_interface_for_dedicated_hardware():
    assert (
        detector.recommended_interface(DeviceType.KITCHEN_DISPLAY, ["KITCHEN_DISPLAY"])
        == InterfaceType.KITCHEN_DISPLAY
    )
    assert detector.recommended_interface(DeviceType.PAYMENT_TERMINAL, ["ORDER_ENTRY"]) is None


def test_recommended_interface_prefers_manager_terminal_for_managers():
    allowed = ["MANAGER_TERMINAL", "ORDER_ENTRY"]
    assert detector.recommended_interface(DeviceType.TABLET_POS, allowed, "manager") == InterfaceType.MANAGER_TERMINAL
    assert detector.recommended_interface(DeviceType.TABLET_POS, allowed, "CASHIER") == InterfaceType.ORDER_ENTRY


def test_recommended_interface_for_mobile():
    allowed = ["MOBILE_POS", "ORDER_ENTRY"]
    assert detector.recommended_interface(DeviceType.MOBILE_POS, allowed) == InterfaceType.MOBILE_POS
    assert detector.recommended_interface(DeviceType.MOBILE_POS, []) is None
