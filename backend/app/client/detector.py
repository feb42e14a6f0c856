"""
Device type and capability detection for the agent.

Type detection is a pure function of the environment. Capability probes touch the
host (device nodes, sysfs, psutil); they run concurrently in worker threads and
each one fails soft: a probe that errors reports "absent" and logs a warning.
"""

import asyncio
import glob
import logging
import os
from typing import Any, Callable, Iterable, Optional

import psutil

from app.client.config import AgentSettings
from app.client.environment import DeviceEnvironment
from app.core.enums import ConnectionType, DeviceType, InterfaceType
from app.schemas.device import DeviceCapabilities

logger = logging.getLogger(__name__)

MANAGER_ROLES = ("MANAGER", "OWNER", "ADMIN")


def detect_device_type(env: DeviceEnvironment) -> DeviceType:
    ua = env.user_agent.lower()
    if "kiosk" in ua or "chromecast" in ua:
        return DeviceType.CUSTOMER_KIOSK
    if "mobile" in ua or "android" in ua or "iphone" in ua:
        return DeviceType.MOBILE_POS
    if "tablet" in ua or "ipad" in ua or (768 <= env.max_dimension <= 1366 and env.touch_enabled):
        return DeviceType.TABLET_POS
    if env.max_dimension >= 1920 and not env.touch_enabled:
        return DeviceType.MANAGER_STATION
    if env.min_dimension < 768:
        return DeviceType.MOBILE_POS
    if env.min_dimension < 1024:
        return DeviceType.TABLET_POS
    return DeviceType.MANAGER_STATION


def probe_camera() -> bool:
    return bool(glob.glob("/dev/video*"))


def probe_microphone() -> bool:
    try:
        with open("/proc/asound/pcm", encoding="utf-8") as f:
            return any("capture" in line for line in f)
    except FileNotFoundError:
        return False


def _class_has_devices(path: str) -> bool:
    return os.path.isdir(path) and bool(os.listdir(path))


def probe_bluetooth() -> bool:
    return _class_has_devices("/sys/class/bluetooth")


def probe_nfc() -> bool:
    return _class_has_devices("/sys/class/nfc")


def probe_printer() -> bool:
    return bool(glob.glob("/dev/usb/lp*"))


def probe_battery() -> tuple[Optional[int], Optional[bool]]:
    battery = psutil.sensors_battery()
    if battery is None:
        return None, None
    return round(battery.percent), bool(battery.power_plugged)


def classify_interface(name: str) -> ConnectionType:
    name = name.lower()
    if name.startswith(("wl", "wifi")):
        return ConnectionType.wifi
    if name.startswith(("ww", "rmnet", "cdc", "usb")):
        return ConnectionType.cellular
    if name.startswith(("en", "eth")):
        return ConnectionType.ethernet
    return ConnectionType.unknown


def classify_connection(interfaces: Iterable[str]) -> ConnectionType:
    """Best link among the interfaces that are up: ethernet, then wifi, then cellular."""
    kinds = {classify_interface(name) for name in interfaces}
    for kind in (ConnectionType.ethernet, ConnectionType.wifi, ConnectionType.cellular):
        if kind in kinds:
            return kind
    return ConnectionType.unknown


def probe_connection() -> ConnectionType:
    stats = psutil.net_if_stats()
    return classify_connection(name for name, st in stats.items() if st.isup and name != "lo")


async def _run_probe(name: str, probe: Callable[[], Any], default: Any) -> Any:
    try:
        return await asyncio.to_thread(probe)
    except Exception:
        logger.warning("Capability probe %s failed; reporting it absent", name, exc_info=True)
        return default


async def detect_capabilities(env: DeviceEnvironment, settings: AgentSettings) -> DeviceCapabilities:
    camera, microphone, bluetooth, nfc, printer, battery, connection = await asyncio.gather(
        _run_probe("camera", probe_camera, False),
        _run_probe("microphone", probe_microphone, False),
        _run_probe("bluetooth", probe_bluetooth, False),
        _run_probe("nfc", probe_nfc, False),
        _run_probe("printer", probe_printer, False),
        _run_probe("battery", probe_battery, (None, None)),
        _run_probe("connection", probe_connection, ConnectionType.unknown),
    )
    battery_level, is_charging = battery
    return DeviceCapabilities(
        screen_width=env.screen_width,
        screen_height=env.screen_height,
        touch_enabled=env.touch_enabled,
        camera_enabled=camera,
        microphone_enabled=microphone,
        bluetooth_enabled=bluetooth,
        nfc_enabled=nfc,
        printer_connected=printer or settings.PRINTER_CONNECTED,
        cash_drawer_connected=settings.CASH_DRAWER_CONNECTED,
        barcode_scanner=settings.BARCODE_SCANNER,
        card_reader=settings.CARD_READER,
        user_agent=env.user_agent,
        platform=env.platform,
        connection_type=connection,
        battery_level=battery_level,
        is_charging=is_charging,
    )


def device_name(device_type: DeviceType, capabilities: DeviceCapabilities) -> str:
    platform = capabilities.platform or "Unknown"
    screen = f"{capabilities.screen_width}x{capabilities.screen_height}"
    names = {
        DeviceType.MOBILE_POS: f"Mobile POS ({platform})",
        DeviceType.TABLET_POS: f"Tablet POS ({platform} - {screen})",
        DeviceType.MANAGER_STATION: f"Manager Station ({platform} - {screen})",
        DeviceType.CUSTOMER_KIOSK: f"Customer Kiosk ({screen})",
        DeviceType.KITCHEN_DISPLAY: f"Kitchen Display ({screen})",
        DeviceType.PAYMENT_TERMINAL: f"Payment Terminal ({platform})",
    }
    return names.get(device_type, f"Unknown Device ({platform})")


def recommended_interface(
    device_type: DeviceType,
    allowed_interfaces: Iterable[str],
    user_role: Optional[str] = None,
) -> Optional[InterfaceType]:
    """Interface a device should open by default, or None if nothing suitable is allowed."""
    allowed = set(allowed_interfaces)

    dedicated = {
        DeviceType.KITCHEN_DISPLAY: InterfaceType.KITCHEN_DISPLAY,
        DeviceType.PAYMENT_TERMINAL: InterfaceType.PAYMENT_TERMINAL,
        DeviceType.CUSTOMER_KIOSK: InterfaceType.CUSTOMER_KIOSK,
    }
    if device_type in dedicated:
        interface = dedicated[device_type]
        return interface if interface.value in allowed else None

    if (user_role or "").upper() in MANAGER_ROLES and InterfaceType.MANAGER_TERMINAL.value in allowed:
        return InterfaceType.MANAGER_TERMINAL
    if device_type == DeviceType.MOBILE_POS and InterfaceType.MOBILE_POS.value in allowed:
        return InterfaceType.MOBILE_POS
    for interface in (InterfaceType.ORDER_ENTRY, InterfaceType.PAYMENT_TERMINAL, InterfaceType.CUSTOMER_ORDERING):
        if interface.value in allowed:
            return interface
    return None
