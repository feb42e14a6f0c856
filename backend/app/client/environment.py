"""Snapshot of the host a device agent runs on: the raw signals behind fingerprinting and detection."""

import hashlib
import locale
import logging
import os
import platform
import sys
import time
from dataclasses import dataclass
from typing import Optional

import psutil

from app.client.config import AgentSettings

logger = logging.getLogger(__name__)

AGENT_VERSION = "0.1.0"


@dataclass(frozen=True)
class DeviceEnvironment:
    user_agent: str
    language: str
    platform: str
    screen_width: int
    screen_height: int
    color_depth: int
    timezone_offset_minutes: int
    cpu_count: Optional[int]
    memory_gib: Optional[int]
    render_signature: str
    touch_enabled: bool = False

    @property
    def max_dimension(self) -> int:
        return max(self.screen_width, self.screen_height)

    @property
    def min_dimension(self) -> int:
        return min(self.screen_width, self.screen_height)


def _timezone_offset_minutes() -> int:
    # minutes behind UTC, matching the browser convention (UTC+1 => -60)
    offset = time.altzone if time.localtime().tm_isdst > 0 else time.timezone
    return offset // 60


def _memory_gib() -> Optional[int]:
    try:
        return max(1, round(psutil.virtual_memory().total / 2**30))
    except (OSError, psutil.Error):
        logger.warning("Could not read total memory", exc_info=True)
        return None


def _render_signature() -> str:
    """Stable digest of the host's platform stack."""
    uname = platform.uname()
    parts = [uname.system, uname.release, uname.machine, platform.python_implementation(), sys.byteorder]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:32]


def build_user_agent(hint: str = "") -> str:
    ua = f"pos-device-agent/{AGENT_VERSION} ({platform.system()} {platform.release()}; {platform.machine()})"
    return f"{ua} {hint}".strip()


def collect_environment(settings: AgentSettings) -> DeviceEnvironment:
    language = locale.getlocale()[0] or "en_US"
    return DeviceEnvironment(
        user_agent=build_user_agent(settings.USER_AGENT_HINT),
        language=language.replace("_", "-"),
        platform=f"{platform.system()} {platform.machine()}".strip(),
        screen_width=settings.SCREEN_WIDTH,
        screen_height=settings.SCREEN_HEIGHT,
        color_depth=settings.COLOR_DEPTH,
        timezone_offset_minutes=_timezone_offset_minutes(),
        cpu_count=os.cpu_count(),
        memory_gib=_memory_gib(),
        render_signature=_render_signature(),
        touch_enabled=settings.TOUCH_ENABLED,
    )
