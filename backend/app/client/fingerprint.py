"""Deterministic device fingerprint.

The same environment always yields the same fingerprint. Two hosts built from an
identical image can collide; the server treats them as one device.
"""

import hashlib

from app.client.environment import DeviceEnvironment

UNKNOWN = "unknown"


def signals(env: DeviceEnvironment) -> list[str]:
    return [
        env.user_agent,
        env.language,
        env.platform,
        f"{env.screen_width}x{env.screen_height}",
        str(env.color_depth),
        str(env.timezone_offset_minutes),
        str(env.cpu_count) if env.cpu_count else UNKNOWN,
        str(env.memory_gib) if env.memory_gib else UNKNOWN,
        env.render_signature,
    ]


def generate(env: DeviceEnvironment) -> str:
    """SHA-256 hex digest of the `|`-joined signals."""
    return hashlib.sha256("|".join(signals(env)).encode("utf-8")).hexdigest()
