"""
Device-resident cache of the current session.

An optimization only: a missing or unreadable cache means "authenticate again",
and a cached entry is never trusted until the server confirms the session.
"""

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

from app.core.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedSession:
    device_id: str
    session_id: str
    session_token: str
    expires_at: datetime

    def to_json(self) -> dict:
        data = asdict(self)
        data["expires_at"] = self.expires_at.isoformat()
        return data

    @classmethod
    def from_json(cls, data: dict) -> "CachedSession":
        return cls(
            device_id=str(data["device_id"]),
            session_id=str(data["session_id"]),
            session_token=str(data["session_token"]),
            expires_at=ensure_utc(datetime.fromisoformat(data["expires_at"])),
        )


class SessionCache:
    def __init__(self, path: Union[str, os.PathLike], clock: Optional[Callable[[], datetime]] = None):
        self.path = Path(path).expanduser()
        self.clock = clock or utcnow

    def load(self) -> Optional[CachedSession]:
        """Cached session, or None when missing, corrupt or expired (the last two are cleared)."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError:
            logger.warning("Could not read session cache %s", self.path, exc_info=True)
            return None
        try:
            entry = CachedSession.from_json(json.loads(raw))
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding corrupt session cache %s", self.path)
            self.clear()
            return None
        if self.clock() >= entry.expires_at:
            self.clear()
            return None
        return entry

    def save(self, entry: CachedSession) -> None:
        """Replace the cache atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".session-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(entry.to_json(), f)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
