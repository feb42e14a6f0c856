from typing import Callable, Generator
from datetime import datetime

from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.core.time import utcnow


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_clock() -> Callable[[], datetime]:
    """Clock used by the device services; overridden in tests."""
    return utcnow
