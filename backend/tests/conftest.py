import os
import uuid
from datetime import datetime, timedelta, timezone

# Settings are read at import time; keep tests off any real database.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.client.environment import DeviceEnvironment
from app.core.deps import get_clock, get_db
from app.core.enums import DeviceStatus, DeviceType
from app.core.security import create_access_token, get_password_hash
from app.main import app
from app.models import AdminUser, Base, Device
from app.schemas.device import DeviceAuthRequest
from app.services.permissions import default_interfaces_for

# A Monday
T0 = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory, clock):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin(db):
    user = AdminUser(
        id=str(uuid.uuid4()),
        username="ops",
        hashed_password=get_password_hash("correct-horse"),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_headers(admin):
    token = create_access_token(subject=admin.id, extra_claims={"role": "admin"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_device(db, clock):
    """Insert a device row directly, bypassing registration."""

    def _make(
        fingerprint: str = None,
        device_type: DeviceType = DeviceType.KITCHEN_DISPLAY,
        status: DeviceStatus = DeviceStatus.ACTIVE,
        location_id: str = "loc-1",
        **overrides,
    ) -> Device:
        fields = dict(
            id=str(uuid.uuid4()),
            name=f"{device_type.value} Device",
            device_type=device_type,
            fingerprint=fingerprint or uuid.uuid4().hex,
            capabilities={},
            status=status,
            location_id=location_id,
            allowed_interfaces=default_interfaces_for(device_type),
            requires_approval=False,
            allowed_time_windows=[],
            ip_whitelist=[],
            location_restricted=True,
            registered_by="system",
            created_at=clock(),
            updated_at=clock(),
        )
        fields.update(overrides)
        device = Device(**fields)
        db.add(device)
        db.commit()
        db.refresh(device)
        return device

    return _make


def auth_request(**overrides) -> DeviceAuthRequest:
    data = dict(
        device_fingerprint="fp-test",
        device_type="KITCHEN_DISPLAY",
        requested_location="loc-1",
        requested_interface="KITCHEN_DISPLAY",
    )
    data.update(overrides)
    return DeviceAuthRequest(**data)


def auth_payload(**overrides) -> dict:
    return auth_request(**overrides).model_dump(mode="json")


def make_env(**overrides) -> DeviceEnvironment:
    fields = dict(
        user_agent="pos-device-agent/0.1.0 (Linux 6.1; x86_64)",
        language="en-GB",
        platform="Linux x86_64",
        screen_width=1920,
        screen_height=1080,
        color_depth=24,
        timezone_offset_minutes=0,
        cpu_count=4,
        memory_gib=8,
        render_signature="0f3c9a",
        touch_enabled=False,
    )
    fields.update(overrides)
    return DeviceEnvironment(**fields)
