from datetime import timedelta

import pytest

from app.core.enums import DeviceStatus, SessionStatus
from app.core.security import hash_session_token
from app.core.time import ensure_utc
from app.services.session_manager import SessionManager


@pytest.fixture
def manager(db, clock):
    return SessionManager(db, clock, duration=timedelta(hours=8), idle_after=timedelta(minutes=15))


@pytest.fixture
def device(make_device):
    return make_device()


def open_session(manager, device, **kwargs):
    params = dict(
        device_id=device.id,
        user_id=None,
        location_id="loc-1",
        interface_type="KITCHEN_DISPLAY",
        ip_address="10.0.0.5",
        permissions=["pos:basic_access", "pos:kitchen_display"],
    )
    params.update(kwargs)
    return manager.create_session(**params)


def test_create_then_get_round_trip(manager, device, clock):
    start = clock()
    session, token = open_session(manager, device)
    fetched = manager.get(session.id)
    assert fetched.status == SessionStatus.ACTIVE
    assert ensure_utc(fetched.expires_at) == start + timedelta(hours=8)
    assert fetched.session_token_hash == hash_session_token(token)
    assert token not in (fetched.session_token_hash, fetched.id)


def test_max_session_minutes_caps_lifetime(manager, device, clock):
    session, _ = open_session(manager, device, max_minutes=30)
    assert ensure_utc(session.expires_at) == clock() + timedelta(minutes=30)


def test_cap_longer_than_default_is_ignored(manager, device, clock):
    session, _ = open_session(manager, device, max_minutes=24 * 60)
    assert ensure_utc(session.expires_at) == clock() + timedelta(hours=8)


def test_heartbeats_never_move_expiry(manager, device, clock):
    session, _ = open_session(manager, device)
    expires_at = ensure_utc(session.expires_at)
    previous = ensure_utc(session.last_activity)
    for _ in range(5):
        clock.advance(minutes=1)
        beat = manager.heartbeat(session.id)
        assert ensure_utc(beat.expires_at) == expires_at
        assert ensure_utc(beat.last_activity) > previous
        previous = ensure_utc(beat.last_activity)


def test_heartbeat_unknown_session_is_noop(manager):
    assert manager.heartbeat("missing") is None


def test_heartbeat_revives_idle_session(manager, device, clock):
    session, _ = open_session(manager, device)
    clock.advance(minutes=20)
    assert manager.refresh_status(manager.get(session.id)).status == SessionStatus.IDLE
    assert manager.heartbeat(session.id).status == SessionStatus.ACTIVE


def test_heartbeat_after_expiry_marks_expired(manager, device, clock):
    session, _ = open_session(manager, device)
    clock.advance(hours=8, seconds=1)
    beat = manager.heartbeat(session.id)
    assert beat.status == SessionStatus.EXPIRED
    assert beat.terminated_reason == "EXPIRED"


def test_expiry_is_decided_by_timestamp(manager, device, clock):
    session, _ = open_session(manager, device)
    clock.advance(hours=8)
    assert not manager.is_expired(session)
    clock.advance(seconds=1)
    # no sweep has run; stored status still reads ACTIVE
    assert manager.get(session.id).status == SessionStatus.ACTIVE
    assert manager.is_expired(session)


def test_terminate_is_idempotent(manager, device, clock):
    session, _ = open_session(manager, device)
    first = manager.terminate(session.id, "LOGOUT")
    terminated_at = first.terminated_at
    clock.advance(minutes=5)
    second = manager.terminate(session.id, "OTHER")
    assert second.status == SessionStatus.TERMINATED
    assert second.terminated_reason == "LOGOUT"
    assert second.terminated_at == terminated_at


def test_terminate_unknown_session_is_noop(manager):
    assert manager.terminate("missing") is None


def test_heartbeat_on_terminated_session_changes_nothing(manager, device, clock):
    session, _ = open_session(manager, device)
    manager.terminate(session.id)
    last_activity = manager.get(session.id).last_activity
    clock.advance(minutes=1)
    beat = manager.heartbeat(session.id)
    assert beat.status == SessionStatus.TERMINATED
    assert beat.last_activity == last_activity



def test_heartbeat_ends_session_of_blocked_device(manager, device, db, clock):
    session, _ = open_session(manager, device)
    device.status = DeviceStatus.BLOCKED
    db.commit()
    clock.advance(minutes=1)
    beat = manager.heartbeat(session.id)
    assert beat.status == SessionStatus.TERMINATED
    assert beat.terminated_reason == "DEVICE_BLOCKED"
    assert ensure_utc(beat.terminated_at) == clock()
    assert not manager.is_usable(beat)


@pytest.mark.parametrize("status", [DeviceStatus.MAINTENANCE, DeviceStatus.INACTIVE])
def test_refresh_status_ends_session_of_unusable_device(manager, device, db, status):
    session, _ = open_session(manager, device)
    device.status = status
    db.commit()
    refreshed = manager.refresh_status(manager.get(session.id))
    assert refreshed.status == SessionStatus.TERMINATED
    assert refreshed.terminated_reason == f"DEVICE_{status.value}"


def test_refresh_status_leaves_session_of_active_device(manager, device):
    session, _ = open_session(manager, device)
    assert manager.refresh_status(session).status == SessionStatus.ACTIVE


def test_terminate_all_for_device(manager, make_device):
    device = make_device()
    other = make_device()
    a, _ = open_session(manager, device)
    b, _ = open_session(manager, device)
    manager.terminate(b.id)
    c, _ = open_session(manager, other)

    assert manager.terminate_all_for_device(device.id, "DEVICE_SUSPENDED") == 1
    assert manager.get(a.id).terminated_reason == "DEVICE_SUSPENDED"
    assert manager.get(b.id).terminated_reason == "LOGOUT"
    assert manager.get(c.id).status == SessionStatus.ACTIVE


def test_concurrent_sessions_are_tolerated(manager, device):
    a, _ = open_session(manager, device)
    b, _ = open_session(manager, device)
    assert a.id != b.id
    assert len(manager.list_sessions(device_id=device.id, status=SessionStatus.ACTIVE)) == 2


def test_list_sessions_filters(manager, make_device):
    device = make_device()
    open_session(manager, device, user_id="u-1")
    open_session(manager, device, location_id="loc-9")
    assert len(manager.list_sessions(user_id="u-1")) == 1
    assert len(manager.list_sessions(location_id="loc-9")) == 1
    assert len(manager.list_sessions(device_id=device.id)) == 2


def test_sweep(manager, device, clock):
    stale, _ = open_session(manager, device)
    clock.advance(hours=7, minutes=50)
    fresh, _ = open_session(manager, device)

    idle, expired = manager.sweep()
    assert (idle, expired) == (1, 0)
    assert manager.get(stale.id).status == SessionStatus.IDLE

    clock.advance(minutes=11)
    idle, expired = manager.sweep()
    assert expired == 1
    assert manager.get(stale.id).status == SessionStatus.EXPIRED
    assert manager.get(fresh.id).status == SessionStatus.ACTIVE


def test_resolve_token(manager, device):
    session, token = open_session(manager, device)
    assert manager.resolve_token(token).id == session.id
    assert manager.resolve_token("garbage") is None
    assert manager.resolve_token(token + "x") is None
