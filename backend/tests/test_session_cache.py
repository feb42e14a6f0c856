import json
from datetime import timedelta

import pytest

from app.client.session_cache import CachedSession, SessionCache

from conftest import T0


@pytest.fixture
def cache(tmp_path, clock):
    return SessionCache(tmp_path / "agent" / "session.json", clock)


def entry(expires_at=T0 + timedelta(hours=8)):
    return CachedSession(device_id="dev-1", session_id="sess-1", session_token="tok", expires_at=expires_at)


def test_missing_cache_is_empty(cache):
    assert cache.load() is None


def test_save_then_load(cache):
    cache.save(entry())
    assert cache.load() == entry()
    assert list(cache.path.parent.iterdir()) == [cache.path]


def test_save_replaces_previous_entry(cache):
    cache.save(entry())
    cache.save(CachedSession("dev-1", "sess-2", "tok-2", T0 + timedelta(hours=1)))
    assert cache.load().session_id == "sess-2"


def test_expired_entry_is_cleared(cache, clock):
    cache.save(entry())
    clock.advance(hours=8)
    assert cache.load() is None
    assert not cache.path.exists()


@pytest.mark.parametrize("content", ["not json", "{}", json.dumps({"device_id": "d", "expires_at": "yesterday"})])
def test_corrupt_cache_is_cleared(cache, content):
    cache.path.parent.mkdir(parents=True)
    cache.path.write_text(content, encoding="utf-8")
    assert cache.load() is None
    assert not cache.path.exists()


def test_clear_is_idempotent(cache):
    cache.clear()
    cache.save(entry())
    cache.clear()
    cache.clear()
    assert cache.load() is None
