import re

from app.client import fingerprint

from conftest import make_env


def test_fingerprint_is_stable():
    assert fingerprint.generate(make_env()) == fingerprint.generate(make_env())


def test_fingerprint_is_sha256_hex():
    assert re.fullmatch(r"[0-9a-f]{64}", fingerprint.generate(make_env()))


def test_fingerprint_changes_with_any_signal():
    base = fingerprint.generate(make_env())
    for change in (
        {"screen_width": 1280},
        {"language": "fr-FR"},
        {"timezone_offset_minutes": -60},
        {"render_signature": "other"},
        {"memory_gib": 16},
    ):
        assert fingerprint.generate(make_env(**change)) != base, change


def test_touch_is_not_a_fingerprint_signal():
    assert fingerprint.generate(make_env(touch_enabled=True)) == fingerprint.generate(make_env())


def test_missing_hardware_counts_are_unknown():
    signals = fingerprint.signals(make_env(cpu_count=None, memory_gib=None))
    assert signals[6:8] == ["unknown", "unknown"]
    assert signals[3] == "1920x1080"
