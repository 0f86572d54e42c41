import threading
from datetime import timedelta
from concurrent.futures import ThreadPoolExecutor

import pytest
from pydantic import ValidationError

from clicks import ClickRecorder
from errors import DuplicateShortcode, ExhaustedCodespace, NotFound
from registry import UrlRegistry


def test_create_and_resolve_custom_shortcode(store):
    record = store.registry.create("https://example.com/a", "abc123", 30)

    assert record.shortcode == "abc123"
    assert record.validity_minutes == 30
    assert record.is_active is True
    assert store.registry.resolve("abc123").original_url == "https://example.com/a"


def test_create_sets_expiry_from_validity(store, clock):
    record = store.registry.create("https://example.com", "exp1", 45)

    assert record.created_at == clock.now
    assert (record.expires_at - record.created_at).total_seconds() == 45 * 60


def test_default_validity_is_thirty_minutes(store):
    record = store.registry.create("https://example.com")

    assert record.validity_minutes == 30
    assert (record.expires_at - record.created_at).total_seconds() == 30 * 60


def test_records_get_distinct_ids(store):
    first = store.registry.create("https://example.com/1")
    second = store.registry.create("https://example.com/2")

    assert first.id and second.id
    assert first.id != second.id


def test_duplicate_custom_shortcode_rejected(store):
    store.registry.create("https://example.com/a", "taken")

    with pytest.raises(DuplicateShortcode) as exc_info:
        store.registry.create("https://example.com/b", "taken")

    assert exc_info.value.shortcode == "taken"
    assert store.registry.resolve("taken").original_url == "https://example.com/a"
    assert len(store.registry) == 1


def test_duplicate_rejected_after_expiry(store, clock):
    store.registry.create("https://example.com/a", "old", 1)
    clock.advance(minutes=5)

    with pytest.raises(DuplicateShortcode):
        store.registry.create("https://example.com/b", "old")


def test_generated_shortcode_format(store):
    for _ in range(50):
        code = store.registry.create("https://example.com").shortcode
        assert len(code) == 6
        assert code.isalnum() and code.isascii()


def test_generation_skips_taken_codes(clock):
    codes = iter(["aaaaaa", "aaaaaa", "bbbbbb"])
    registry = UrlRegistry(ClickRecorder(clock), clock=clock, generator=lambda n: next(codes))

    assert registry.create("https://example.com/1").shortcode == "aaaaaa"
    assert registry.create("https://example.com/2").shortcode == "bbbbbb"


def test_generation_gives_up_after_max_attempts(clock):
    calls = []

    def stuck(n):
        calls.append(n)
        return "same01"

    registry = UrlRegistry(ClickRecorder(clock), clock=clock, max_attempts=5, generator=stuck)
    registry.create("https://example.com", "same01")

    with pytest.raises(ExhaustedCodespace) as exc_info:
        registry.create("https://example.com")

    assert exc_info.value.attempts == 5
    assert len(calls) == 5
    assert len(registry) == 1


def test_resolve_unknown_shortcode(store):
    with pytest.raises(NotFound):
        store.registry.resolve("nope")


def test_resolve_respects_expiry(store, clock):
    record = store.registry.create("https://example.com", "short1", 1)

    assert store.registry.resolve("short1") is record

    clock.advance(minutes=2)
    with pytest.raises(NotFound):
        store.registry.resolve("short1")
    assert record.is_active is True
    assert store.registry._urls["short1"].is_active is False
    assert store.registry._urls["short1"].id == record.id
    assert "short1" in store.registry


def test_records_are_immutable(store):
    record = store.registry.create("https://example.com/a", "fixed1")

    for field, value in [
        ("original_url", "https://evil.example"),
        ("shortcode", "other1"),
        ("expires_at", record.expires_at + timedelta(days=1)),
        ("is_active", False),
    ]:
        with pytest.raises(ValidationError):
            setattr(record, field, value)

    assert store.registry.resolve("fixed1").original_url == "https://example.com/a"


def test_resolve_at_exact_expiry_is_still_live(store, clock):
    store.registry.create("https://example.com", "edge", 1)
    clock.advance(minutes=1)

    assert store.registry.resolve("edge").shortcode == "edge"


def test_stats_for_new_record(store):
    store.registry.create("https://example.com/a", "abc123", 30)

    stats = store.registry.stats_snapshot("abc123")

    assert stats.shortcode == "abc123"
    assert stats.original_url == "https://example.com/a"
    assert stats.total_clicks == 0
    assert stats.clicks == []
    assert stats.is_active is True


def test_stats_counts_recorded_clicks(store):
    store.registry.create("https://example.com/a", "abc123", 30)
    store.registry.resolve("abc123")
    store.clicks.record("abc123", referrer="https://news.example")

    stats = store.registry.stats_snapshot("abc123")

    assert stats.total_clicks == 1
    assert stats.clicks[0].referrer == "https://news.example"


def test_stats_unknown_shortcode(store):
    with pytest.raises(NotFound):
        store.registry.stats_snapshot("missing")


def test_stats_on_expired_record_keeps_history(store, clock):
    store.registry.create("https://example.com", "gone", 1)
    for _ in range(3):
        store.clicks.record("gone")
    clock.advance(minutes=2)

    stats = store.registry.stats_snapshot("gone")

    assert stats.is_active is False
    assert stats.total_clicks == 3
    assert len(stats.clicks) == 3


def test_stats_liveness_ignores_cached_flag(store, clock):
    store.registry.create("https://example.com", "fresh", 10)
    clock.advance(minutes=11)

    # never resolved after expiry, so the cached flag is still set
    assert store.registry._urls["fresh"].is_active is True
    assert store.registry.stats_snapshot("fresh").is_active is False

    with pytest.raises(NotFound):
        store.registry.resolve("fresh")
    assert store.registry._urls["fresh"].is_active is False

    clock.now -= timedelta(minutes=11)
    assert store.registry.stats_snapshot("fresh").is_active is True


def test_stats_snapshot_is_a_copy(store):
    store.registry.create("https://example.com", "snap")
    stats = store.registry.stats_snapshot("snap")

    store.clicks.record("snap")

    assert stats.total_clicks == 0
    assert stats.clicks == []


def test_concurrent_create_same_custom_shortcode(store):
    barrier = threading.Barrier(8)

    def attempt(i):
        barrier.wait()
        try:
            store.registry.create(f"https://example.com/{i}", "race")
            return "ok"
        except DuplicateShortcode:
            return "dup"

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(attempt, range(8)))

    assert results.count("ok") == 1
    assert results.count("dup") == 7
    assert len(store.registry) == 1


def test_concurrent_generated_codes_are_unique(store):
    with ThreadPoolExecutor(max_workers=16) as pool:
        records = list(pool.map(lambda i: store.registry.create(f"https://example.com/{i}"), range(500)))

    codes = {r.shortcode for r in records}
    assert len(codes) == 500
    assert len(store.registry) == 500
