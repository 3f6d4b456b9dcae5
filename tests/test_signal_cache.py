"""Tests for the signal cache and single-flight helper."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from trustcore.signals.cache import SignalCache, SingleFlight, cache_key, stale_confidence
from trustcore.types import Provenance

from conftest import FIXED_NOW


def test_cache_key_is_stable_and_distinct():
    """Test that keys are deterministic per triple and differ across triples."""
    assert cache_key("stake.com", "casinoguru", "rtp") == cache_key("stake.com", "casinoguru", "rtp")
    assert cache_key("stake.com", "casinoguru", "rtp") != cache_key("rollbit.com", "casinoguru", "rtp")
    assert cache_key("stake.com", "casinoguru", "rtp") != cache_key("stake.com", "askgamblers", "rtp")


def test_stale_confidence_decays_with_age():
    """Test linear decay from full confidence to the floor at TTL."""
    assert stale_confidence(0.8, age_seconds=0, ttl_seconds=100) == pytest.approx(0.8)
    assert stale_confidence(0.8, age_seconds=50, ttl_seconds=100) == pytest.approx(0.6)
    assert stale_confidence(0.8, age_seconds=100, ttl_seconds=100) == pytest.approx(0.4)
    assert stale_confidence(0.8, age_seconds=500, ttl_seconds=100) == pytest.approx(0.4)


def test_stale_confidence_never_increases_with_age():
    """Test that an older entry never scores higher than a fresher one."""
    values = [stale_confidence(0.9, age_seconds=age, ttl_seconds=600) for age in range(0, 700, 50)]
    assert values == sorted(values, reverse=True)


def test_put_and_get_fresh(make_signal):
    """Test that a fresh entry comes back as cached with decayed confidence."""
    cache = SignalCache()
    result = make_signal("rtp", confidence=0.8)
    cache.put(result)

    cached = cache.get_fresh(
        "stake.com",
        result.source_id,
        "rtp",
        ttl_seconds=3600,
        now=FIXED_NOW + timedelta(minutes=30),
    )

    assert cached is not None
    assert cached.provenance is Provenance.CACHED
    assert cached.confidence == pytest.approx(0.6)
    assert cached.payload == result.payload
    # Stored entry is untouched.
    assert cache.get("stake.com", result.source_id, "rtp").provenance is Provenance.LIVE


def test_get_fresh_expired_returns_none(make_signal):
    """Test that entries at or beyond TTL are not served."""
    cache = SignalCache()
    result = make_signal("rtp")
    cache.put(result)

    assert cache.get_fresh("stake.com", result.source_id, "rtp", ttl_seconds=60, now=FIXED_NOW + timedelta(seconds=60)) is None


def test_put_ignores_non_live_results(make_signal):
    """Test that cached and fallback results never refresh the cache."""
    cache = SignalCache()
    cache.put(make_signal("rtp", provenance=Provenance.CACHED))
    cache.put(make_signal("rtp", provenance=Provenance.FALLBACK))

    assert len(cache) == 0


def test_newer_put_supersedes(make_signal):
    """Test that a newer fetch replaces the entry wholesale."""
    cache = SignalCache()
    cache.put(make_signal("payout", {"average_hours": 10, "complaints": 1}))
    cache.put(make_signal("payout", {"average_hours": 3, "complaints": 0}, fetched_at=FIXED_NOW + timedelta(hours=1)))

    entry = cache.get("stake.com", "payout_src", "payout")
    assert entry.payload["average_hours"] == 3
    assert len(cache) == 1


def test_cache_persists_to_directory(tmp_path, make_signal):
    """Test that a second cache over the same directory sees earlier entries."""
    SignalCache(directory=tmp_path).put(make_signal("support", confidence=0.7))

    reloaded = SignalCache(directory=tmp_path)
    entry = reloaded.get("stake.com", "support_src", "support")

    assert entry is not None
    assert entry.confidence == pytest.approx(0.7)
    assert entry.fetched_at == FIXED_NOW


def test_cache_ignores_corrupt_file(tmp_path):
    """Test that an unreadable cache file is treated as a miss."""
    key = cache_key("stake.com", "rtp_src", "rtp")
    (tmp_path / f"{key}.json").write_text("{not json", encoding="utf-8")

    assert SignalCache(directory=tmp_path).get("stake.com", "rtp_src", "rtp") is None


@pytest.mark.asyncio
async def test_single_flight_collapses_concurrent_calls():
    """Test that concurrent callers for one key share one execution."""
    flights = SingleFlight()
    calls = 0

    async def work():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return "value"

    results = await asyncio.gather(*(flights.do("k", work) for _ in range(5)))

    assert results == ["value"] * 5
    assert calls == 1
    assert "k" in flights


@pytest.mark.asyncio
async def test_single_flight_shares_errors():
    """Test that every waiter sees the same failure."""
    flights = SingleFlight()

    async def boom():
        await asyncio.sleep(0)
        raise RuntimeError("upstream exploded")

    results = await asyncio.gather(flights.do("k", boom), flights.do("k", boom), return_exceptions=True)

    assert all(isinstance(r, RuntimeError) for r in results)


@pytest.mark.asyncio
async def test_single_flight_survives_one_caller_cancelling():
    """Test that a cancelled waiter does not cancel the shared work."""
    flights = SingleFlight()
    release = asyncio.Event()

    async def work():
        await release.wait()
        return 42

    first = asyncio.create_task(flights.do("k", work))
    second = asyncio.create_task(flights.do("k", work))
    await asyncio.sleep(0)
    first.cancel()
    release.set()

    assert await second == 42
