"""Tests for the trust rollup (latest cache, board, queries)."""

from __future__ import annotations

from datetime import timedelta

import pytest

from trustcore.events.bus import EventBus
from trustcore.rollup.service import TrustRollup, classify_risk, volatility
from trustcore.scoring.composite import score_entity
from trustcore.scoring.metrics import compute_metrics
from trustcore.storage.memory import InMemorySnapshotStore
from trustcore.types import Snapshot

from conftest import FIXED_NOW


@pytest.fixture
def snapshot_for(make_signal, clean_signals):
    def _make(entity_id: str, cycle_id: int, verified_rtp: float = 96.4, stored_at=FIXED_NOW) -> Snapshot:
        signals = [s for s in clean_signals if s.signal_type != "rtp"]
        signals.append(make_signal("rtp", {"claimed_rtp": 96.5, "verified_rtp": verified_rtp}, entity_id=entity_id))
        composite = score_entity(
            entity_id=entity_id,
            cycle_id=cycle_id,
            metrics=compute_metrics(signals, computed_at=FIXED_NOW),
        )
        return Snapshot(entity_id=entity_id, cycle_id=cycle_id, composite=composite, stored_at=stored_at)

    return _make


@pytest.mark.asyncio
async def test_start_rehydrates_from_store(snapshot_for):
    """Test the latest cache is rebuilt from committed snapshots."""
    store = InMemorySnapshotStore()
    store.commit(snapshot=snapshot_for("stake.com", 1))
    store.commit(snapshot=snapshot_for("rollbit.com", 1, verified_rtp=85.0))
    rollup = TrustRollup(store, EventBus())

    await rollup.start()

    assert rollup.started
    assert [e.entity_id for e in rollup.list_latest()] == ["rollbit.com", "stake.com"]
    assert (await rollup.get_latest_score("stake.com")).cycle_id == 1


@pytest.mark.asyncio
async def test_publish_commit_emits_update_with_previous(snapshot_for):
    """Test each commit publishes one update carrying the previous overall."""
    store = InMemorySnapshotStore()
    bus = EventBus()
    rollup = TrustRollup(store, bus)
    sub = rollup.subscribe("stake.com")

    first = snapshot_for("stake.com", 1)
    second = snapshot_for("stake.com", 2, verified_rtp=88.0)
    assert rollup.publish_commit(first)
    assert rollup.publish_commit(second)

    one = await sub.get(timeout=1)
    two = await sub.get(timeout=1)
    assert one.previous_overall is None
    assert two.previous_overall == first.composite.overall
    board = rollup.list_latest()
    assert board[0].delta == pytest.approx(second.composite.overall - first.composite.overall, abs=0.01)


@pytest.mark.asyncio
async def test_publish_failure_is_not_fatal(snapshot_for):
    """Test a failing bus is logged and reported, never raised."""

    class BrokenBus(EventBus):
        def publish(self, event):
            raise RuntimeError("bus down")

    rollup = TrustRollup(InMemorySnapshotStore(), BrokenBus())

    assert rollup.publish_commit(snapshot_for("stake.com", 1)) is False
    assert (await rollup.get_latest_score("stake.com")).cycle_id == 1


@pytest.mark.asyncio
async def test_older_commit_does_not_replace_latest(snapshot_for):
    """Test the cached latest never moves to an older cycle."""
    rollup = TrustRollup(InMemorySnapshotStore(), EventBus())
    rollup.publish_commit(snapshot_for("stake.com", 3))
    rollup.publish_commit(snapshot_for("stake.com", 2))

    assert (await rollup.get_latest_score("stake.com")).cycle_id == 3


@pytest.mark.asyncio
async def test_queries_delegate_to_store(snapshot_for):
    """Test point-in-time and history queries read the store."""
    store = InMemorySnapshotStore()
    for cycle_id in (1, 2, 3):
        store.commit(snapshot=snapshot_for("stake.com", cycle_id))
    rollup = TrustRollup(store, EventBus())

    assert (await rollup.get_score_at_cycle("stake.com", 2)).cycle_id == 2
    assert await rollup.get_score_at_cycle("stake.com", 9) is None
    assert [s.cycle_id for s in await rollup.get_history("stake.com", limit=2)] == [3, 2]
    # Not cached yet, falls through to the store.
    assert (await rollup.get_latest_score("stake.com")).cycle_id == 3
    assert await rollup.get_latest_score("unknown.com") is None


@pytest.mark.asyncio
async def test_board_sorted_worst_first(snapshot_for):
    """Test the board lists the lowest overall score first when risk is equal."""
    rollup = TrustRollup(InMemorySnapshotStore(), EventBus())
    rollup.publish_commit(snapshot_for("good.com", 1))
    rollup.publish_commit(snapshot_for("bad.com", 1, verified_rtp=80.0))
    rollup.publish_commit(snapshot_for("mid.com", 1, verified_rtp=92.0))

    assert [e.entity_id for e in rollup.list_latest()] == ["bad.com", "mid.com", "good.com"]


def test_classify_risk_bands():
    """Test volatility maps onto the five risk levels."""
    assert classify_risk(0.0) == "low"
    assert classify_risk(0.15) == "watch"
    assert classify_risk(0.30) == "elevated"
    assert classify_risk(0.50) == "high"
    assert classify_risk(0.70) == "critical"
    assert classify_risk(1.0) == "critical"


def test_volatility_needs_two_deltas_and_is_clamped():
    """Test a single delta is no volatility and huge swings cap at 1."""
    assert volatility([]) == 0.0
    assert volatility([-30.0]) == 0.0
    assert volatility([10.0, 10.0]) == 0.0
    assert volatility([-100.0, 100.0]) == 1.0
    assert volatility([-10.0, 10.0]) == pytest.approx(0.2)


@pytest.mark.asyncio
async def test_swinging_scores_raise_volatility_and_risk(snapshot_for):
    """Test alternating scores produce volatility and the event carries the risk level."""
    rollup = TrustRollup(InMemorySnapshotStore(), EventBus())
    sub = rollup.subscribe("swing.com")
    snapshots = [snapshot_for("swing.com", i, verified_rtp=96.4 if i % 2 else 80.0) for i in range(1, 5)]
    for snapshot in snapshots:
        rollup.publish_commit(snapshot)

    overalls = [s.composite.overall for s in snapshots]
    expected = volatility([b - a for a, b in zip(overalls, overalls[1:])])
    [entry] = rollup.list_latest()
    assert entry.volatility == expected > 0
    assert entry.risk_level == classify_risk(expected) != "low"

    events = [await sub.get(timeout=1) for _ in snapshots]
    assert events[0].volatility == 0.0
    assert events[0].risk_level == "low"
    assert events[-1].volatility == expected
    assert events[-1].to_dict()["risk_level"] == entry.risk_level


@pytest.mark.asyncio
async def test_deltas_older_than_a_day_drop_out(snapshot_for):
    """Test only score changes inside the 24h window count toward volatility."""
    rollup = TrustRollup(InMemorySnapshotStore(), EventBus())
    old = FIXED_NOW - timedelta(hours=30)
    rollup.publish_commit(snapshot_for("swing.com", 1, stored_at=old - timedelta(hours=2)))
    rollup.publish_commit(snapshot_for("swing.com", 2, verified_rtp=80.0, stored_at=old - timedelta(hours=1)))
    rollup.publish_commit(snapshot_for("swing.com", 3, stored_at=old))
    assert rollup.list_latest()[0].volatility > 0

    rollup.publish_commit(snapshot_for("swing.com", 4, stored_at=FIXED_NOW))

    assert rollup.list_latest()[0].volatility == 0.0


@pytest.mark.asyncio
async def test_board_puts_higher_risk_first(snapshot_for):
    """Test a volatile entity outranks a steady one with a lower score."""
    rollup = TrustRollup(InMemorySnapshotStore(), EventBus())
    rollup.publish_commit(snapshot_for("steady.com", 1, verified_rtp=85.0))
    for cycle_id in range(1, 5):
        rollup.publish_commit(snapshot_for("swing.com", cycle_id, verified_rtp=80.0 if cycle_id % 2 else 96.4))

    board = rollup.list_latest()

    assert [e.entity_id for e in board] == ["swing.com", "steady.com"]
    assert board[1].risk_level == "low"
    assert board[0].composite.overall > board[1].composite.overall


@pytest.mark.asyncio
async def test_restart_restores_previous_score_and_volatility(snapshot_for):
    """Test a rollup started over an existing store keeps deltas and risk."""
    store = InMemorySnapshotStore()
    live = TrustRollup(store, EventBus())
    snapshots = [snapshot_for("stake.com", i, verified_rtp=96.4 if i % 2 else 80.0) for i in range(1, 4)]
    for snapshot in snapshots:
        store.commit(snapshot=snapshot)
        live.publish_commit(snapshot)

    restarted = TrustRollup(store, EventBus())
    await restarted.start()

    [before] = live.list_latest()
    [after] = restarted.list_latest()
    assert after.previous_overall == snapshots[1].composite.overall
    assert after.delta == before.delta
    assert after.volatility == before.volatility
    assert after.risk_level == before.risk_level

    # The next commit after restart reports the restored score as previous.
    sub = restarted.subscribe("stake.com")
    nxt = snapshot_for("stake.com", 4)
    restarted.publish_commit(nxt)
    assert (await sub.get(timeout=1)).previous_overall == snapshots[2].composite.overall
