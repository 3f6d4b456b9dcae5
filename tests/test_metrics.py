"""Tests for the metric engine."""

from __future__ import annotations

import pytest

from trustcore.scoring.metrics import (
    METRICS,
    compute_metrics,
    metrics_by_category,
    select_signals,
)
from trustcore.types import CATEGORIES, Provenance

from conftest import FIXED_NOW


def _by_name(metrics):
    return {m.name: m for m in metrics}


def test_metric_catalog_covers_every_category():
    """Test that each category has at least one metric."""
    grouped = metrics_by_category()

    assert list(grouped) == list(CATEGORIES)
    assert all(grouped[c] for c in CATEGORIES)
    assert len({spec.name for spec in METRICS}) == len(METRICS)


def test_clean_signals_score_high(clean_signals):
    """Test that a platform with no weaknesses scores near 100 everywhere."""
    metrics = _by_name(compute_metrics(clean_signals, computed_at=FIXED_NOW))

    assert len(metrics) == len(METRICS)
    assert all(m.value >= 90 for m in metrics.values())
    assert all(not m.neutral for m in metrics.values())
    assert all(m.confidence == pytest.approx(0.9) for m in metrics.values())
    assert metrics["rtp_accuracy"].contributing_signals == ("rtp_src:rtp",)


def test_compute_metrics_is_pure(clean_signals):
    """Test that identical inputs give identical metrics."""
    first = compute_metrics(clean_signals, computed_at=FIXED_NOW)
    second = compute_metrics(list(reversed(clean_signals)), computed_at=FIXED_NOW)

    assert first == second


def test_rtp_deviation_penalised(make_signal):
    """Test that an 8% RTP deviation drops the metric well below 60."""
    metrics = _by_name(
        compute_metrics([make_signal("rtp", {"claimed_rtp": 96.0, "verified_rtp": 88.32})], computed_at=FIXED_NOW)
    )

    assert metrics["rtp_accuracy"].value == pytest.approx(36.0, abs=0.01)
    assert metrics["rtp_accuracy"].value < 60


def test_missing_input_uses_neutral_default_and_lowers_confidence(make_signal):
    """Test that an absent required field yields the neutral default."""
    metrics = _by_name(compute_metrics([make_signal("rtp", {"claimed_rtp": 96.0})], computed_at=FIXED_NOW))
    rtp = metrics["rtp_accuracy"]

    assert rtp.neutral is True
    assert rtp.value == 50.0
    # One of two inputs present at 0.9
    assert rtp.confidence == pytest.approx(0.45)


def test_missing_signal_type_has_zero_confidence(make_signal):
    """Test that metrics with no signal at all carry zero confidence."""
    metrics = _by_name(compute_metrics([make_signal("rtp")], computed_at=FIXED_NOW))

    assert metrics["payout_speed"].confidence == 0.0
    assert metrics["payout_speed"].value == 50.0
    assert metrics["payout_complaints"].value == 70.0
    assert metrics["payout_speed"].contributing_signals == ()


def test_fallback_signal_is_neutral(make_signal):
    """Test that a fallback result never influences the value."""
    fallback = make_signal("payout", {}, provenance=Provenance.FALLBACK, confidence=0.1)
    metrics = _by_name(compute_metrics([fallback], computed_at=FIXED_NOW))

    assert metrics["payout_speed"].neutral is True
    assert metrics["payout_speed"].value == 50.0
    assert metrics["payout_speed"].confidence == pytest.approx(0.1)


def test_malformed_payload_is_dropped(make_signal):
    """Test that an unparseable payload counts as missing evidence."""
    bad = make_signal("support", {"sentiment": 7})
    metrics = _by_name(compute_metrics([bad], computed_at=FIXED_NOW))

    assert metrics["support_sentiment"].neutral is True
    assert metrics["support_sentiment"].confidence == 0.0


def test_select_prefers_live_then_confidence(make_signal):
    """Test live beats cached and higher confidence wins within a provenance."""
    cached = make_signal("rtp", source_id="a", confidence=0.95, provenance=Provenance.CACHED)
    live_low = make_signal("rtp", source_id="b", confidence=0.5)
    live_high = make_signal("rtp", source_id="c", confidence=0.8)

    assert select_signals([cached, live_low, live_high])["rtp"].source_id == "c"
    assert select_signals([cached])["rtp"].source_id == "a"


def test_select_ties_break_on_source_id(make_signal):
    """Test deterministic choice between equal candidates."""
    a = make_signal("rtp", source_id="alpha")
    b = make_signal("rtp", source_id="beta")

    assert select_signals([b, a])["rtp"].source_id == "alpha"


def test_complaints_normalised_to_thirty_days(make_signal):
    """Test that complaints over a 90-day window count a third as much."""
    monthly = _by_name(compute_metrics([make_signal("payout", {"average_hours": 2, "complaints": 10})], computed_at=FIXED_NOW))
    quarterly = _by_name(
        compute_metrics(
            [make_signal("payout", {"average_hours": 2, "complaints": 30, "lookback_days": 90})],
            computed_at=FIXED_NOW,
        )
    )

    assert quarterly["payout_complaints"].value == pytest.approx(monthly["payout_complaints"].value)


def test_licensing_jurisdictions(make_signal):
    """Test licence scoring: strong jurisdiction, other licence, unlicensed."""

    def licensing(payload):
        return _by_name(compute_metrics([make_signal("compliance", payload)], computed_at=FIXED_NOW))["licensing"].value

    assert licensing({"licensed": True, "jurisdiction": "Malta"}) == 100.0
    assert licensing({"licensed": True, "jurisdiction": "Curacao"}) == 70.0
    assert licensing({"licensed": False}) == 10.0


def test_regulatory_reputation_kyc_penalty(make_signal):
    """Test that skipping KYC costs reputation points."""
    metrics = _by_name(
        compute_metrics(
            [make_signal("compliance", {"licensed": True, "reputation": "neutral", "kyc_required": False})],
            computed_at=FIXED_NOW,
        )
    )

    assert metrics["regulatory_reputation"].value == 50.0


def test_bonus_restrictions_with_nerfs(make_signal):
    """Test that recent bonus nerfs reduce the restrictions score."""
    metrics = _by_name(
        compute_metrics(
            [make_signal("bonus", {"wagering_requirement": 40, "restrictive": True, "nerf_count": 2})],
            computed_at=FIXED_NOW,
        )
    )

    assert metrics["bonus_restrictions"].value == 25.0
    assert 45 < metrics["wagering_fairness"].value < 70


def test_support_sentiment_scale(make_signal):
    """Test sentiment -1..1 maps onto 0..100."""
    metrics = _by_name(
        compute_metrics([make_signal("support", {"sentiment": -0.5, "response_hours": 1})], computed_at=FIXED_NOW)
    )

    assert metrics["support_sentiment"].value == 25.0
    assert metrics["support_responsiveness"].value == 100.0


def test_metric_values_always_in_range(make_signal):
    """Test bounds for extreme but valid inputs."""
    signals = [
        make_signal("rtp", {"claimed_rtp": 99.0, "verified_rtp": 0.0}),
        make_signal("payout", {"average_hours": 10_000, "complaints": 100_000, "lookback_days": 1}),
        make_signal("bonus", {"wagering_requirement": 10_000, "restrictive": True, "nerf_count": 50}),
        make_signal("support", {"sentiment": -1, "response_hours": 10_000}),
    ]
    for metric in compute_metrics(signals, computed_at=FIXED_NOW):
        assert 0.0 <= metric.value <= 100.0
        assert 0.0 <= metric.confidence <= 1.0
