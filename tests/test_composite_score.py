"""Tests for the composite scorer."""

from __future__ import annotations

from dataclasses import replace

import pytest

from trustcore.scoring.composite import ScoringPolicy, grade_for, score_entity
from trustcore.scoring.metrics import compute_metrics
from trustcore.types import CATEGORIES, Metric, ProvenanceSummary

from conftest import FIXED_NOW


def _metric(name, category, value, confidence=1.0, neutral=False):
    return Metric(
        name=name,
        category=category,
        value=value,
        confidence=confidence,
        contributing_signals=(),
        computed_at=FIXED_NOW,
        neutral=neutral,
    )


def _score(signals, cycle_id=1, **kwargs):
    return score_entity(
        entity_id="stake.com",
        cycle_id=cycle_id,
        metrics=compute_metrics(signals, computed_at=FIXED_NOW),
        **kwargs,
    )


def test_clean_entity_scores_at_least_90(clean_signals):
    """Test that a platform with clean signals scores >= 90 with grade A."""
    composite = _score(clean_signals)

    assert composite.overall >= 90
    assert composite.grade == "A"
    assert composite.confidence == pytest.approx(0.9)
    assert composite.provenance_summary.low_confidence is False

    categories = {c.category: c.score for c in composite.category_breakdown}
    assert categories["fairness"] >= 95
    assert categories["payout_reliability"] >= 95
    metrics = {m.name: m.value for m in composite.metrics}
    assert metrics["rtp_accuracy"] >= 95
    assert metrics["payout_complaints"] >= 95


def test_breakdown_always_has_five_categories_in_order(clean_signals):
    """Test exactly five category entries in declaration order."""
    full = _score(clean_signals)
    empty = score_entity(entity_id="x", cycle_id=1, metrics=[])

    for composite in (full, empty):
        assert [c.category for c in composite.category_breakdown] == list(CATEGORIES)
        assert 0.0 <= composite.overall <= 100.0


def test_no_metrics_gives_zero_confidence_and_low_confidence_flag():
    """Test scoring with nothing known."""
    composite = score_entity(entity_id="x", cycle_id=1, metrics=[])

    assert composite.confidence == 0.0
    assert composite.provenance_summary.low_confidence is True
    assert composite.rationale == ()


def test_rtp_deviation_limits_overall_drop(clean_signals, make_signal):
    """Test an 8% RTP deviation: metric < 60, overall drop bounded by the fairness weight."""
    baseline = _score(clean_signals)
    degraded_signals = [s for s in clean_signals if s.signal_type != "rtp"]
    degraded_signals.append(make_signal("rtp", {"claimed_rtp": 96.0, "verified_rtp": 88.32}))
    degraded = _score(degraded_signals)

    rtp = {m.name: m for m in degraded.metrics}["rtp_accuracy"]
    assert rtp.value < 60

    fairness_before = baseline.category_breakdown[0].score
    fairness_after = degraded.category_breakdown[0].score
    category_drop = fairness_before - fairness_after
    overall_drop = baseline.overall - degraded.overall

    assert category_drop > 0
    assert 0 < overall_drop <= 0.35 * category_drop + 0.01
    assert degraded.rationale[0].metric == "rtp_accuracy"


def test_score_is_deterministic(clean_signals):
    """Test that repeated scoring gives identical composites."""
    assert _score(clean_signals) == _score(clean_signals)


def test_low_confidence_flag(make_signal):
    """Test that weak evidence still produces a score, flagged low confidence."""
    signals = [make_signal(t, confidence=0.3) for t in ("rtp", "disclosure", "payout", "bonus", "compliance", "support")]
    composite = _score(signals)

    assert composite.confidence == pytest.approx(0.3)
    assert composite.provenance_summary.low_confidence is True
    assert composite.overall >= 90


def test_low_confidence_threshold_is_configurable(clean_signals):
    """Test the threshold comes from the scoring policy."""
    composite = _score(clean_signals, policy=ScoringPolicy(low_confidence_threshold=0.95))

    assert composite.provenance_summary.low_confidence is True


def test_provenance_summary_is_carried(clean_signals):
    """Test that provenance counts pass through while the flag is recomputed."""
    summary = ProvenanceSummary(live=4, cached=1, fallback=1, missing=0, low_confidence=True)
    composite = _score(clean_signals, provenance=summary)

    assert composite.provenance_summary.live == 4
    assert composite.provenance_summary.cached == 1
    assert composite.provenance_summary.low_confidence is False


def test_rationale_top_three_by_loss():
    """Test the rationale lists the three largest losses, largest first."""
    metrics = [
        _metric("rtp_accuracy", "fairness", 40.0),
        _metric("fairness_disclosure", "fairness", 100.0),
        _metric("payout_speed", "payout_reliability", 60.0),
        _metric("payout_complaints", "payout_reliability", 100.0),
        _metric("licensing", "compliance", 10.0),
        _metric("support_sentiment", "support", 90.0),
    ]
    composite = score_entity(entity_id="x", cycle_id=1, metrics=metrics)

    names = [r.metric for r in composite.rationale]
    assert names == ["rtp_accuracy", "licensing", "payout_speed"]
    magnitudes = [r.magnitude for r in composite.rationale]
    assert magnitudes == sorted(magnitudes, reverse=True)
    # 0.35 * 0.7 * (100 - 40)
    assert composite.rationale[0].magnitude == pytest.approx(14.7)


def test_rationale_ties_break_on_declaration_order():
    """Test equal losses are ordered by metric declaration order."""
    metrics = [
        _metric("support_responsiveness", "support", 50.0),
        _metric("support_sentiment", "support", 50.0),
    ]
    composite = score_entity(entity_id="x", cycle_id=1, metrics=metrics)

    assert [r.metric for r in composite.rationale] == ["support_sentiment", "support_responsiveness"]


def test_rationale_skips_metrics_without_loss():
    """Test that perfect metrics never appear in the rationale."""
    metrics = [_metric("rtp_accuracy", "fairness", 100.0), _metric("licensing", "compliance", 100.0)]

    assert score_entity(entity_id="x", cycle_id=1, metrics=metrics).rationale == ()


def test_rationale_marks_neutral_defaults():
    """Test that a neutral default is called out in the reason."""
    metrics = [_metric("licensing", "compliance", 50.0, confidence=0.0, neutral=True)]
    composite = score_entity(entity_id="x", cycle_id=1, metrics=metrics)

    assert "neutral default" in composite.rationale[0].reason


def test_confidence_weights_metrics_within_category():
    """Test a zero-confidence metric does not drag its category down."""
    metrics = [
        _metric("rtp_accuracy", "fairness", 100.0, confidence=1.0),
        _metric("fairness_disclosure", "fairness", 0.0, confidence=0.0),
    ]
    composite = score_entity(entity_id="x", cycle_id=1, metrics=metrics)

    assert composite.category_breakdown[0].score == pytest.approx(100.0)
    assert composite.category_breakdown[0].confidence == pytest.approx(0.7)


def test_category_weights_come_from_policy(clean_signals, make_signal):
    """Test that weights in the policy change the composite."""
    from trustcore.scoring.weights import build_weights

    signals = [s for s in clean_signals if s.signal_type != "compliance"]
    signals.append(make_signal("compliance", {"licensed": False, "reputation": "poor"}))
    default = _score(signals)
    heavy = _score(signals, policy=ScoringPolicy(weights=build_weights(categories={"compliance": 0.6})))

    assert heavy.overall < default.overall


@pytest.mark.parametrize(
    "score,grade",
    [(95, "A"), (90, "A"), (89.99, "B"), (80, "B"), (75, "C"), (60, "D"), (59.9, "F"), (0, "F")],
)
def test_grade_for(score, grade):
    """Test grade thresholds."""
    assert grade_for(score) == grade


def test_overall_within_bounds_for_extreme_metrics():
    """Test overall stays in [0, 100] when every metric is at an extreme."""
    low = [_metric(n, c, 0.0) for n, c in _all_metric_names()]
    high = [_metric(n, c, 100.0) for n, c in _all_metric_names()]

    assert score_entity(entity_id="x", cycle_id=1, metrics=low).overall == 0.0
    assert score_entity(entity_id="x", cycle_id=1, metrics=high).overall == 100.0


def _all_metric_names():
    from trustcore.scoring.metrics import METRICS

    return [(spec.name, spec.category) for spec in METRICS]


def test_replace_keeps_composite_frozen(clean_signals):
    """Test composites are immutable values."""
    composite = _score(clean_signals)
    with pytest.raises(Exception):
        composite.overall = 0  # type: ignore[misc]
    assert replace(composite, overall=1.0).overall == 1.0
