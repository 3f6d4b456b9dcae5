"""Composite trust score from per-metric sub-scores.

Category scores are confidence-weighted means of their metrics: a metric's
effective weight is ``metric_weight * confidence``, renormalized within the
category. Category weights themselves are fixed, so a single category can
never move the overall score by more than its weight times its own change.

Usage:
    composite = score_entity(
        entity_id="stake.com",
        cycle_id=42,
        metrics=metrics,
        provenance=summary,
    )
    print(composite.overall, [r.metric for r in composite.rationale])
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable

from trustcore.scoring.metrics import METRIC_ORDER
from trustcore.scoring.weights import DEFAULT_WEIGHTS, ScoringWeights
from trustcore.types import (
    CATEGORIES,
    CategoryScore,
    CompositeScore,
    Metric,
    ProvenanceSummary,
    RationaleEntry,
)

LOW_CONFIDENCE_THRESHOLD = 0.5
RATIONALE_TOP_K = 3
RATIONALE_BASELINE = 100.0

GRADE_THRESHOLDS: tuple[tuple[float, str], ...] = (
    (90.0, "A"),
    (80.0, "B"),
    (70.0, "C"),
    (60.0, "D"),
)


@dataclass(frozen=True)
class ScoringPolicy:
    weights: ScoringWeights = field(default_factory=lambda: DEFAULT_WEIGHTS)
    low_confidence_threshold: float = LOW_CONFIDENCE_THRESHOLD
    rationale_top_k: int = RATIONALE_TOP_K
    rationale_baseline: float = RATIONALE_BASELINE


def grade_for(score: float) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "F"


def _effective_weights(metrics: list[Metric], weights: ScoringWeights, category: str) -> dict[str, float]:
    raw = {m.name: weights.metric_weight(category, m.name) * m.confidence for m in metrics}
    total = sum(raw.values())
    if total <= 0:
        # Nothing is known about this category: fall back to the plain weights.
        raw = {m.name: weights.metric_weight(category, m.name) for m in metrics}
        total = sum(raw.values())
    if total <= 0:
        return {name: 1.0 / len(raw) for name in raw} if raw else {}
    return {name: value / total for name, value in raw.items()}


def score_entity(
    *,
    entity_id: str,
    cycle_id: int,
    metrics: Iterable[Metric],
    provenance: ProvenanceSummary | None = None,
    policy: ScoringPolicy | None = None,
) -> CompositeScore:
    """Aggregate metrics into a composite score with rationale.

    Pure: identical metrics and policy always produce an identical score.

    Edge cases:
        - Category without metrics: scored at the rationale baseline with zero confidence
        - All metrics at zero confidence: plain weights are used, confidence is 0
        - Confidence below the policy threshold: score is still produced and
          ``provenance_summary.low_confidence`` is set
    """
    policy = policy or ScoringPolicy()
    weights = policy.weights
    metric_list = sorted(metrics, key=lambda m: METRIC_ORDER.get(m.name, len(METRIC_ORDER)))

    breakdown: list[CategoryScore] = []
    losses: list[tuple[float, int, Metric]] = []
    overall = 0.0
    confidence = 0.0

    for category in CATEGORIES:
        in_category = [m for m in metric_list if m.category == category]
        category_weight = weights.category_weight(category)

        if not in_category:
            breakdown.append(
                CategoryScore(category=category, score=policy.rationale_baseline, confidence=0.0, weight=category_weight)
            )
            overall += category_weight * policy.rationale_baseline
            continue

        effective = _effective_weights(in_category, weights, category)
        category_score = sum(effective[m.name] * m.value for m in in_category)
        category_confidence = sum(weights.metric_weight(category, m.name) * m.confidence for m in in_category)

        breakdown.append(
            CategoryScore(
                category=category,
                score=round(max(0.0, min(category_score, 100.0)), 2),
                confidence=round(category_confidence, 4),
                weight=category_weight,
            )
        )
        overall += category_weight * category_score
        confidence += category_weight * category_confidence

        for metric in in_category:
            loss = category_weight * effective[metric.name] * (policy.rationale_baseline - metric.value)
            losses.append((loss, METRIC_ORDER.get(metric.name, len(METRIC_ORDER)), metric))

    overall = round(max(0.0, min(overall, 100.0)), 2)
    confidence = round(max(0.0, min(confidence, 1.0)), 4)

    summary = provenance or ProvenanceSummary()
    summary = replace(summary, low_confidence=confidence < policy.low_confidence_threshold)

    return CompositeScore(
        entity_id=entity_id,
        cycle_id=cycle_id,
        overall=overall,
        category_breakdown=tuple(breakdown),
        confidence=confidence,
        rationale=_build_rationale(losses, policy.rationale_top_k),
        provenance_summary=summary,
        metrics=tuple(metric_list),
        grade=grade_for(overall),
    )


def _build_rationale(losses: list[tuple[float, int, Metric]], top_k: int) -> tuple[RationaleEntry, ...]:
    """Top-k metrics by points lost, ties broken by metric declaration order."""
    ranked = sorted((item for item in losses if item[0] > 0), key=lambda item: (-round(item[0], 6), item[1]))

    entries: list[RationaleEntry] = []
    for loss, _, metric in ranked[:top_k]:
        reason = f"{metric.name} scored {metric.value:.0f}/100 in {metric.category}, costing {loss:.1f} pts"
        if metric.neutral:
            reason += " (insufficient evidence, neutral default)"
        entries.append(
            RationaleEntry(
                metric=metric.name,
                category=metric.category,
                value=metric.value,
                magnitude=round(loss, 2),
                reason=reason,
            )
        )
    return tuple(entries)
