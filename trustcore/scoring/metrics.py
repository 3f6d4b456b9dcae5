"""Metric engine: pure functions from available signals to 0-100 sub-scores.

Each metric declares the ``signal.field`` inputs it needs and a neutral
default. The engine resolves inputs from the best available signal per type:

- every required input present as real evidence (live or cached): the metric
  function runs
- any required input missing, unparseable, or only available as a neutral
  fallback: the metric returns its neutral default

Confidence is the mean of per-input confidences, where a missing input counts
as 0, so confidence drops in proportion to the number of missing inputs.

Usage:
    metrics = compute_metrics(signal_results, computed_at=cycle_started_at)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Optional

from trustcore.errors import ExtractionFailure
from trustcore.scoring.curves import (
    COMPLAINTS_CURVE,
    PAYOUT_HOURS_CURVE,
    RESPONSE_HOURS_CURVE,
    RTP_DEVIATION_CURVE,
    WAGERING_CURVE,
)
from trustcore.signals.payloads import parse_payload
from trustcore.types import CATEGORIES, Metric, Provenance, SignalResult

logger = logging.getLogger(__name__)

# Jurisdictions whose licences are treated as strong consumer protection.
STRONG_JURISDICTIONS = frozenset({"malta", "uk", "united kingdom", "gibraltar", "isle of man", "sweden", "ontario"})

_PROVENANCE_RANK = {Provenance.LIVE: 2, Provenance.CACHED: 1, Provenance.FALLBACK: 0}


@dataclass(frozen=True)
class MetricSpec:
    """Declaration of one metric."""

    name: str
    category: str
    inputs: tuple[str, ...]  # required "signal.field" inputs
    neutral_default: float
    compute: Callable[[Mapping[str, Any]], float]
    optional: tuple[str, ...] = ()
    description: str = ""


def _rtp_accuracy(v: Mapping[str, Any]) -> float:
    claimed = float(v["rtp.claimed_rtp"])
    verified = float(v["rtp.verified_rtp"])
    deviation = abs(verified - claimed) / claimed
    return RTP_DEVIATION_CURVE(deviation)


def _fairness_disclosure(v: Mapping[str, Any]) -> float:
    score = 40.0
    if v["disclosure.rtp_published"]:
        score += 30.0
    if v["disclosure.audit_report_present"]:
        score += 30.0
    return score


def _payout_speed(v: Mapping[str, Any]) -> float:
    return PAYOUT_HOURS_CURVE(float(v["payout.average_hours"]))


def _payout_complaints(v: Mapping[str, Any]) -> float:
    lookback = float(v.get("payout.lookback_days") or 30)
    per_30_days = float(v["payout.complaints"]) * 30.0 / lookback
    return COMPLAINTS_CURVE(per_30_days)


def _wagering_fairness(v: Mapping[str, Any]) -> float:
    return WAGERING_CURVE(float(v["bonus.wagering_requirement"]))


def _bonus_restrictions(v: Mapping[str, Any]) -> float:
    score = 45.0 if v["bonus.restrictive"] else 100.0
    score -= 10.0 * int(v.get("bonus.nerf_count") or 0)
    return max(0.0, score)


def _licensing(v: Mapping[str, Any]) -> float:
    if not v["compliance.licensed"]:
        return 10.0
    jurisdiction = (v.get("compliance.jurisdiction") or "").strip().lower()
    if jurisdiction in STRONG_JURISDICTIONS:
        return 100.0
    return 70.0


def _regulatory_reputation(v: Mapping[str, Any]) -> float:
    score = {"good": 100.0, "neutral": 65.0, "poor": 20.0}[v["compliance.reputation"]]
    if v.get("compliance.kyc_required") is False:
        score -= 15.0
    return max(0.0, score)


def _support_sentiment(v: Mapping[str, Any]) -> float:
    return (float(v["support.sentiment"]) + 1.0) * 50.0


def _support_responsiveness(v: Mapping[str, Any]) -> float:
    return RESPONSE_HOURS_CURVE(float(v["support.response_hours"]))


METRICS: tuple[MetricSpec, ...] = (
    MetricSpec(
        name="rtp_accuracy",
        category="fairness",
        inputs=("rtp.claimed_rtp", "rtp.verified_rtp"),
        neutral_default=50.0,
        compute=_rtp_accuracy,
        description="Observed vs disclosed RTP deviation",
    ),
    MetricSpec(
        name="fairness_disclosure",
        category="fairness",
        inputs=("disclosure.rtp_published", "disclosure.audit_report_present"),
        neutral_default=50.0,
        compute=_fairness_disclosure,
        description="Published RTP and third-party audit",
    ),
    MetricSpec(
        name="payout_speed",
        category="payout_reliability",
        inputs=("payout.average_hours",),
        neutral_default=50.0,
        compute=_payout_speed,
        description="Average withdrawal processing time",
    ),
    MetricSpec(
        name="payout_complaints",
        category="payout_reliability",
        inputs=("payout.complaints",),
        optional=("payout.lookback_days",),
        neutral_default=70.0,
        compute=_payout_complaints,
        description="Payout complaints in the lookback window",
    ),
    MetricSpec(
        name="wagering_fairness",
        category="bonus_terms",
        inputs=("bonus.wagering_requirement",),
        neutral_default=50.0,
        compute=_wagering_fairness,
        description="Bonus wagering requirement",
    ),
    MetricSpec(
        name="bonus_restrictions",
        category="bonus_terms",
        inputs=("bonus.restrictive",),
        optional=("bonus.nerf_count",),
        neutral_default=60.0,
        compute=_bonus_restrictions,
        description="Restrictive terms and recent bonus nerfs",
    ),
    MetricSpec(
        name="licensing",
        category="compliance",
        inputs=("compliance.licensed",),
        optional=("compliance.jurisdiction",),
        neutral_default=50.0,
        compute=_licensing,
        description="Licence status and jurisdiction strength",
    ),
    MetricSpec(
        name="regulatory_reputation",
        category="compliance",
        inputs=("compliance.reputation",),
        optional=("compliance.kyc_required",),
        neutral_default=60.0,
        compute=_regulatory_reputation,
        description="Regulatory reputation and KYC",
    ),
    MetricSpec(
        name="support_sentiment",
        category="support",
        inputs=("support.sentiment",),
        neutral_default=50.0,
        compute=_support_sentiment,
        description="Community sentiment about support",
    ),
    MetricSpec(
        name="support_responsiveness",
        category="support",
        inputs=("support.response_hours",),
        neutral_default=50.0,
        compute=_support_responsiveness,
        description="Support first-response time",
    ),
)

METRIC_ORDER: dict[str, int] = {spec.name: index for index, spec in enumerate(METRICS)}


def metrics_by_category(specs: Iterable[MetricSpec] = METRICS) -> dict[str, tuple[str, ...]]:
    grouped: dict[str, list[str]] = {category: [] for category in CATEGORIES}
    for spec in specs:
        grouped[spec.category].append(spec.name)
    return {category: tuple(names) for category, names in grouped.items()}


def select_signals(results: Iterable[SignalResult]) -> dict[str, SignalResult]:
    """Pick the best result per signal type.

    Ranking: live over cached over fallback, then higher confidence, then
    source id so the choice is reproducible.
    """
    ordered = sorted(
        results,
        key=lambda r: (-_PROVENANCE_RANK[r.provenance], -r.confidence, r.source_id),
    )
    best: dict[str, SignalResult] = {}
    for result in ordered:
        best.setdefault(result.signal_type, result)
    return best


# Parsed form: signal type -> (payload model or None for fallback, result)
_Parsed = dict[str, tuple[Optional[Any], SignalResult]]


def _parse_signals(selected: Mapping[str, SignalResult]) -> _Parsed:
    parsed: _Parsed = {}
    for signal_type, result in selected.items():
        if result.provenance is Provenance.FALLBACK:
            parsed[signal_type] = (None, result)
            continue
        try:
            parsed[signal_type] = (parse_payload(signal_type, result.payload, source_id=result.source_id), result)
        except ExtractionFailure as exc:
            logger.warning(f"Dropping {result.binding_key} for {result.entity_id}: {exc}")
    return parsed


def evaluate_metric(spec: MetricSpec, parsed: _Parsed, *, computed_at: datetime) -> Metric:
    confidences: list[float] = []
    values: dict[str, Any] = {}
    contributing: set[str] = set()
    has_all_evidence = True

    for ref in spec.inputs:
        signal_type, field_name = ref.split(".", 1)
        entry = parsed.get(signal_type)
        if entry is None:
            confidences.append(0.0)
            has_all_evidence = False
            continue

        model, result = entry
        if model is None:
            # Neutral fallback: counts toward confidence, never toward the value.
            confidences.append(result.confidence)
            contributing.add(result.binding_key)
            has_all_evidence = False
            continue

        value = getattr(model, field_name, None)
        if value is None:
            confidences.append(0.0)
            has_all_evidence = False
            continue

        confidences.append(result.confidence)
        values[ref] = value
        contributing.add(result.binding_key)

    for ref in spec.optional:
        signal_type, field_name = ref.split(".", 1)
        entry = parsed.get(signal_type)
        if entry is None or entry[0] is None:
            continue
        value = getattr(entry[0], field_name, None)
        if value is not None:
            values[ref] = value

    if has_all_evidence:
        raw = spec.compute(values)
    else:
        raw = spec.neutral_default

    confidence = sum(confidences) / len(confidences) if confidences else 0.0

    return Metric(
        name=spec.name,
        category=spec.category,
        value=round(max(0.0, min(float(raw), 100.0)), 2),
        confidence=round(max(0.0, min(confidence, 1.0)), 4),
        contributing_signals=tuple(sorted(contributing)),
        computed_at=computed_at,
        neutral=not has_all_evidence,
    )


def compute_metrics(
    results: Iterable[SignalResult],
    *,
    computed_at: datetime,
    specs: tuple[MetricSpec, ...] = METRICS,
) -> tuple[Metric, ...]:
    """Compute every declared metric for one entity in one cycle.

    Pure: the same results and ``computed_at`` always give the same metrics.
    """
    parsed = _parse_signals(select_signals(results))
    return tuple(evaluate_metric(spec, parsed, computed_at=computed_at) for spec in specs)
