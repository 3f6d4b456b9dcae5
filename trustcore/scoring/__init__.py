"""Metric engine, weights and composite scoring."""

from trustcore.scoring.composite import ScoringPolicy, grade_for, score_entity
from trustcore.scoring.curves import PenaltyCurve
from trustcore.scoring.metrics import METRICS, MetricSpec, compute_metrics
from trustcore.scoring.weights import DEFAULT_WEIGHTS, ScoringWeights, build_weights, normalize_weights

__all__ = [
    "DEFAULT_WEIGHTS",
    "METRICS",
    "MetricSpec",
    "PenaltyCurve",
    "ScoringPolicy",
    "ScoringWeights",
    "build_weights",
    "compute_metrics",
    "grade_for",
    "normalize_weights",
    "score_entity",
]
