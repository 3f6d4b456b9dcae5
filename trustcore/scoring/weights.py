"""Category and metric weights with code defaults and config overrides.

This module provides the weighting used by the composite scorer:
- Works offline with hardcoded defaults
- Accepts partial overrides from the trust config file
- Auto-normalizes weights to sum to 1.0 (per category for metrics)

Usage:
    from trustcore.scoring.weights import build_weights

    # Default weights
    weights = build_weights()

    # Give compliance more influence
    weights = build_weights(categories={"compliance": 0.30})
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from trustcore.scoring.metrics import METRICS, metrics_by_category
from trustcore.types import CATEGORIES

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_WEIGHTS: dict[str, float] = {
    "fairness": 0.35,
    "payout_reliability": 0.25,
    "bonus_terms": 0.15,
    "compliance": 0.15,
    "support": 0.10,
}

DEFAULT_METRIC_WEIGHTS: dict[str, dict[str, float]] = {
    "fairness": {"rtp_accuracy": 0.70, "fairness_disclosure": 0.30},
    "payout_reliability": {"payout_speed": 0.50, "payout_complaints": 0.50},
    "bonus_terms": {"wagering_fairness": 0.60, "bonus_restrictions": 0.40},
    "compliance": {"licensing": 0.60, "regulatory_reputation": 0.40},
    "support": {"support_sentiment": 0.50, "support_responsiveness": 0.50},
}


def normalize_weights(weights: Mapping[str, float]) -> dict[str, float]:
    """Normalize weights to sum to 1.0.

    Raises:
        ValueError: If the set is empty or any weight is not > 0
    """
    if not weights:
        raise ValueError("weights must not be empty")
    bad = sorted(k for k, v in weights.items() if not v > 0)
    if bad:
        raise ValueError(f"weights must be > 0: {', '.join(bad)}")
    total = sum(weights.values())
    return {k: v / total for k, v in weights.items()}


@dataclass(frozen=True)
class ScoringWeights:
    """Normalized weights. Categories sum to 1, metrics sum to 1 within a category."""

    categories: Mapping[str, float]
    metrics: Mapping[str, Mapping[str, float]]

    def category_weight(self, category: str) -> float:
        return self.categories.get(category, 0.0)

    def metric_weight(self, category: str, metric: str) -> float:
        return self.metrics.get(category, {}).get(metric, 0.0)


def build_weights(
    categories: Mapping[str, float] | None = None,
    metrics: Mapping[str, Mapping[str, float]] | None = None,
) -> ScoringWeights:
    """Merge overrides onto the defaults, validate names and normalize.

    Raises:
        ValueError: unknown category or metric, or a weight set that cannot be normalized
    """
    category_weights = dict(DEFAULT_CATEGORY_WEIGHTS)
    for name, value in (categories or {}).items():
        if name not in CATEGORIES:
            raise ValueError(f"unknown category '{name}'")
        category_weights[name] = float(value)

    known = metrics_by_category(METRICS)
    metric_weights = {category: dict(values) for category, values in DEFAULT_METRIC_WEIGHTS.items()}
    for category, overrides in (metrics or {}).items():
        if category not in CATEGORIES:
            raise ValueError(f"unknown category '{category}'")
        for name, value in overrides.items():
            if name not in known[category]:
                raise ValueError(f"metric '{name}' does not belong to category '{category}'")
            metric_weights[category][name] = float(value)

    if categories or metrics:
        logger.info("Using overridden scoring weights")

    return ScoringWeights(
        categories=normalize_weights(category_weights),
        metrics={category: normalize_weights(values) for category, values in metric_weights.items()},
    )


DEFAULT_WEIGHTS = build_weights()
