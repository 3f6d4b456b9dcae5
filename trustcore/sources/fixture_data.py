"""Curated offline signal data.

Used when a source has no API credentials, when ``USE_MOCK_TRUST_DATA=true``,
and by the test suite. Values are based on publicly known information about
each platform and are indicative only; license numbers should be verified
before being relied on.

Layout: ``FIXTURE_SIGNALS[signal_type][entity_id] -> payload``. An optional
``confidence`` key inside a payload overrides the adapter's base confidence.
"""

from __future__ import annotations

from typing import Any

FIXTURE_SIGNALS: dict[str, dict[str, dict[str, Any]]] = {
    "rtp": {
        "stake.com": {"claimed_rtp": 96.5, "verified_rtp": 96.2, "confidence": 0.85},
        "duelbits.com": {"claimed_rtp": 97.0, "verified_rtp": 96.8, "confidence": 0.75},
        # No independent verification published.
        "rollbit.com": {"claimed_rtp": 96.0, "confidence": 0.5},
        "shuffle.com": {"claimed_rtp": 96.8, "verified_rtp": 96.5, "confidence": 0.80},
        "roobet.com": {"claimed_rtp": 95.5, "verified_rtp": 94.8, "confidence": 0.70},
        "bc.game": {"claimed_rtp": 97.2, "verified_rtp": 96.9, "confidence": 0.75},
    },
    "disclosure": {
        "stake.com": {"rtp_published": True, "audit_report_present": True},
        "duelbits.com": {"rtp_published": True, "audit_report_present": False},
        "rollbit.com": {"rtp_published": False, "audit_report_present": False},
        "shuffle.com": {"rtp_published": True, "audit_report_present": True},
        "roobet.com": {"rtp_published": True, "audit_report_present": False},
        "bc.game": {"rtp_published": True, "audit_report_present": True},
    },
    "payout": {
        "stake.com": {"average_hours": 2, "complaints": 5},
        "duelbits.com": {"average_hours": 4, "complaints": 12},
        "rollbit.com": {"average_hours": 24, "complaints": 45},
        "shuffle.com": {"average_hours": 6, "complaints": 8},
        "roobet.com": {"average_hours": 12, "complaints": 25},
        "bc.game": {"average_hours": 3, "complaints": 10},
    },
    "bonus": {
        "stake.com": {"wagering_requirement": 40, "max_withdrawal": 10000, "restrictive": False},
        "duelbits.com": {"wagering_requirement": 50, "max_withdrawal": 5000, "restrictive": True},
        "shuffle.com": {"wagering_requirement": 0, "restrictive": False},
        "roobet.com": {"wagering_requirement": 0, "restrictive": False},
        "bc.game": {"wagering_requirement": 60, "max_withdrawal": 100000, "restrictive": True},
    },
    "compliance": {
        "stake.com": {
            "licensed": True,
            "jurisdiction": "Curacao",
            "license_number": "Antillephone N.V. (8048/JAZ)",
            "kyc_required": True,
            "reputation": "good",
        },
        "duelbits.com": {
            "licensed": True,
            "jurisdiction": "Curacao",
            "license_number": "Antillephone N.V.",
            "kyc_required": True,
            "reputation": "neutral",
        },
        "rollbit.com": {
            "licensed": True,
            "jurisdiction": "Curacao",
            "license_number": "Antillephone N.V.",
            "kyc_required": False,
            "reputation": "neutral",
        },
        "shuffle.com": {
            "licensed": True,
            "jurisdiction": "Curacao",
            "license_number": "Antillephone N.V.",
            "kyc_required": True,
            "reputation": "good",
        },
        "roobet.com": {
            "licensed": True,
            "jurisdiction": "Curacao",
            "license_number": "Antillephone N.V.",
            "kyc_required": False,
            "reputation": "neutral",
        },
        "bc.game": {
            "licensed": True,
            "jurisdiction": "Curacao",
            "license_number": "Antillephone N.V.",
            "kyc_required": True,
            "reputation": "neutral",
        },
    },
    "support": {
        "stake.com": {"sentiment": 0.55, "sample_size": 420, "response_hours": 1},
        "duelbits.com": {"sentiment": 0.2, "sample_size": 130, "response_hours": 6},
        "rollbit.com": {"sentiment": -0.25, "sample_size": 210, "response_hours": 18},
        "shuffle.com": {"sentiment": 0.4, "sample_size": 95, "response_hours": 3},
        "roobet.com": {"sentiment": -0.1, "sample_size": 160, "response_hours": 12},
        "bc.game": {"sentiment": 0.1, "sample_size": 240, "response_hours": 4},
    },
}

# Served for entities without curated data, at DEFAULT_FIXTURE_CONFIDENCE.
DEFAULT_FIXTURE_SIGNALS: dict[str, dict[str, Any]] = {
    "rtp": {"claimed_rtp": 96.0},
    "disclosure": {"rtp_published": False, "audit_report_present": False},
    "payout": {"average_hours": 48, "complaints": 0},
    "bonus": {"restrictive": False},
    "compliance": {"licensed": False, "kyc_required": True, "reputation": "neutral"},
    "support": {"sentiment": 0.0, "sample_size": 0},
}

DEFAULT_FIXTURE_CONFIDENCE = 0.3
