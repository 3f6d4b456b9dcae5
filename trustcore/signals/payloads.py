"""Payload schemas per signal type.

Adapters return loosely-typed JSON; the metric engine only ever reads payloads
through these models so a malformed payload surfaces as one
``ExtractionFailure`` instead of a crash deep inside a metric.
"""

from __future__ import annotations

from typing import Any, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from trustcore.errors import ExtractionFailure


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class RtpPayload(_Payload):
    """Disclosed (claimed) vs independently observed return-to-player, in percent."""

    claimed_rtp: Optional[float] = Field(None, gt=0, le=100)
    verified_rtp: Optional[float] = Field(None, ge=0, le=100)
    sample_size: Optional[int] = Field(None, ge=0)


class DisclosurePayload(_Payload):
    rtp_published: Optional[bool] = None
    audit_report_present: Optional[bool] = None
    fairness_policy_url: Optional[str] = None


class PayoutPayload(_Payload):
    average_hours: Optional[float] = Field(None, ge=0)
    complaints: Optional[int] = Field(None, ge=0)
    lookback_days: int = Field(30, gt=0)


class BonusPayload(_Payload):
    wagering_requirement: Optional[float] = Field(None, ge=0)
    max_withdrawal: Optional[float] = Field(None, ge=0)
    restrictive: Optional[bool] = None
    nerf_count: int = Field(0, ge=0)


class CompliancePayload(_Payload):
    licensed: Optional[bool] = None
    jurisdiction: Optional[str] = None
    license_number: Optional[str] = None
    kyc_required: Optional[bool] = None
    reputation: Optional[Literal["good", "neutral", "poor"]] = None


class SupportPayload(_Payload):
    sentiment: Optional[float] = Field(None, ge=-1, le=1)
    sample_size: Optional[int] = Field(None, ge=0)
    response_hours: Optional[float] = Field(None, ge=0)


PAYLOAD_MODELS: dict[str, type[_Payload]] = {
    "rtp": RtpPayload,
    "disclosure": DisclosurePayload,
    "payout": PayoutPayload,
    "bonus": BonusPayload,
    "compliance": CompliancePayload,
    "support": SupportPayload,
}


def parse_payload(signal_type: str, payload: Mapping[str, Any], *, source_id: str = "") -> _Payload:
    """Validate a raw payload against its signal schema.

    Raises:
        ExtractionFailure: unknown signal type or payload does not match the schema
    """
    model = PAYLOAD_MODELS.get(signal_type)
    if model is None:
        raise ExtractionFailure(f"unknown signal type '{signal_type}'", signal_type=signal_type, source_id=source_id)

    if not isinstance(payload, Mapping):
        raise ExtractionFailure(
            f"{signal_type} payload must be an object, got {type(payload).__name__}",
            signal_type=signal_type,
            source_id=source_id,
        )

    try:
        return model.model_validate(dict(payload))
    except ValidationError as exc:
        raise ExtractionFailure(
            f"malformed {signal_type} payload from {source_id or 'unknown source'}: {exc.error_count()} error(s)",
            signal_type=signal_type,
            source_id=source_id,
        ) from exc
