"""Source adapter interface.

Each external signal source (review aggregators, licence registries, curated
fixtures) implements this interface. The collector calls ``fetch()`` and the
adapter handles transport, auth and mapping upstream fields onto the payload
schema of the requested signal type.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Mapping

from trustcore.config import SourceConfig
from trustcore.types import Provenance, SignalResult, SourceMode

logger = logging.getLogger(__name__)


class SourceAdapter(ABC):
    """Abstract base class for all signal source adapters."""

    def __init__(self, config: SourceConfig) -> None:
        self.config = config

    @property
    def source_id(self) -> str:
        return self.config.source_id

    @property
    def signal_types(self) -> tuple[str, ...]:
        return self.config.signal_types

    @property
    def mode(self) -> SourceMode:
        return self.config.mode

    @property
    def supports_caching(self) -> bool:
        return self.config.supports_caching

    @property
    def cost_per_call(self) -> float:
        return self.config.cost_per_call

    @property
    def force_fallback(self) -> bool:
        return self.config.force_fallback

    @abstractmethod
    async def fetch(self, entity_id: str, signal_type: str, timeout: float) -> SignalResult:
        """Fetch one signal for one entity.

        Raises:
            SourceTimeoutError: upstream did not answer in time (retried)
            SourceUnavailableError: rate limited, 5xx, network error (retried)
            SourceAuthError: credentials rejected (not retried, source degraded)
            SourceConfigError: request can never succeed as configured
            ExtractionFailure: upstream answered with an unusable body
        """

    async def close(self) -> None:
        """Release any open connections."""

    def _make_result(self, entity_id: str, signal_type: str, payload: Mapping[str, Any], confidence: float) -> SignalResult:
        return SignalResult(
            source_id=self.source_id,
            entity_id=entity_id,
            signal_type=signal_type,
            payload=dict(payload),
            confidence=max(0.0, min(float(confidence), 1.0)),
            fetched_at=datetime.now(timezone.utc),
            provenance=Provenance.LIVE,
        )
