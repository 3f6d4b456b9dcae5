"""Fixture adapter serving curated offline data."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from trustcore.config import SourceConfig
from trustcore.errors import SourceConfigError
from trustcore.sources.base import SourceAdapter
from trustcore.sources.fixture_data import (
    DEFAULT_FIXTURE_CONFIDENCE,
    DEFAULT_FIXTURE_SIGNALS,
    FIXTURE_SIGNALS,
)
from trustcore.types import SignalResult

logger = logging.getLogger(__name__)


class FixtureSourceAdapter(SourceAdapter):
    """Serves signals from an in-process table.

    Entities without curated data get the generic default payload at a low
    confidence, the same way an unconfigured upstream would.
    """

    def __init__(
        self,
        config: SourceConfig,
        signals: Mapping[str, Mapping[str, Mapping[str, Any]]] | None = None,
        defaults: Mapping[str, Mapping[str, Any]] | None = None,
        default_confidence: float = DEFAULT_FIXTURE_CONFIDENCE,
    ) -> None:
        super().__init__(config)
        self._signals = FIXTURE_SIGNALS if signals is None else signals
        self._defaults = DEFAULT_FIXTURE_SIGNALS if defaults is None else defaults
        self._default_confidence = default_confidence

    async def fetch(self, entity_id: str, signal_type: str, timeout: float) -> SignalResult:
        if signal_type not in self.signal_types:
            raise SourceConfigError(
                f"{self.source_id} does not serve '{signal_type}'",
                source_id=self.source_id,
            )

        payload = self._signals.get(signal_type, {}).get(entity_id)
        if payload is not None:
            payload = dict(payload)
            confidence = payload.pop("confidence", self.config.base_confidence)
            return self._make_result(entity_id, signal_type, payload, confidence)

        default = self._defaults.get(signal_type)
        if default is None:
            raise SourceConfigError(
                f"{self.source_id} has no fixture data for {entity_id}",
                source_id=self.source_id,
            )
        logger.debug(f"No curated {signal_type} data for {entity_id}, serving default fixture")
        return self._make_result(entity_id, signal_type, default, self._default_confidence)
