"""Builds one adapter per configured source, with the mode fixed at startup."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from trustcore.config import TrustConfig
from trustcore.sources.base import SourceAdapter
from trustcore.sources.fixture import FixtureSourceAdapter
from trustcore.sources.http import HttpSourceAdapter
from trustcore.types import SourceMode

logger = logging.getLogger(__name__)


def build_adapters(
    config: TrustConfig,
    *,
    fixtures: Mapping[str, Mapping[str, Mapping[str, Any]]] | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> dict[str, SourceAdapter]:
    """Return ``source_id -> adapter`` for every configured source.

    Fallback-mode sources still get an adapter so they show up in health and
    provenance, but the collector never calls it.
    """
    display_names = {e.entity_id: e.display_name for e in config.entities}
    adapters: dict[str, SourceAdapter] = {}

    for source in config.sources:
        if source.mode is SourceMode.LIVE:
            adapter: SourceAdapter = HttpSourceAdapter(source, display_names=display_names, client=http_client)
        else:
            adapter = FixtureSourceAdapter(source, signals=fixtures)
        adapters[source.source_id] = adapter
        logger.info(f"Source {source.source_id} ({', '.join(source.signal_types)}): {source.mode.value}")

    return adapters


async def close_adapters(adapters: Mapping[str, SourceAdapter]) -> None:
    for adapter in adapters.values():
        await adapter.close()
