"""HTTP JSON source adapter (CasinoGuru, AskGamblers and similar review APIs)."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Mapping
from urllib.parse import quote

import httpx

from trustcore.config import SourceConfig
from trustcore.errors import (
    ExtractionFailure,
    SourceAuthError,
    SourceConfigError,
    SourceError,
    SourceTimeoutError,
    SourceUnavailableError,
    classify_http_error,
)
from trustcore.sources.base import SourceAdapter
from trustcore.types import SignalResult

logger = logging.getLogger(__name__)


class HttpSourceAdapter(SourceAdapter):
    """Fetches one JSON document per (entity, signal type) and maps its fields.

    ``config.path_template`` may reference ``{entity}``, ``{display_name}``
    and ``{signal_type}``. Upstream keys listed in ``config.field_map`` for the
    requested signal type are renamed to payload fields; everything else is
    dropped. A numeric ``config.confidence_field`` in the response overrides
    the base confidence.
    """

    def __init__(
        self,
        config: SourceConfig,
        *,
        display_names: Mapping[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(config)
        self._display_names = dict(display_names or {})
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            api_key = os.environ.get(self.config.api_key_env, "") if self.config.api_key_env else ""
            headers = {"Accept": "application/json"}
            if api_key:
                headers["Authorization"] = f"Bearer {api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.config.timeout_seconds),
            )
        return self._client

    def _build_path(self, entity_id: str, signal_type: str) -> str:
        display_name = self._display_names.get(entity_id, entity_id)
        try:
            return self.config.path_template.format(
                entity=quote(entity_id, safe=""),
                display_name=quote(display_name, safe=""),
                signal_type=signal_type,
            )
        except (KeyError, IndexError) as exc:
            raise SourceConfigError(
                f"invalid path template '{self.config.path_template}': {exc}",
                source_id=self.source_id,
            ) from exc

    async def fetch(self, entity_id: str, signal_type: str, timeout: float) -> SignalResult:
        if signal_type not in self.signal_types:
            raise SourceConfigError(f"{self.source_id} does not serve '{signal_type}'", source_id=self.source_id)
        if self.config.api_key_env and self._owns_client and not os.environ.get(self.config.api_key_env):
            raise SourceAuthError(f"{self.config.api_key_env} is not set", source_id=self.source_id)

        path = self._build_path(entity_id, signal_type)
        client = self._get_client()

        try:
            resp = await client.get(path, timeout=timeout)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise classify_http_error(
                e.response.status_code,
                f"GET {path} failed: {e.response.text[:200]}",
                source_id=self.source_id,
            ) from e
        except httpx.TimeoutException as e:
            raise SourceTimeoutError(f"GET {path} timed out: {e}", source_id=self.source_id) from e
        except httpx.NetworkError as e:
            raise SourceUnavailableError(f"GET {path} network error: {e}", source_id=self.source_id) from e
        except httpx.HTTPError as e:
            raise SourceError(f"GET {path} failed: {e}", source_id=self.source_id) from e

        try:
            data = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ExtractionFailure(
                f"{self.source_id} returned a non-JSON body for {entity_id}",
                signal_type=signal_type,
                source_id=self.source_id,
            ) from e
        if not isinstance(data, dict):
            raise ExtractionFailure(
                f"{self.source_id} returned {type(data).__name__}, expected an object",
                signal_type=signal_type,
                source_id=self.source_id,
            )

        payload = self._map_fields(signal_type, data)
        confidence: Any = data.get(self.config.confidence_field)
        if not isinstance(confidence, (int, float)) or isinstance(confidence, bool):
            confidence = self.config.base_confidence

        return self._make_result(entity_id, signal_type, payload, confidence)

    def _map_fields(self, signal_type: str, data: Mapping[str, Any]) -> dict[str, Any]:
        mapping = self.config.field_map.get(signal_type)
        if not mapping:
            return dict(data)
        return {target: data[source] for source, target in mapping.items() if source in data}

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
