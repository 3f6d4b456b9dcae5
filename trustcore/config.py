"""Runtime configuration for the trust pipeline.

Everything is read once at startup from environment variables, optionally
layered under a JSON file named by ``TRUST_CONFIG_FILE``. Precedence per
setting: environment > config file > code default.

Environment:
    DATABASE_URL                    SQL snapshot store (in-memory when unset). Do not log it.
    TRUST_CONFIG_FILE               optional JSON config file
    MONITORED_ENTITIES              comma-separated or JSON array of entity ids
    USE_MOCK_TRUST_DATA             "true" serves every source from fixtures
    CASINO_GURU_API_KEY             enables the live RTP source
    ASKGAMBLERS_API_KEY             enables the live payout/support source
    TRUST_FORCE_FALLBACK_SOURCES    comma-separated source ids forced to fallback
    TRUST_MAX_CONCURRENCY           global cap on in-flight source fetches
    TRUST_CYCLE_INTERVAL_SECONDS    scheduler period (default 6h)
    TRUST_SCHEDULER_ENABLED         "false" disables the periodic scheduler
    TRUST_SIGNAL_CACHE_DIR          directory persisting the signal cache
    DISCORD_WEBHOOK_URL             enables degraded-source alerts
    TRUST_LOG_LEVEL                 log level for the scripts (default INFO)
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping, Optional

from trustcore.scoring.composite import (
    LOW_CONFIDENCE_THRESHOLD,
    RATIONALE_BASELINE,
    RATIONALE_TOP_K,
    ScoringPolicy,
)
from trustcore.scoring.weights import build_weights
from trustcore.types import SIGNAL_TYPES, SourceBinding, SourceMode, TrackedEntity

logger = logging.getLogger(__name__)

DISPLAY_NAMES: dict[str, str] = {
    "stake.com": "Stake",
    "stake.us": "Stake US",
    "duelbits.com": "Duelbits",
    "rollbit.com": "Rollbit",
    "shuffle.com": "Shuffle",
    "roobet.com": "Roobet",
    "bc.game": "BC.Game",
}

DEFAULT_ENTITIES: tuple[str, ...] = ("stake.com", "duelbits.com", "rollbit.com", "roobet.com", "bc.game")

DEFAULT_CYCLE_INTERVAL_SECONDS = 6 * 60 * 60
DEFAULT_TTL_SECONDS = 6 * 60 * 60

_TRUE = ("1", "true", "yes", "on")


class ConfigError(ValueError):
    """Invalid trust configuration. Raised at startup only."""


@dataclass(frozen=True)
class SourceConfig:
    """Configuration for one signal source."""

    source_id: str
    signal_types: tuple[str, ...]
    mode: SourceMode = SourceMode.FIXTURE
    base_url: str = ""
    path_template: str = "/{entity}/{signal_type}"
    api_key_env: str = ""  # e.g. "CASINO_GURU_API_KEY"
    # signal type -> {upstream field: payload field}
    field_map: Mapping[str, Mapping[str, str]] = field(default_factory=dict)
    confidence_field: str = "confidence"
    base_confidence: float = 0.6
    timeout_seconds: float = 5.0
    max_retries: int = 2
    ttl_seconds: float = DEFAULT_TTL_SECONDS
    cost_per_call: float = 0.0
    supports_caching: bool = True
    force_fallback: bool = False


@dataclass(frozen=True)
class CollectorConfig:
    max_concurrency: int = 4
    base_retry_delay: float = 1.0
    max_retry_delay: float = 10.0
    retry_jitter: bool = True
    fallback_confidence: float = 0.1


@dataclass(frozen=True)
class TrustConfig:
    entities: tuple[TrackedEntity, ...]
    sources: tuple[SourceConfig, ...]
    collector: CollectorConfig = field(default_factory=CollectorConfig)
    scoring: ScoringPolicy = field(default_factory=ScoringPolicy)
    database_url: Optional[str] = None
    cycle_interval_seconds: float = DEFAULT_CYCLE_INTERVAL_SECONDS
    scheduler_enabled: bool = True
    signal_cache_dir: Optional[Path] = None
    discord_webhook_url: Optional[str] = None

    def source(self, source_id: str) -> SourceConfig:
        for source in self.sources:
            if source.source_id == source_id:
                return source
        raise KeyError(source_id)


def default_sources() -> tuple[SourceConfig, ...]:
    """Built-in sources. Modes are resolved later by ``load_config``."""
    return (
        SourceConfig(
            source_id="casinoguru",
            signal_types=("rtp",),
            mode=SourceMode.LIVE,
            base_url="https://api.casino.guru/v1",
            path_template="/casinos/{display_name}/rtp",
            api_key_env="CASINO_GURU_API_KEY",
            field_map={"rtp": {"claimedRtp": "claimed_rtp", "verifiedRtp": "verified_rtp", "sampleSize": "sample_size"}},
            base_confidence=0.8,
            cost_per_call=0.01,
        ),
        SourceConfig(
            source_id="askgamblers",
            signal_types=("payout", "support"),
            mode=SourceMode.LIVE,
            base_url="https://api.askgamblers.com/v1",
            path_template="/casinos/{display_name}/reviews",
            api_key_env="ASKGAMBLERS_API_KEY",
            field_map={
                "payout": {"avgWithdrawalTime": "average_hours", "complaintCount": "complaints"},
                "support": {
                    "sentimentScore": "sentiment",
                    "reviewCount": "sample_size",
                    "supportResponseHours": "response_hours",
                },
            },
            base_confidence=0.7,
            cost_per_call=0.01,
        ),
        SourceConfig(source_id="bonus_terms", signal_types=("bonus",), base_confidence=0.6),
        SourceConfig(source_id="license_registry", signal_types=("compliance",), base_confidence=0.7),
        SourceConfig(source_id="disclosures", signal_types=("disclosure",), base_confidence=0.6),
    )


def _split_list(raw: str) -> list[str]:
    raw = raw.strip()
    if not raw:
        return []
    if raw.startswith("["):
        try:
            values = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"invalid JSON list: {exc}") from exc
        return [str(v).strip() for v in values if str(v).strip()]
    return [part.strip() for part in raw.split(",") if part.strip()]


def _number(raw: Any, kind: type, name: str) -> Any:
    try:
        return kind(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def _read_file(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"cannot read trust config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"trust config {path} must contain a JSON object")
    return data


def _source_from_dict(data: Mapping[str, Any], base: SourceConfig | None) -> SourceConfig:
    values: dict[str, Any] = dict(data)
    if "signal_types" in values:
        values["signal_types"] = tuple(values["signal_types"])
        unknown = set(values["signal_types"]) - set(SIGNAL_TYPES)
        if unknown:
            raise ConfigError(f"source {values.get('source_id')}: unknown signal types {sorted(unknown)}")
    if "mode" in values:
        values["mode"] = SourceMode(values["mode"])
    try:
        if base is not None:
            return replace(base, **values)
        return SourceConfig(**values)
    except TypeError as exc:
        raise ConfigError(f"invalid source config {data.get('source_id')}: {exc}") from exc


def _resolve_mode(source: SourceConfig, env: Mapping[str, str], *, use_mock: bool, forced: set[str]) -> SourceConfig:
    if source.source_id in forced:
        return replace(source, mode=SourceMode.FALLBACK, force_fallback=True)
    if source.force_fallback or source.mode is SourceMode.FALLBACK:
        return replace(source, mode=SourceMode.FALLBACK, force_fallback=True)
    if source.mode is SourceMode.LIVE:
        if use_mock:
            return replace(source, mode=SourceMode.FIXTURE)
        if source.api_key_env and not env.get(source.api_key_env, "").strip():
            logger.info(f"Source {source.source_id}: {source.api_key_env} not set, serving fixture data")
            return replace(source, mode=SourceMode.FIXTURE)
    return source


def _build_entities(
    raw_entities: list[Any],
    sources: tuple[SourceConfig, ...],
) -> tuple[TrackedEntity, ...]:
    by_id = {s.source_id: s for s in sources}
    entities: list[TrackedEntity] = []
    seen: set[str] = set()

    for item in raw_entities:
        if isinstance(item, str):
            item = {"entity_id": item}
        if not isinstance(item, Mapping) or not item.get("entity_id"):
            raise ConfigError(f"invalid entity entry: {item!r}")

        entity_id = str(item["entity_id"]).strip().lower()
        if entity_id in seen:
            continue
        seen.add(entity_id)

        source_ids = item.get("sources") or list(by_id)
        bindings: list[SourceBinding] = []
        for source_id in source_ids:
            source = by_id.get(source_id)
            if source is None:
                raise ConfigError(f"entity {entity_id}: unknown source '{source_id}'")
            bindings.extend(SourceBinding(source_id=source_id, signal_type=t) for t in source.signal_types)

        entities.append(
            TrackedEntity(
                entity_id=entity_id,
                display_name=str(item.get("display_name") or DISPLAY_NAMES.get(entity_id, entity_id)),
                bindings=tuple(bindings),
            )
        )
    return tuple(entities)


def load_config(env: Mapping[str, str] | None = None, path: Path | None = None) -> TrustConfig:
    """Build the trust config from the environment and optional JSON file.

    Raises:
        ConfigError: invalid file contents, unknown sources or weights
    """
    env = os.environ if env is None else env

    file_path = path
    if file_path is None and env.get("TRUST_CONFIG_FILE"):
        file_path = Path(env["TRUST_CONFIG_FILE"])
    data = _read_file(file_path) if file_path is not None else {}

    # Sources: defaults, overridden or extended by id from the file.
    sources = {s.source_id: s for s in default_sources()}
    for item in data.get("sources", []):
        if not isinstance(item, Mapping) or not item.get("source_id"):
            raise ConfigError(f"invalid source entry: {item!r}")
        sources[item["source_id"]] = _source_from_dict(item, sources.get(item["source_id"]))

    use_mock = env.get("USE_MOCK_TRUST_DATA", "").lower() in _TRUE or bool(data.get("use_mock_data"))
    forced = set(_split_list(env.get("TRUST_FORCE_FALLBACK_SOURCES", "")))
    resolved = tuple(_resolve_mode(s, env, use_mock=use_mock, forced=forced) for s in sources.values())

    # Entities: env > file > defaults.
    raw_entities: list[Any]
    if env.get("MONITORED_ENTITIES", "").strip():
        raw_entities = list(_split_list(env["MONITORED_ENTITIES"]))
    elif data.get("entities"):
        raw_entities = list(data["entities"])
    else:
        raw_entities = list(DEFAULT_ENTITIES)
    entities = _build_entities(raw_entities, resolved)

    collector_data = dict(data.get("collector", {}))
    if env.get("TRUST_MAX_CONCURRENCY"):
        collector_data["max_concurrency"] = _number(env["TRUST_MAX_CONCURRENCY"], int, "TRUST_MAX_CONCURRENCY")
    try:
        collector = CollectorConfig(**collector_data)
    except TypeError as exc:
        raise ConfigError(f"invalid collector config: {exc}") from exc
    if collector.max_concurrency < 1:
        raise ConfigError("max_concurrency must be >= 1")

    scoring_data = data.get("scoring", {})
    try:
        weights = build_weights(
            categories=scoring_data.get("category_weights"),
            metrics=scoring_data.get("metric_weights"),
        )
    except ValueError as exc:
        raise ConfigError(f"invalid scoring weights: {exc}") from exc
    scoring = ScoringPolicy(
        weights=weights,
        low_confidence_threshold=float(scoring_data.get("low_confidence_threshold", LOW_CONFIDENCE_THRESHOLD)),
        rationale_top_k=int(scoring_data.get("rationale_top_k", RATIONALE_TOP_K)),
        rationale_baseline=float(scoring_data.get("rationale_baseline", RATIONALE_BASELINE)),
    )

    interval = _number(
        env.get("TRUST_CYCLE_INTERVAL_SECONDS") or data.get("cycle_interval_seconds") or DEFAULT_CYCLE_INTERVAL_SECONDS,
        float,
        "cycle interval",
    )
    if interval <= 0:
        raise ConfigError("cycle interval must be > 0")

    scheduler_raw = env.get("TRUST_SCHEDULER_ENABLED")
    scheduler_enabled = (
        scheduler_raw.lower() in _TRUE if scheduler_raw is not None else bool(data.get("scheduler_enabled", True))
    )

    cache_dir = env.get("TRUST_SIGNAL_CACHE_DIR") or data.get("signal_cache_dir")

    return TrustConfig(
        entities=entities,
        sources=resolved,
        collector=collector,
        scoring=scoring,
        database_url=env.get("DATABASE_URL") or data.get("database_url") or None,
        cycle_interval_seconds=interval,
        scheduler_enabled=scheduler_enabled,
        signal_cache_dir=Path(cache_dir) if cache_dir else None,
        discord_webhook_url=env.get("DISCORD_WEBHOOK_URL") or None,
    )
