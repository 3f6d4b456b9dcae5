"""Wires the trust pipeline together from a ``TrustConfig``.

Usage:
    service = TrustService(load_config())
    await service.start()
    ...
    await service.stop()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Optional

from trustcore.config import TrustConfig
from trustcore.events.bus import EventBus
from trustcore.events.types import SourceDegradedEvent
from trustcore.health.checker import HealthChecker
from trustcore.notifications.discord import DiscordClient
from trustcore.notifications.dispatcher import NotificationConfig, NotificationDispatcher
from trustcore.pipeline.cycle import CycleInProgressError, CycleRunner
from trustcore.pipeline.scheduler import CycleScheduler
from trustcore.rollup.service import TrustRollup
from trustcore.signals.cache import SignalCache
from trustcore.signals.collector import DegradedSource, SignalCollector
from trustcore.sources.base import SourceAdapter
from trustcore.sources.registry import build_adapters, close_adapters
from trustcore.storage.memory import InMemorySnapshotStore
from trustcore.storage.sql import SqlSnapshotStore

logger = logging.getLogger(__name__)


class TrustService:
    """Owns every long-lived pipeline component."""

    def __init__(
        self,
        config: TrustConfig,
        *,
        store: InMemorySnapshotStore | SqlSnapshotStore | None = None,
        adapters: Optional[Mapping[str, SourceAdapter]] = None,
        cache: Optional[SignalCache] = None,
        bus: Optional[EventBus] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ) -> None:
        self.config = config
        self.bus = bus or EventBus()

        if store is None:
            if config.database_url:
                store = SqlSnapshotStore(database_url=config.database_url)
            else:
                logger.warning("DATABASE_URL not configured, snapshots are kept in memory only")
                store = InMemorySnapshotStore()
        self.store = store

        self.cache = cache if cache is not None else SignalCache(directory=config.signal_cache_dir)
        self.adapters = dict(adapters) if adapters is not None else build_adapters(config)
        self.collector = SignalCollector(self.adapters, self.cache, config.collector, on_degraded=self._on_degraded)
        self.rollup = TrustRollup(self.store, self.bus)
        self.runner = CycleRunner(
            entities=config.entities,
            collector=self.collector,
            store=self.store,
            cycles=self.store,
            rollup=self.rollup,
            bus=self.bus,
            policy=config.scoring,
        )
        self.scheduler = CycleScheduler(self.runner, interval_seconds=config.cycle_interval_seconds)
        self.health = HealthChecker(
            store=self.store,
            collector=self.collector,
            runner=self.runner,
            cycle_interval_seconds=config.cycle_interval_seconds,
        )

        if dispatcher is None and config.discord_webhook_url:
            dispatcher = NotificationDispatcher(
                NotificationConfig(discord_enabled=True),
                DiscordClient(webhook_url=config.discord_webhook_url),
            )
        self.dispatcher = dispatcher
        self._manual_task: asyncio.Task | None = None

    def _on_degraded(self, degraded: DegradedSource) -> None:
        self.bus.publish(
            SourceDegradedEvent(
                source_id=degraded.source_id,
                reason=degraded.reason,
                error_type=degraded.error_type,
            )
        )

    def trigger_cycle(self) -> bool:
        """Start a manual cycle in the background. Returns False if one is already running."""
        if self.runner.is_running or (self._manual_task is not None and not self._manual_task.done()):
            return False
        self._manual_task = asyncio.create_task(self.runner.run_cycle("manual"))
        self._manual_task.add_done_callback(self._on_manual_done)
        return True

    @staticmethod
    def _on_manual_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if isinstance(exc, CycleInProgressError):
            logger.info("Manual cycle skipped: another cycle is running")
        elif exc is not None:
            logger.error(f"Manual cycle failed: {exc}", exc_info=exc)

    async def start(self, *, scheduler: Optional[bool] = None) -> None:
        if isinstance(self.store, SqlSnapshotStore):
            await asyncio.to_thread(self.store.ensure_schema)
        await self.rollup.start()

        if self.dispatcher is not None:
            self.dispatcher.start(self.bus)

        run_scheduler = self.config.scheduler_enabled if scheduler is None else scheduler
        if run_scheduler:
            self.scheduler.start()

        logger.info(
            f"Trust service started: {len(self.config.entities)} entities, "
            f"{len(self.adapters)} sources, store={type(self.store).__name__}"
        )

    async def stop(self) -> None:
        await self.scheduler.stop()
        self.runner.abort()
        if self._manual_task is not None and not self._manual_task.done():
            await asyncio.wait([self._manual_task])
        if self.dispatcher is not None:
            await self.dispatcher.stop()
        await close_adapters(self.adapters)
        if isinstance(self.store, SqlSnapshotStore):
            self.store.dispose()
        logger.info("Trust service stopped")
