"""Alert dispatcher: turns bus events into operator notifications.

Watches the event bus for degraded sources and sharp trust drops and forwards
them to Discord. Notification failures are logged and never reach the
scoring pipeline.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Literal, Optional

from trustcore.events.bus import EventBus, Subscription
from trustcore.events.types import (
    SOURCE_DEGRADED,
    TRUST_UPDATED,
    SourceDegradedEvent,
    TrustEvent,
    TrustUpdatedEvent,
)
from trustcore.notifications.discord import DiscordClient

logger = logging.getLogger(__name__)

Severity = Literal["info", "warning", "error"]


@dataclass
class NotificationConfig:
    """Configuration for notification channels."""

    discord_enabled: bool = False
    drop_warning_points: float = 10.0
    drop_critical_points: float = 20.0


class NotificationDispatcher:
    """Routes trust alerts to the configured channels."""

    def __init__(self, config: Optional[NotificationConfig] = None, discord: Optional[DiscordClient] = None):
        self.config = config or NotificationConfig()
        self.discord = discord or DiscordClient()
        self._subscription: Subscription | None = None
        self._task: asyncio.Task | None = None
        self.sent = 0

    async def send_alert(self, title: str, message: str, severity: Severity = "info") -> dict[str, bool]:
        """Send an alert to every enabled channel.

        Returns:
            Dict mapping channel names to success status
        """
        results: dict[str, bool] = {}
        if not self.config.discord_enabled:
            return results

        color = {"info": "green", "warning": "yellow", "error": "red"}.get(severity, "yellow")
        try:
            success = await self.discord.send_alert(title=title, message=message, color=color)
        except Exception as exc:
            logger.error(f"Discord notification error: {exc.__class__.__name__}: {exc} | title='{title}'")
            success = False

        results["discord"] = success
        if success:
            self.sent += 1
        else:
            logger.warning(f"Discord notification failed: title='{title}'")
        return results

    async def handle_event(self, event: TrustEvent) -> Optional[dict[str, bool]]:
        if isinstance(event, SourceDegradedEvent):
            return await self.send_alert(
                f"⚠️ Source degraded: {event.source_id}",
                f"{event.error_type}: {event.reason}\nServing cached or fallback data until it recovers.",
                severity="warning",
            )

        if isinstance(event, TrustUpdatedEvent) and event.previous_overall is not None:
            delta = event.composite.overall - event.previous_overall
            if delta > -self.config.drop_warning_points:
                return None
            severity: Severity = "error" if delta <= -self.config.drop_critical_points else "warning"
            top = event.composite.rationale[0].reason if event.composite.rationale else "no rationale"
            return await self.send_alert(
                f"📉 Trust drop: {event.entity_id}",
                f"{event.previous_overall:.1f} → {event.composite.overall:.1f} ({delta:+.1f})\n{top}",
                severity=severity,
            )
        return None

    def start(self, bus: EventBus) -> None:
        """Consume bus events in a background task."""
        if self._task is not None:
            return
        self._subscription = bus.subscribe(event_types=(SOURCE_DEGRADED, TRUST_UPDATED))
        self._task = asyncio.create_task(self._run(self._subscription))

    async def _run(self, subscription: Subscription) -> None:
        while True:
            event = await subscription.get()
            try:
                await self.handle_event(event)
            except Exception:
                logger.exception(f"Failed to handle {event.event_type} notification")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        await self.discord.close()
