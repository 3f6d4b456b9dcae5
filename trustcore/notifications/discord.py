"""Discord webhook client for trust alerts."""

from __future__ import annotations

import logging
import os
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

COLOR_MAP = {
    "green": 0x00FF00,
    "yellow": 0xFFFF00,
    "red": 0xFF0000,
}


class DiscordClient:
    """Async Discord webhook client."""

    def __init__(self, webhook_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        """Initialize Discord client.

        Args:
            webhook_url: Discord webhook URL. If not provided, reads from DISCORD_WEBHOOK_URL env var.
            client: Optional shared HTTP client (tests inject a mock transport here).
        """
        self.webhook_url = webhook_url or os.environ.get("DISCORD_WEBHOOK_URL")
        self._client = client

        if not self.webhook_url:
            logger.warning("DISCORD_WEBHOOK_URL not configured")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=10.0)
        return self._client

    async def _post(self, payload: dict, what: str) -> bool:
        if not self.webhook_url:
            logger.error(f"Cannot send Discord {what}: webhook URL not configured")
            return False

        try:
            response = await self._get_client().post(self.webhook_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error(f"Failed to send Discord {what}: {exc}")
            return False

        logger.info(f"Discord {what} sent successfully")
        return True

    async def send_alert(self, title: str, message: str, color: str = "yellow") -> bool:
        """Send a formatted alert as a Discord embed.

        Args:
            title: Alert title
            message: Alert message
            color: Alert color ("green", "yellow", "red")

        Returns:
            True if alert sent successfully
        """
        payload = {
            "embeds": [
                {
                    "title": title,
                    "description": message,
                    "color": COLOR_MAP.get(color, COLOR_MAP["yellow"]),
                }
            ]
        }
        return await self._post(payload, "alert")

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
