"""Notifications module."""

from trustcore.notifications.discord import DiscordClient
from trustcore.notifications.dispatcher import NotificationConfig, NotificationDispatcher

__all__ = [
    "DiscordClient",
    "NotificationConfig",
    "NotificationDispatcher",
]
