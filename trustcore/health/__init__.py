"""Health check module."""

from trustcore.health.checker import HealthChecker, HealthStatus

__all__ = ["HealthChecker", "HealthStatus"]
