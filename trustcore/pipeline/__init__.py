"""Scoring cycle orchestration."""

from trustcore.pipeline.cycle import CycleInProgressError, CycleRunner
from trustcore.pipeline.scheduler import CycleScheduler

__all__ = ["CycleInProgressError", "CycleRunner", "CycleScheduler"]
