"""Signal source adapters."""

from trustcore.sources.base import SourceAdapter
from trustcore.sources.fixture import FixtureSourceAdapter
from trustcore.sources.http import HttpSourceAdapter
from trustcore.sources.registry import build_adapters, close_adapters

__all__ = [
    "SourceAdapter",
    "FixtureSourceAdapter",
    "HttpSourceAdapter",
    "build_adapters",
    "close_adapters",
]
