"""Signal payload schemas and the signal cache."""

from trustcore.signals.cache import SignalCache, SingleFlight, cache_key, stale_confidence
from trustcore.signals.payloads import PAYLOAD_MODELS, parse_payload

__all__ = [
    "PAYLOAD_MODELS",
    "SignalCache",
    "SingleFlight",
    "cache_key",
    "parse_payload",
    "stale_confidence",
]
