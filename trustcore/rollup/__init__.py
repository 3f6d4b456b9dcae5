"""Trust rollup (latest scores, board, update fan-out)."""

from trustcore.rollup.service import BoardEntry, TrustRollup

__all__ = ["BoardEntry", "TrustRollup"]
