"""Monotonic penalty curves used by the metric engine.

Every curve maps a "badness" measure (a deviation, a delay, a count) to a
0-100 score. Points are validated at definition time so a larger input can
never map to a higher score.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PenaltyCurve:
    """Piecewise-linear, monotonically non-increasing score curve.

    Inputs below the first point take the first score, inputs above the last
    point take the last score, everything in between is linearly interpolated.
    """

    name: str
    points: tuple[tuple[float, float], ...]

    def __post_init__(self) -> None:
        if len(self.points) < 2:
            raise ValueError(f"{self.name}: a curve needs at least two points")
        for (x0, y0), (x1, y1) in zip(self.points, self.points[1:]):
            if x1 <= x0:
                raise ValueError(f"{self.name}: x values must be strictly increasing")
            if y1 > y0:
                raise ValueError(f"{self.name}: scores must be non-increasing")
        for _, y in self.points:
            if not 0 <= y <= 100:
                raise ValueError(f"{self.name}: scores must be within 0-100")

    def __call__(self, x: float) -> float:
        first_x, first_y = self.points[0]
        if x <= first_x:
            return first_y

        for (x0, y0), (x1, y1) in zip(self.points, self.points[1:]):
            if x <= x1:
                return y0 + (y1 - y0) * (x - x0) / (x1 - x0)

        return self.points[-1][1]


# Relative deviation |observed - disclosed| / disclosed. Half a percent is
# treated as measurement noise.
RTP_DEVIATION_CURVE = PenaltyCurve(
    name="rtp_deviation",
    points=((0.0, 100.0), (0.005, 100.0), (0.02, 85.0), (0.05, 60.0), (0.10, 20.0), (0.15, 0.0)),
)

# Average withdrawal processing time in hours.
PAYOUT_HOURS_CURVE = PenaltyCurve(
    name="payout_hours",
    points=((6.0, 100.0), (24.0, 80.0), (48.0, 55.0), (96.0, 30.0), (168.0, 10.0)),
)

# Payout complaints per 30 days.
COMPLAINTS_CURVE = PenaltyCurve(
    name="payout_complaints",
    points=((0.0, 100.0), (5.0, 90.0), (10.0, 75.0), (20.0, 50.0), (50.0, 15.0), (100.0, 0.0)),
)

# Bonus wagering requirement multiplier (x times bonus).
WAGERING_CURVE = PenaltyCurve(
    name="wagering_requirement",
    points=((0.0, 100.0), (20.0, 85.0), (35.0, 70.0), (50.0, 45.0), (70.0, 20.0), (100.0, 0.0)),
)

# Median first response time of support, in hours.
RESPONSE_HOURS_CURVE = PenaltyCurve(
    name="support_response_hours",
    points=((1.0, 100.0), (4.0, 90.0), (12.0, 75.0), (24.0, 60.0), (72.0, 30.0), (168.0, 10.0)),
)
