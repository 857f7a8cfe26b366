"""
sync.corrector

Follower-side drift correction. Given where the follower should be
(target) and where it is (current), choose one of:

  seek     |diff| > seek_threshold: jump, leave speed alone
  in_sync  |diff| < speed_adjust_threshold: back to base speed
  adjust   otherwise: base speed +/- a bounded correction

The correction magnitude follows a piecewise-linear curve of |diff|
that is continuous and non-decreasing, so the speed never jumps
between neighbouring diffs and large gaps saturate at
max_speed_adjust instead of creeping towards the absolute bounds.
"""

from __future__ import annotations

import math
from bisect import bisect_right
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from common.config import MAX_SPEED, MIN_SPEED

SEEK = "seek"
IN_SYNC = "in_sync"
ADJUST = "adjust"


def clamp_speed(speed: float) -> float:
    return max(MIN_SPEED, min(MAX_SPEED, speed))


class CorrectionCurve:
    def __init__(self, points: Sequence[Tuple[float, float]], tail_slope: float):
        self.xs = [0.0] + [float(x) for x, _ in points]
        self.ys = [0.0] + [float(y) for _, y in points]
        self.tail_slope = float(tail_slope)

    @classmethod
    def from_settings(cls, settings):
        return cls(settings.curve_points, settings.correction_tail_slope)

    def __call__(self, abs_diff: float) -> float:
        if abs_diff <= 0:
            return 0.0
        if abs_diff >= self.xs[-1]:
            return self.ys[-1] + (abs_diff - self.xs[-1]) * self.tail_slope

        i = bisect_right(self.xs, abs_diff) - 1
        x0, x1 = self.xs[i], self.xs[i + 1]
        y0, y1 = self.ys[i], self.ys[i + 1]
        return y0 + (abs_diff - x0) * (y1 - y0) / (x1 - x0)


@dataclass(frozen=True)
class Correction:
    action: str
    diff: float
    target: float
    speed: Optional[float] = None
    base_speed: float = 1.0

    @property
    def percent(self) -> float:
        if self.speed is None or self.base_speed == 0:
            return 0.0
        return (self.speed / self.base_speed - 1.0) * 100.0

    @property
    def direction(self) -> str:
        if self.action == SEEK:
            return "HARD SEEK"
        if self.action == IN_SYNC:
            return "IN SYNC"
        return "BEHIND (speeding up)" if self.diff > 0 else "AHEAD (slowing down)"


def compute_correction(target, current, base_speed, settings, curve) -> Correction:
    """diff = target - current; positive means the follower is behind."""
    diff = target - current
    abs_diff = abs(diff)

    if abs_diff > settings.seek_threshold:
        return Correction(SEEK, diff, target, None, base_speed)

    if abs_diff < settings.speed_adjust_threshold:
        return Correction(IN_SYNC, diff, target, base_speed, base_speed)

    magnitude = min(curve(abs_diff), settings.max_speed_adjust)
    speed = clamp_speed(base_speed + math.copysign(magnitude, diff))
    return Correction(ADJUST, diff, target, speed, base_speed)


def format_offset(offset: float) -> str:
    if abs(offset) <= 0.001:
        return ""
    return f" | Offset: {format_ms(offset)}"


def format_ms(offset: float) -> str:
    return f"{math.floor(offset * 1000 + 0.5):+d}ms"
