"""
Numeric helpers shared by the scoring code
"""
import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives (60.5 -> 61)"""
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float, high: float) -> float:
    """Bound value to [low, high]"""
    return max(low, min(high, value))
