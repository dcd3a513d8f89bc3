"""
Crossover Detector
==================
Classifies the last step of a short/long moving-average pair:
- BULLISH (golden cross): short MA rises through the long MA
- BEARISH (death cross): short MA falls through the long MA
- NONE: no crossing between the two most recent points
"""

from enum import Enum
from typing import Sequence, Tuple


class CrossoverSignal(Enum):
    """Crossover classification"""
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NONE = "NONE"


def is_golden_cross(long_prev: float, long_cur: float, short_prev: float, short_cur: float) -> bool:
    """Short series overtakes the long series upward"""
    return long_prev > short_prev and short_cur > long_cur


def is_death_cross(long_prev: float, long_cur: float, short_prev: float, short_cur: float) -> bool:
    """Short series falls below the long series"""
    return long_prev < short_prev and short_cur < long_cur


def detect_crossover(
    long_prev: float,
    long_cur: float,
    short_prev: float,
    short_cur: float
) -> CrossoverSignal:
    """
    Classify one step of two moving-average series.

    Both predicates are evaluated on their own; they cannot both hold for
    the same inputs. NaN inputs never satisfy either comparison.

    Args:
        long_prev: Long-period MA at the previous step
        long_cur: Long-period MA at the current step
        short_prev: Short-period MA at the previous step
        short_cur: Short-period MA at the current step

    Returns:
        CrossoverSignal
    """
    if is_golden_cross(long_prev, long_cur, short_prev, short_cur):
        return CrossoverSignal.BULLISH
    if is_death_cross(long_prev, long_cur, short_prev, short_cur):
        return CrossoverSignal.BEARISH
    return CrossoverSignal.NONE


def last_two(series: Sequence[float]) -> Tuple[float, float]:
    """(previous, current) points of a series"""
    if len(series) < 2:
        raise ValueError(f"need at least 2 points, got {len(series)}")
    return float(series[-2]), float(series[-1])
