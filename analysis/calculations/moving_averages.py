"""
Moving average utilities.
Pure functions over close prices in chronological order.
"""

from typing import List, Sequence


class MovingAverageError(Exception):
    """Raised when a moving average cannot be calculated."""
    pass


def ema_alpha(days: int) -> float:
    """
    Smoothing factor for an EMA over a window of `days`.

    Formula: alpha = 2 / (days + 1)
    """
    if days <= 0:
        raise MovingAverageError(f"days must be positive, got {days}")

    return 2.0 / (days + 1)


def simple_moving_average(closes: Sequence[float]) -> float:
    """
    Arithmetic mean of close prices.

    Args:
        closes: Close prices in the window

    Returns:
        Mean close price

    Raises:
        MovingAverageError: If the window is empty
    """
    if len(closes) == 0:
        raise MovingAverageError("Insufficient data: window contains no prices")

    return float(sum(closes)) / len(closes)


def ema_series(closes: Sequence[float], alpha: float) -> List[float]:
    """
    Full EMA sequence for chronologically ordered close prices.

    Seeded with the earliest close, then
    EMA[i] = alpha * close[i] + (1 - alpha) * EMA[i-1].

    Args:
        closes: Close prices, oldest first
        alpha: Smoothing factor in (0, 1]

    Returns:
        One EMA value per input price

    Raises:
        MovingAverageError: If the window is empty or alpha is out of range
    """
    if len(closes) == 0:
        raise MovingAverageError("Insufficient data: window contains no prices")

    if not 0 < alpha <= 1:
        raise MovingAverageError(f"alpha must be in (0, 1], got {alpha}")

    ema = float(closes[0])
    series = [ema]

    for close in closes[1:]:
        ema = alpha * float(close) + (1 - alpha) * ema
        series.append(ema)

    return series


def exponential_moving_average(closes: Sequence[float], days: int) -> float:
    """
    EMA value at the latest price of the window.

    Args:
        closes: Close prices, oldest first
        days: Window length used for the smoothing factor

    Returns:
        Last term of the EMA recurrence
    """
    return ema_series(closes, ema_alpha(days))[-1]
