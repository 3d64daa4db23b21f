"""
Volatility calculation utilities.
Pure functions for price dispersion around the window mean.
"""

import numpy as np
import math
from typing import Sequence


class VolatilityError(Exception):
    """Raised when volatility calculation fails."""
    pass


def price_volatility(closes: Sequence[float]) -> float:
    """
    Population standard deviation of close prices.

    Formula: σ = sqrt(mean((close_i - mean(close))^2))

    Args:
        closes: Close prices in the window

    Returns:
        Standard deviation in price units (0.0 for one price or a flat window)

    Raises:
        VolatilityError: If the window is empty or holds invalid values
    """
    if len(closes) == 0:
        raise VolatilityError("Insufficient data: window contains no prices")

    price_array = np.asarray(closes, dtype=np.float64)

    # Check for NaN or infinite values
    if np.any(np.isnan(price_array)):
        raise VolatilityError("NaN values not allowed in close prices")

    if np.any(np.isinf(price_array)):
        raise VolatilityError("Infinite values not allowed in close prices")

    # Population variance (ddof=0) around the same mean the SMA uses
    variance = np.mean((price_array - price_array.mean()) ** 2)

    return float(math.sqrt(variance))
