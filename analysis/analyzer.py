"""
Instrument analyzer - trailing-window indicators over loaded price tables.
Queries the store, calls pure calculation functions, never persists results.
"""

import logging
import sqlite3
import pandas as pd
from typing import Dict, Any, Optional, Tuple

from analysis.calculations.moving_averages import (
    simple_moving_average,
    exponential_moving_average,
)
from analysis.calculations.volatility import price_volatility, VolatilityError
from ingestion.transforms.validators import validate_window_days, WindowError
from storage.connection import StoreConnectionError
from storage.instrument_registry import is_valid_instrument

logger = logging.getLogger(__name__)

NEUTRAL_RESULT = 0.0


class AnalysisError(Exception):
    """Raised when a window cannot be read from the store."""
    pass


class PriceAnalyzer:
    """
    Computes SMA, EMA and volatility of Close over a trailing window.

    The window is anchored at the table's own latest date and spans
    [MAX(Date) - days, MAX(Date)], inclusive. Unknown instruments and
    store errors yield 0.0; a dead connection raises StoreConnectionError.
    """

    def __init__(self, conn: sqlite3.Connection):
        if conn is None:
            raise StoreConnectionError("No database connection")
        self.conn = conn

    def compute_sma(self, instrument: str, days: int) -> float:
        """Simple moving average of Close over the trailing window."""
        window = self._window_or_none(instrument, days)
        if window is None or window.empty:
            return NEUTRAL_RESULT

        return simple_moving_average(window['Close'].tolist())

    def compute_ema(self, instrument: str, days: int) -> float:
        """
        Exponential moving average at the latest date of the window.

        alpha = 2 / (days + 1), seeded with the earliest close in the window.
        """
        window = self._window_or_none(instrument, days)
        if window is None or window.empty:
            return NEUTRAL_RESULT

        return exponential_moving_average(window['Close'].tolist(), days)

    def compute_volatility(self, instrument: str, days: int) -> float:
        """Population standard deviation of Close over the trailing window."""
        window = self._window_or_none(instrument, days)
        if window is None or window.empty:
            return NEUTRAL_RESULT

        try:
            return price_volatility(window['Close'].tolist())
        except VolatilityError as e:
            logger.error(f"Volatility failed for {instrument}: {e}")
            return NEUTRAL_RESULT

    def analyze_instrument(self, instrument: str, days: int) -> Optional[Dict[str, Any]]:
        """
        All three indicators from a single window read.

        Unlike the compute_* methods, an unknown instrument is reported as
        None, so it cannot be confused with a genuine zero.

        Args:
            instrument: Instrument identifier
            days: Trailing window length in calendar days

        Returns:
            Dictionary with window bounds and indicator values, or None

        Raises:
            StoreConnectionError: If the store cannot be queried
            WindowError: If days is not a positive integer
            AnalysisError: If the window query fails
        """
        validate_window_days(days)

        if not is_valid_instrument(self.conn, instrument):
            return None

        bounds = self._window_bounds(instrument, days)
        window = self._fetch_window(instrument, bounds)
        closes = window['Close'].tolist()

        result = {
            'instrument': instrument,
            'days': days,
            'window_start': bounds[0],
            'window_end': bounds[1],
            'observations': len(closes),
            'sma': NEUTRAL_RESULT,
            'ema': NEUTRAL_RESULT,
            'volatility': NEUTRAL_RESULT,
        }

        if closes:
            result['sma'] = simple_moving_average(closes)
            result['ema'] = exponential_moving_average(closes, days)
            try:
                result['volatility'] = price_volatility(closes)
            except VolatilityError as e:
                logger.error(f"Volatility failed for {instrument}: {e}")

        return result

    def _window_or_none(self, instrument: str, days: int) -> Optional[pd.DataFrame]:
        """
        Validated window read with the permissive error policy.

        Returns None for bad input, unknown instruments and query errors.
        """
        try:
            validate_window_days(days)
        except WindowError as e:
            logger.warning(f"Invalid window for {instrument}: {e}")
            return None

        # Registry check must precede any query text containing the name
        if not is_valid_instrument(self.conn, instrument):
            logger.warning(f"Unknown instrument: {instrument!r}")
            return None

        try:
            return self._fetch_window(instrument, self._window_bounds(instrument, days))
        except AnalysisError as e:
            logger.error(f"Analysis query failed for {instrument}: {e}")
            return None

    def _window_bounds(self, instrument: str, days: int) -> Tuple[Optional[str], Optional[str]]:
        """
        (start, end) ISO dates of the trailing window; (None, None) for an empty table.

        A start beyond SQLite's date range falls back to the earliest stored date.
        """
        query = f'SELECT DATE(MAX(Date), ?), MAX(Date), MIN(Date) FROM "{instrument}"'

        try:
            row = self.conn.execute(query, (f'-{days} days',)).fetchone()
        except sqlite3.ProgrammingError as e:
            raise StoreConnectionError(f"Database connection unusable: {str(e)}") from e
        except sqlite3.DatabaseError as e:
            raise AnalysisError(str(e)) from e

        start, end, earliest = row
        if start is None and end is not None:
            start = earliest

        return (start, end)

    def _fetch_window(self, instrument: str, bounds: Tuple[Optional[str], Optional[str]]) -> pd.DataFrame:
        """
        Window rows ordered oldest first.

        Rows whose Close is not a finite number (e.g. blank or 1e400 in the
        source file) are left out.
        """
        start, end = bounds
        if start is None or end is None:
            return pd.DataFrame(columns=['Date', 'Close'])

        query = f"""
            SELECT Date, Close
            FROM "{instrument}"
            WHERE Date >= ? AND Date <= ?
              AND typeof(Close) IN ('real', 'integer')
              AND abs(Close) < 9e999
            ORDER BY Date ASC
        """

        try:
            return pd.read_sql_query(query, self.conn, params=(start, end))
        except sqlite3.ProgrammingError as e:
            raise StoreConnectionError(f"Database connection unusable: {str(e)}") from e
        except (sqlite3.DatabaseError, pd.errors.DatabaseError) as e:
            raise AnalysisError(str(e)) from e
