"""
CSV file adapter - read daily price history from tabular source files.
File IO allowed here, but minimal business logic.
"""

import pandas as pd
from pathlib import Path
from typing import Dict, Any, List, Union


PRICE_COLUMNS = ['Date', 'Open', 'High', 'Low', 'Close', 'Volume']


class CSVReadError(Exception):
    """Raised when a source file cannot be read as price history."""
    pass


def read_price_rows(source_file: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Read price rows from a CSV file with a header row.
    Returns raw rows in source format - no normalization.

    Every field is kept as the text found in the file, keyed by the
    canonical column names in file order (Date, Open, High, Low, Close,
    Volume). The header row itself is consumed and never returned.

    Args:
        source_file: Path to the CSV file

    Returns:
        List of raw price dictionaries, in file order

    Raises:
        CSVReadError: If the file is missing, unreadable or has the wrong shape
    """
    path = Path(source_file)

    try:
        # Text only; numeric coercion is left to the store
        data = pd.read_csv(path, dtype=str, keep_default_na=False)
    except pd.errors.EmptyDataError as e:
        raise CSVReadError(f"Source file is empty: {path}") from e
    except (OSError, UnicodeDecodeError, pd.errors.ParserError) as e:
        raise CSVReadError(f"Failed to read {path}: {str(e)}") from e

    if len(data.columns) != len(PRICE_COLUMNS):
        raise CSVReadError(
            f"Expected {len(PRICE_COLUMNS)} columns in {path.name}, "
            f"got {len(data.columns)}"
        )

    rows = []
    for values in data.itertuples(index=False, name=None):
        rows.append(dict(zip(PRICE_COLUMNS, values)))

    return rows
