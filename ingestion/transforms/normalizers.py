"""
Normalizers for transforming source rows to the stored shape.
Pure functions - no IO, network, or side effects.
Minimal normalization - only when necessary.
"""

import os
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, List, Tuple, Union

from dotenv import load_dotenv

from ingestion.transforms.validators import validate_instrument_name

# Load environment variables
load_dotenv()

STORAGE_DATE_FORMAT = '%Y-%m-%d'

_DISALLOWED_NAME_CHARS = re.compile(r'[^a-z0-9_]')


class DateFormatError(ValueError):
    """Raised when a source date does not match the expected format."""
    pass


def source_date_format() -> str:
    """Source date format, overridable through PRICE_DATE_FORMAT."""
    return os.getenv('PRICE_DATE_FORMAT', '%m/%d/%Y')


def normalize_date(raw_date: str, source_format: str = None) -> str:
    """
    Re-emit a source date (MM/DD/YYYY by default) as YYYY-MM-DD.

    Normalization justified: SQLite date arithmetic and ordering only work
    on ISO-8601 text.

    Args:
        raw_date: Date string as found in the source file
        source_format: strptime format of the source (defaults to env setting)

    Returns:
        ISO-8601 date string

    Raises:
        DateFormatError: If the string does not parse
    """
    fmt = source_format or source_date_format()

    try:
        parsed = datetime.strptime(str(raw_date).strip(), fmt)
    except ValueError as e:
        raise DateFormatError(f"Unparseable date {raw_date!r} (expected {fmt})") from e

    return parsed.strftime(STORAGE_DATE_FORMAT)


def normalize_price_row(raw: Dict[str, Any], source_format: str = None) -> Tuple:
    """
    Transform a raw source row into an insert tuple.

    Only the date is rewritten; Open/High/Low/Close/Volume are copied
    verbatim in column order.

    Args:
        raw: Raw row dictionary from the CSV adapter
        source_format: strptime format of the source date

    Returns:
        Tuple (Date, Open, High, Low, Close, Volume)
    """
    return (
        normalize_date(raw['Date'], source_format),
        raw['Open'],
        raw['High'],
        raw['Low'],
        raw['Close'],
        raw['Volume'],
    )


def normalize_price_rows(raw_rows: List[Dict[str, Any]], source_format: str = None) -> List[Tuple]:
    """
    Normalize all rows of one file into a single insert batch.

    Fails on the first bad row so that no partial batch is produced.

    Args:
        raw_rows: Raw rows in file order
        source_format: strptime format of the source date

    Returns:
        List of insert tuples in file order
    """
    if not raw_rows:
        return []

    return [normalize_price_row(raw, source_format) for raw in raw_rows]


def derive_table_name(source_file: Union[str, Path]) -> str:
    """
    Derive the instrument table name from a source file name.

    The base name is lower-cased and its last extension stripped; any
    character outside [a-z0-9_] then becomes '_' (e.g. 'BRK.B.csv' ->
    'brk_b'). The result must still pass the identifier allow-list.

    Args:
        source_file: Path to the source file

    Returns:
        Table name usable as a SQL identifier

    Raises:
        InstrumentNameError: If no safe identifier can be derived
    """
    file_name = Path(source_file).name.lower()

    if '.' in file_name:
        file_name = file_name[:file_name.rindex('.')]

    table_name = _DISALLOWED_NAME_CHARS.sub('_', file_name)
    validate_instrument_name(table_name)

    return table_name
