"""
Core validators for instrument identifiers and analysis inputs.
Pure functions - no IO, network, or side effects.
"""

import re
from typing import Any


MAX_INSTRUMENT_NAME_LENGTH = 64

_INSTRUMENT_NAME_PATTERN = re.compile(r'^[a-z_][a-z0-9_]*$')


class InstrumentNameError(ValueError):
    """Raised when a name is not a safe instrument identifier."""
    pass


class WindowError(ValueError):
    """Raised when a trailing window length is invalid."""
    pass


def validate_instrument_name(name: Any) -> None:
    """
    Validate a name against the identifier allow-list.

    Allowed: lower-case letters, digits and underscores, not starting with
    a digit, at most 64 characters, and never in SQLite's reserved
    'sqlite_' namespace.

    Args:
        name: Candidate table name

    Raises:
        InstrumentNameError: If validation fails
    """
    if not isinstance(name, str) or not name:
        raise InstrumentNameError("Instrument name must be non-empty string")

    if len(name) > MAX_INSTRUMENT_NAME_LENGTH:
        raise InstrumentNameError(
            f"Instrument name too long (max {MAX_INSTRUMENT_NAME_LENGTH} characters)"
        )

    if not _INSTRUMENT_NAME_PATTERN.match(name):
        raise InstrumentNameError(f"Instrument name contains invalid characters: {name!r}")

    if name.startswith('sqlite_'):
        raise InstrumentNameError(f"Instrument name uses reserved prefix: {name!r}")


def validate_window_days(days: Any) -> int:
    """
    Validate a trailing window length in calendar days.

    Args:
        days: Window length

    Returns:
        The window length as int

    Raises:
        WindowError: If days is not a positive integer
    """
    # bool is an int subclass
    if isinstance(days, bool) or not isinstance(days, int):
        raise WindowError(f"days must be integer, got {type(days).__name__}")

    if days <= 0:
        raise WindowError(f"days must be positive, got {days}")

    return days
