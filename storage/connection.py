"""
Store handle - open and check SQLite connections.
The only place connections are created; everything else receives one.
"""

import os
import sqlite3
from typing import Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

DEFAULT_DB_PATH = './data/prices.db'


class StoreConnectionError(Exception):
    """Raised when the store cannot be reached or the handle is unusable."""
    pass


def get_db_path() -> str:
    """Database path from PRICE_DB_PATH, falling back to the default."""
    return os.getenv('PRICE_DB_PATH', DEFAULT_DB_PATH)


def get_connection(db_path: Optional[str] = None) -> sqlite3.Connection:
    """
    Get SQLite connection with proper configuration.

    Args:
        db_path: Path to SQLite database file (defaults to PRICE_DB_PATH)

    Returns:
        Configured SQLite connection

    Raises:
        StoreConnectionError: If the database cannot be opened
    """
    path = db_path or get_db_path()

    try:
        conn = sqlite3.connect(path)
        conn.execute("PRAGMA journal_mode = WAL")  # Readers don't block the loader
    except sqlite3.Error as e:
        raise StoreConnectionError(f"Cannot open database {path}: {str(e)}") from e

    return conn


def ensure_connection(conn: sqlite3.Connection) -> None:
    """
    Check that a handle can still run statements.

    Args:
        conn: SQLite connection

    Raises:
        StoreConnectionError: If the handle is closed or broken
    """
    if conn is None:
        raise StoreConnectionError("No database connection")

    try:
        conn.execute("SELECT 1").fetchone()
    except sqlite3.Error as e:
        raise StoreConnectionError(f"Database connection unusable: {str(e)}") from e
