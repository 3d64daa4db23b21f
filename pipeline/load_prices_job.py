"""
Load prices job - orchestrates ingestion of one or more price files.
Composes: Discover files → Load each into its instrument table → Summarize.
"""

import os
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, List
from dataclasses import dataclass, field

from dotenv import load_dotenv

from ingestion.transforms.normalizers import derive_table_name
from storage.loaders import load_instrument

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


@dataclass
class LoadPricesConfig:
    """Configuration for the load prices job."""
    sources: List[Path] = field(default_factory=list)
    pattern: str = '*.csv'

    def __post_init__(self):
        """Validate and set defaults."""
        # Default to the configured raw data directory
        if not self.sources:
            self.sources = [Path(os.getenv('PRICE_DATA_DIR', './data/raw'))]

        self.sources = [Path(source) for source in self.sources]

        if not self.pattern or not isinstance(self.pattern, str):
            raise ValueError("pattern must be non-empty string")

    def discover_files(self) -> List[Path]:
        """Expand directories to matching files; plain paths pass through."""
        files = []
        for source in self.sources:
            if source.is_dir():
                files.extend(sorted(source.glob(self.pattern)))
            else:
                files.append(source)
        return files


def run_load_prices(config: LoadPricesConfig, conn: sqlite3.Connection) -> Dict[str, Any]:
    """
    Run the load prices job.

    Each file replaces its own instrument table; a failing file never
    affects tables loaded from other files.

    Args:
        config: Job configuration
        conn: SQLite database connection

    Returns:
        Dictionary with job results and metrics

    Raises:
        StoreConnectionError: If the store becomes unusable
    """
    start_time = datetime.now()
    files = config.discover_files()

    result = {
        'status': 'running',
        'files_found': len(files),
        'files_loaded': 0,
        'files_failed': 0,
        'instruments': [],
        'errors': [],
        'duration_seconds': None
    }

    for source_file in files:
        if load_instrument(conn, source_file):
            result['files_loaded'] += 1
            result['instruments'].append(derive_table_name(source_file))
        else:
            result['files_failed'] += 1
            result['errors'].append(f"Failed to load {source_file}")

    result['status'] = _job_status(result['files_loaded'], result['files_failed'])
    result['duration_seconds'] = (datetime.now() - start_time).total_seconds()

    logger.info(
        f"Load prices job {result['status']}: "
        f"{result['files_loaded']}/{result['files_found']} files loaded"
    )

    return result


def _job_status(loaded: int, failed: int) -> str:
    """completed / partial / failed from per-file outcomes."""
    if loaded and not failed:
        return 'completed'
    if loaded:
        return 'partial'
    return 'failed'
