#!/usr/bin/env python3
"""
Pipeline runner CLI - load price files and query indicators.
Usage: python pipeline/run.py COMMAND [args]
"""

import os
import sys
import logging
import argparse
from contextlib import closing
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from analysis.analyzer import PriceAnalyzer, AnalysisError
from pipeline.load_prices_job import run_load_prices, LoadPricesConfig
from storage.connection import get_connection, get_db_path, StoreConnectionError
from storage.instrument_registry import list_instruments

# Load environment variables
load_dotenv()

INDICATORS = {
    'sma': ('SMA', PriceAnalyzer.compute_sma),
    'ema': ('EMA', PriceAnalyzer.compute_ema),
    'volatility': ('Volatility', PriceAnalyzer.compute_volatility),
}


def build_parser() -> argparse.ArgumentParser:
    """Argument parser with one subcommand per operation."""
    parser = argparse.ArgumentParser(
        description='Load daily price files and compute trailing-window indicators',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python pipeline/run.py load ./data/raw
  python pipeline/run.py load AAPL.csv MSFT.csv
  python pipeline/run.py list
  python pipeline/run.py sma aapl 30
  python pipeline/run.py analyze aapl 90
        """
    )
    parser.add_argument('--db-path',
                        default=None,
                        help='Path to SQLite database (default: $PRICE_DB_PATH or ./data/prices.db)')

    subparsers = parser.add_subparsers(dest='command', required=True)

    load_parser = subparsers.add_parser('load', help='Load CSV files or directories')
    load_parser.add_argument('sources', nargs='*', type=Path,
                             help='Files or directories (default: $PRICE_DATA_DIR)')

    subparsers.add_parser('list', help='List loaded instruments')

    for command in list(INDICATORS) + ['analyze']:
        command_parser = subparsers.add_parser(command, help=f'Compute {command} for an instrument')
        command_parser.add_argument('instrument', help='Instrument identifier (see list)')
        command_parser.add_argument('days', type=int, help='Trailing window in days')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    db_path = args.db_path or get_db_path()
    if db_path != ':memory:':
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    try:
        with closing(get_connection(db_path)) as conn:
            if args.command == 'load':
                return _run_load(conn, args.sources)
            if args.command == 'list':
                return _run_list(conn)
            if args.command == 'analyze':
                return _run_analyze(conn, args.instrument, args.days)
            return _run_indicator(conn, args.command, args.instrument, args.days)
    except StoreConnectionError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


def _run_load(conn, sources: List[Path]) -> int:
    result = run_load_prices(LoadPricesConfig(sources=sources), conn)

    print(f"Load status: {result['status'].upper()}")
    print(f"   Files found: {result['files_found']}")
    print(f"   Files loaded: {result['files_loaded']}")
    print(f"   Duration: {result['duration_seconds']:.1f}s")
    for instrument in result['instruments']:
        print(f"   + {instrument}")
    for error in result['errors']:
        print(f"   ! {error}")

    return 0 if result['status'] == 'completed' else 1


def _run_list(conn) -> int:
    instruments = list_instruments(conn)
    if not instruments:
        print("No instruments loaded")
        return 0

    for instrument in instruments:
        print(instrument)
    return 0


def _run_indicator(conn, command: str, instrument: str, days: int) -> int:
    label, compute = INDICATORS[command]
    value = compute(PriceAnalyzer(conn), instrument, days)
    print(f"{label} {instrument} ({days}d): {value:.4f}")
    return 0


def _run_analyze(conn, instrument: str, days: int) -> int:
    try:
        result = PriceAnalyzer(conn).analyze_instrument(instrument, days)
    except (ValueError, AnalysisError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if result is None:
        print(f"ERROR: Unknown instrument: {instrument}", file=sys.stderr)
        return 1

    print(f"Indicators for {instrument} ({days}d window)")
    print(f"   Window: {result['window_start']} to {result['window_end']}")
    print(f"   Observations: {result['observations']}")
    print(f"   SMA: {result['sma']:.4f}")
    print(f"   EMA: {result['ema']:.4f}")
    print(f"   Volatility: {result['volatility']:.4f}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
