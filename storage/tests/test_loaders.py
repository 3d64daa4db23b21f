"""
Tests for loader functions - destructive, idempotent table reloads.
Uses in-memory SQLite for fast, isolated tests.
"""

import gc
import pytest
import sqlite3
import logging
import threading
import time
from pathlib import Path
from unittest.mock import patch

from ingestion.providers.csv_file_adapter import read_price_rows
from storage.loaders import (
    load_instrument,
    reset_instrument_table,
    insert_price_batch,
    _lock_for,
    _load_locks,
)
from storage.connection import StoreConnectionError


HEADER = 'Date,Open,High,Low,Close,Volume\n'

AAPL_ROWS = (
    '01/15/2024,185.25,186.80,184.50,185.92,65284300\n'
    '01/16/2024,186.10,187.45,185.80,187.11,58414500\n'
    '01/17/2024,187.20,188.00,186.40,187.50,49000000\n'
)


@pytest.fixture
def in_memory_db():
    """Create in-memory SQLite database for testing."""
    conn = sqlite3.connect(':memory:')
    yield conn
    conn.close()


@pytest.fixture
def aapl_csv(tmp_path):
    """Three-day AAPL source file."""
    source = tmp_path / 'AAPL.csv'
    source.write_text(HEADER + AAPL_ROWS)
    return source


def _all_rows(conn, table_name):
    return conn.execute(f'SELECT * FROM "{table_name}" ORDER BY Date').fetchall()


def _table_exists(conn, table_name):
    cursor = conn.execute(
        "SELECT COUNT(*) FROM sqlite_master WHERE type = 'table' AND name = ?",
        (table_name,)
    )
    return cursor.fetchone()[0] == 1


class TestLoadInstrument:
    """Tests for load_instrument function."""

    def test_load_creates_table(self, in_memory_db, aapl_csv):
        """Rows land in a table named after the file, dates normalized."""
        assert load_instrument(in_memory_db, aapl_csv) is True

        rows = _all_rows(in_memory_db, 'aapl')
        assert len(rows) == 3
        assert rows[0] == ('2024-01-15', 185.25, 186.80, 184.50, 185.92, 65284300.0)
        assert [row[0] for row in rows] == ['2024-01-15', '2024-01-16', '2024-01-17']

    def test_numeric_columns_stored_as_real(self, in_memory_db, aapl_csv):
        load_instrument(in_memory_db, aapl_csv)

        cursor = in_memory_db.execute(
            'SELECT DISTINCT typeof(Open), typeof(Close), typeof(Volume) FROM aapl'
        )
        assert cursor.fetchall() == [('real', 'real', 'real')]

    def test_load_idempotent(self, in_memory_db, aapl_csv):
        """Loading the same file twice yields the same table."""
        load_instrument(in_memory_db, aapl_csv)
        first = _all_rows(in_memory_db, 'aapl')

        load_instrument(in_memory_db, aapl_csv)
        second = _all_rows(in_memory_db, 'aapl')

        assert first == second
        assert len(second) == 3

    def test_reload_replaces_previous_content(self, in_memory_db, tmp_path, aapl_csv):
        """A reload never appends to the prior table."""
        load_instrument(in_memory_db, aapl_csv)

        newer = tmp_path / 'newer' / 'aapl.CSV'
        newer.parent.mkdir()
        newer.write_text(HEADER + '02/01/2024,190,191,189,190.5,1000\n')

        assert load_instrument(in_memory_db, newer) is True

        rows = _all_rows(in_memory_db, 'aapl')
        assert rows == [('2024-02-01', 190.0, 191.0, 189.0, 190.5, 1000.0)]

    def test_header_only_file_loads_empty_table(self, in_memory_db, tmp_path):
        source = tmp_path / 'spy.csv'
        source.write_text(HEADER)

        assert load_instrument(in_memory_db, source) is True
        assert _table_exists(in_memory_db, 'spy')
        assert _all_rows(in_memory_db, 'spy') == []

    def test_bad_date_leaves_empty_table(self, in_memory_db, tmp_path, aapl_csv, caplog):
        """A malformed row aborts the load; the stale table is gone."""
        load_instrument(in_memory_db, aapl_csv)

        broken = tmp_path / 'broken' / 'AAPL.csv'
        broken.parent.mkdir()
        broken.write_text(HEADER + '01/15/2024,1,1,1,1,1\n2024-01-16,1,1,1,1,1\n')

        with caplog.at_level(logging.ERROR, logger='storage.loaders'):
            assert load_instrument(in_memory_db, broken) is False

        assert _table_exists(in_memory_db, 'aapl')
        assert _all_rows(in_memory_db, 'aapl') == []
        assert 'Failed to load' in caplog.text

    def test_missing_file_leaves_empty_table(self, in_memory_db, tmp_path):
        assert load_instrument(in_memory_db, tmp_path / 'QQQ.csv') is False

        assert _all_rows(in_memory_db, 'qqq') == []

    def test_failure_does_not_touch_other_tables(self, in_memory_db, tmp_path, aapl_csv):
        load_instrument(in_memory_db, aapl_csv)

        bad = tmp_path / 'msft.csv'
        bad.write_text(HEADER + 'not-a-date,1,1,1,1,1\n')
        assert load_instrument(in_memory_db, bad) is False

        assert len(_all_rows(in_memory_db, 'aapl')) == 3

    def test_unsafe_name_rejected_before_ddl(self, in_memory_db, tmp_path, caplog):
        """A file whose name cannot be a safe identifier creates nothing."""
        source = tmp_path / '1810.csv'
        source.write_text(HEADER + AAPL_ROWS)

        with caplog.at_level(logging.ERROR, logger='storage.loaders'):
            assert load_instrument(in_memory_db, source) is False

        tables = in_memory_db.execute("SELECT name FROM sqlite_master").fetchall()
        assert tables == []
        assert 'Rejected source file' in caplog.text

    def test_dotted_ticker_name(self, in_memory_db, tmp_path):
        source = tmp_path / 'BRK.B.csv'
        source.write_text(HEADER + AAPL_ROWS)

        assert load_instrument(in_memory_db, source) is True
        assert _table_exists(in_memory_db, 'brk_b')

    def test_commit_mode_restored_after_success(self, in_memory_db, aapl_csv):
        in_memory_db.isolation_level = 'DEFERRED'

        load_instrument(in_memory_db, aapl_csv)

        assert in_memory_db.isolation_level == 'DEFERRED'
        assert not in_memory_db.in_transaction

    def test_commit_mode_restored_after_failure(self, in_memory_db, tmp_path):
        source = tmp_path / 'bad.csv'
        source.write_text(HEADER + 'xx,1,1,1,1,1\n')

        load_instrument(in_memory_db, source)

        assert in_memory_db.isolation_level == ''
        assert not in_memory_db.in_transaction

    def test_rows_visible_to_other_connections(self, tmp_path, aapl_csv):
        """The batch is committed, not left in an open transaction."""
        db_path = tmp_path / 'prices.db'
        writer = sqlite3.connect(str(db_path))
        reader = sqlite3.connect(str(db_path))
        try:
            load_instrument(writer, aapl_csv)
            count = reader.execute('SELECT COUNT(*) FROM aapl').fetchone()[0]
            assert count == 3
        finally:
            writer.close()
            reader.close()

    def test_closed_connection(self, aapl_csv):
        conn = sqlite3.connect(':memory:')
        conn.close()

        with pytest.raises(StoreConnectionError):
            load_instrument(conn, aapl_csv)


class TestInsertPriceBatch:
    """Tests for the single-transaction batch insert."""

    def test_batch_is_atomic(self, in_memory_db):
        """A failing row rolls back the rows before it."""
        in_memory_db.isolation_level = None
        in_memory_db.execute("""
            CREATE TABLE guarded (
                Date TEXT, Open REAL, High REAL, Low REAL,
                Close REAL CHECK (Close > 0), Volume REAL
            )
        """)
        rows = [
            ('2024-01-15', 1, 1, 1, 10.0, 100),
            ('2024-01-16', 1, 1, 1, -1.0, 100),
        ]

        with pytest.raises(sqlite3.IntegrityError):
            insert_price_batch(in_memory_db, 'guarded', rows)

        assert in_memory_db.execute('SELECT COUNT(*) FROM guarded').fetchone()[0] == 0
        assert not in_memory_db.in_transaction

    def test_empty_batch(self, in_memory_db):
        in_memory_db.isolation_level = None
        reset_instrument_table(in_memory_db, 'spy')

        assert insert_price_batch(in_memory_db, 'spy', []) == 0

    def test_returns_row_count(self, in_memory_db):
        in_memory_db.isolation_level = None
        reset_instrument_table(in_memory_db, 'spy')

        inserted = insert_price_batch(in_memory_db, 'spy', [
            ('2024-01-15', '1', '1', '1', '1', '1'),
            ('2024-01-16', '2', '2', '2', '2', '2'),
        ])

        assert inserted == 2


class TestLoadSerialization:
    """Loads of one identifier run one at a time; other identifiers proceed."""

    def test_same_identifier_waits(self, tmp_path, aapl_csv):
        db_path = str(tmp_path / 'prices.db')
        msft_csv = tmp_path / 'MSFT.csv'
        msft_csv.write_text(HEADER + AAPL_ROWS)

        calls = []
        first_entered = threading.Event()
        release = threading.Event()

        def blocking_read(source_file):
            calls.append(Path(source_file).name)
            if len(calls) == 1:
                first_entered.set()
                release.wait(timeout=5)
            return read_price_rows(source_file)

        results = {}

        def load(key, source_file):
            conn = sqlite3.connect(db_path, timeout=5)
            try:
                results[key] = load_instrument(conn, source_file)
            finally:
                conn.close()

        first = threading.Thread(target=load, args=('aapl-1', aapl_csv))
        second = threading.Thread(target=load, args=('aapl-2', aapl_csv))
        other = threading.Thread(target=load, args=('msft', msft_csv))

        with patch('storage.loaders.read_price_rows', side_effect=blocking_read):
            first.start()
            assert first_entered.wait(timeout=5)

            second.start()
            other.start()
            other.join(timeout=5)
            time.sleep(0.2)

            # Different identifier finished while the first AAPL load is held
            assert not other.is_alive()
            assert results['msft'] is True
            assert second.is_alive()
            assert calls == ['AAPL.csv', 'MSFT.csv']

            release.set()
            first.join(timeout=5)
            second.join(timeout=5)

        assert not first.is_alive() and not second.is_alive()
        assert results == {'aapl-1': True, 'aapl-2': True, 'msft': True}
        assert calls == ['AAPL.csv', 'MSFT.csv', 'AAPL.csv']

        conn = sqlite3.connect(db_path)
        try:
            assert len(_all_rows(conn, 'aapl')) == 3
            assert len(_all_rows(conn, 'msft')) == 3
        finally:
            conn.close()

    def test_lock_shared_per_identifier(self):
        lock = _lock_for('spy')

        assert _lock_for('spy') is lock
        assert _lock_for('qqq') is not lock

    def test_unused_lock_discarded(self):
        lock = _lock_for('iwm')
        assert 'iwm' in _load_locks

        del lock
        gc.collect()

        assert 'iwm' not in _load_locks
