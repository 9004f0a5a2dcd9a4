"""
Traffic Storage Module

This module provides SQLite-based storage for V2Ray/Xray traffic counters.
Handles database initialization, connection registration, atomic recording
of polling cycles, hourly aggregation and connection listing.

Schema:
    conn  (id, type, name)                          UNIQUE (type, name)
    stats (id, conn_id, timestamp, traffic, direction)
          conn_id -> conn.id ON DELETE/UPDATE CASCADE
"""

import logging
import os
import sqlite3
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from config import HOURLY_BUCKET_OFFSET_HOURS
from logger import get_logger
from stat_keys import (
    ConnectionType,
    ConnInfo,
    RawCounter,
    TrafficDirection,
    parse_stat_key,
)

# RowDiagnostic kinds
MALFORMED_KEY = 'malformed_key'
STORAGE_ERROR = 'storage_error'

SCHEMA_STATEMENTS = [
    '''
    CREATE TABLE IF NOT EXISTS conn (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        type INTEGER NOT NULL,
        name TEXT NOT NULL,
        UNIQUE (type, name)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS stats (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        conn_id INTEGER NOT NULL,
        timestamp INTEGER NOT NULL,
        traffic INTEGER NOT NULL CHECK (traffic >= 0),
        direction INTEGER NOT NULL,
        FOREIGN KEY (conn_id) REFERENCES conn (id)
            ON DELETE CASCADE
            ON UPDATE CASCADE
    )
    ''',
    'CREATE INDEX IF NOT EXISTS idx_conn_id ON stats (conn_id)',
    'CREATE INDEX IF NOT EXISTS idx_timestamp ON stats (timestamp)',
]


class StorageError(Exception):
    """Raised when a storage transaction or query fails as a whole."""


@dataclass(frozen=True)
class TrafficSample:
    conn: ConnInfo
    conn_id: int
    timestamp: int
    traffic: int
    direction: TrafficDirection


@dataclass(frozen=True)
class RowDiagnostic:
    """Why a single counter of a batch was not recorded."""
    key: str
    kind: str
    message: str


@dataclass
class RecordResult:
    """Outcome of one polling cycle: accepted samples plus skipped rows."""
    timestamp: int
    samples: List[TrafficSample] = field(default_factory=list)
    diagnostics: List[RowDiagnostic] = field(default_factory=list)

    @property
    def accepted(self) -> int:
        return len(self.samples)


@dataclass(frozen=True)
class HourlyTraffic:
    time: str
    downlink: int
    uplink: int

    def to_dict(self) -> Dict:
        return {'time': self.time, 'downlink': self.downlink, 'uplink': self.uplink}


class TrafficStorage:
    """SQLite-based storage for per-connection traffic samples."""

    def __init__(self, db_path: str, logger: Optional[logging.Logger] = None):
        """
        Initialize traffic storage and create the schema if needed.

        Args:
            db_path: Path to SQLite database file
            logger: Logger to use (defaults to the application logger)

        Raises:
            StorageError: If the database cannot be opened or initialized
        """
        self.db_path = db_path
        self.logger = logger or get_logger()
        self.logger.debug("Initializing TrafficStorage with database: %s", db_path)
        self._init_database()

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode: transactions are opened explicitly with BEGIN
        conn = sqlite3.connect(self.db_path, isolation_level=None)
        conn.execute('PRAGMA foreign_keys = ON')
        return conn

    def _commit(self, conn: sqlite3.Connection):
        conn.execute('COMMIT')

    def _rollback(self, conn: sqlite3.Connection):
        if not conn.in_transaction:
            return
        try:
            conn.execute('ROLLBACK')
        except sqlite3.Error as e:
            self.logger.error("Failed to roll back transaction: %s", e)

    def _init_database(self):
        """Create database schema if it doesn't exist."""
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database {self.db_path}: {e}") from e

        try:
            for stmt in SCHEMA_STATEMENTS:
                conn.execute(stmt)
            self.logger.debug("Database schema ready")
        except sqlite3.Error as e:
            raise StorageError(f"Failed to initialize database schema: {e}") from e
        finally:
            conn.close()

    def ensure_connection(self, cursor: sqlite3.Cursor, conn: ConnInfo) -> int:
        """
        Return the id of a connection, creating the row on first sight.

        Runs inside the caller's transaction. Uses INSERT OR IGNORE followed
        by a lookup so it works on SQLite builds without RETURNING.

        Args:
            cursor: Cursor of an open transaction
            conn: Connection identity

        Returns:
            Internal connection id

        Raises:
            sqlite3.Error: If the insert or lookup fails
        """
        cursor.execute(
            'INSERT OR IGNORE INTO conn (type, name) VALUES (?, ?)',
            (int(conn.type), conn.name)
        )
        cursor.execute(
            'SELECT id FROM conn WHERE type = ? AND name = ?',
            (int(conn.type), conn.name)
        )
        row = cursor.fetchone()
        if row is None:
            raise sqlite3.DatabaseError(f"conn row for {conn} missing after insert")
        return row[0]

    def ensure(self, conn: ConnInfo) -> int:
        """
        Register a connection in its own transaction.

        Returns:
            Internal connection id

        Raises:
            StorageError: If the transaction fails
        """
        try:
            db = self._connect()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database {self.db_path}: {e}") from e

        try:
            cursor = db.cursor()
            cursor.execute('BEGIN')
            conn_id = self.ensure_connection(cursor, conn)
            self._commit(db)
            return conn_id
        except sqlite3.Error as e:
            self._rollback(db)
            raise StorageError(f"Failed to register connection {conn}: {e}") from e
        finally:
            db.close()

    def record_samples(self, timestamp: int, counters: Iterable[RawCounter]) -> RecordResult:
        """
        Record one polling cycle atomically.

        Every counter is processed in order inside a single transaction.
        Unrecognized keys and rows that fail to store are skipped and
        reported as diagnostics; each row runs in its own savepoint so a
        failed row leaves nothing behind. The batch is committed once.

        Args:
            timestamp: Epoch seconds stamped on every sample of the batch
            counters: Counters returned by one reset-read of the stats API

        Returns:
            RecordResult with accepted samples and per-row diagnostics

        Raises:
            StorageError: If the transaction cannot be opened or committed;
                nothing from the batch is kept in that case
        """
        result = RecordResult(timestamp=timestamp)

        try:
            db = self._connect()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database {self.db_path}: {e}") from e

        try:
            cursor = db.cursor()
            cursor.execute('BEGIN')

            for counter in counters:
                parsed = parse_stat_key(counter.name)
                if parsed is None:
                    result.diagnostics.append(
                        RowDiagnostic(counter.name, MALFORMED_KEY, "unrecognized stat key")
                    )
                    continue

                cursor.execute('SAVEPOINT stat_row')
                try:
                    conn_id = self.ensure_connection(cursor, parsed.conn)
                    cursor.execute(
                        '''
                        INSERT INTO stats (conn_id, timestamp, traffic, direction)
                        VALUES (?, ?, ?, ?)
                        ''',
                        (conn_id, timestamp, counter.value, int(parsed.direction))
                    )
                except (sqlite3.Error, OverflowError) as e:
                    cursor.execute('ROLLBACK TO SAVEPOINT stat_row')
                    cursor.execute('RELEASE SAVEPOINT stat_row')
                    result.diagnostics.append(RowDiagnostic(counter.name, STORAGE_ERROR, str(e)))
                    continue

                cursor.execute('RELEASE SAVEPOINT stat_row')
                result.samples.append(
                    TrafficSample(parsed.conn, conn_id, timestamp, counter.value, parsed.direction)
                )

            self._commit(db)

        except sqlite3.Error as e:
            self._rollback(db)
            raise StorageError(f"Failed to record stats batch: {e}") from e
        finally:
            db.close()

        self.logger.debug("Committed batch at %d: %d samples, %d skipped",
                          timestamp, result.accepted, len(result.diagnostics))
        return result

    def list_connections(self) -> List[ConnInfo]:
        """
        List every known connection identity.

        Returns:
            List of ConnInfo, one per (type, name), unordered

        Raises:
            StorageError: If the query fails
        """
        try:
            db = self._connect()
            try:
                rows = db.execute('SELECT type, name FROM conn').fetchall()
            finally:
                db.close()
        except sqlite3.Error as e:
            self.logger.error("Failed to query connections: %s", e)
            raise StorageError(f"Failed to query connections: {e}") from e

        conns = []
        for conn_type, name in rows:
            try:
                conns.append(ConnInfo(ConnectionType(conn_type), name))
            except ValueError:
                self.logger.warning("Skipping connection %r with unknown type %r", name, conn_type)
        return conns

    def query_stats_hourly(self, conn: ConnInfo, offset_hours: Optional[int] = None) -> List[HourlyTraffic]:
        """
        Sum a connection's traffic per hour.

        Hours are computed from the UTC timestamp shifted by a fixed offset.
        Hours without samples are not returned.

        Args:
            conn: Connection identity
            offset_hours: Bucket offset from UTC (default HOURLY_BUCKET_OFFSET_HOURS)

        Returns:
            List of HourlyTraffic ordered by hour

        Raises:
            StorageError: If the query fails
        """
        if offset_hours is None:
            offset_hours = HOURLY_BUCKET_OFFSET_HOURS
        modifier = '%+d hours' % int(offset_hours)

        try:
            db = self._connect()
            try:
                rows = db.execute('''
                    SELECT
                        strftime('%Y-%m-%d %H:00:00', datetime(s.timestamp, 'unixepoch', ?)) AS time,
                        SUM(CASE WHEN s.direction = ? THEN s.traffic ELSE 0 END) AS downlink,
                        SUM(CASE WHEN s.direction = ? THEN s.traffic ELSE 0 END) AS uplink
                    FROM stats s
                    JOIN conn c ON s.conn_id = c.id
                    WHERE c.type = ? AND c.name = ?
                    GROUP BY time
                    ORDER BY time
                ''', (
                    modifier,
                    int(TrafficDirection.DOWNLINK),
                    int(TrafficDirection.UPLINK),
                    int(conn.type),
                    conn.name,
                )).fetchall()
            finally:
                db.close()
        except sqlite3.Error as e:
            self.logger.error("Failed to query hourly stats for %s: %s", conn, e)
            raise StorageError(f"Failed to query hourly stats for {conn}: {e}") from e

        self.logger.debug("Retrieved %d hourly buckets for %s", len(rows), conn)
        return [HourlyTraffic(time, downlink, uplink) for time, downlink, uplink in rows]

    def get_storage_stats(self) -> Dict:
        """
        Get database statistics.

        Returns:
            Dictionary with connection and sample counts, time span and size

        Raises:
            StorageError: If the query fails
        """
        try:
            db = self._connect()
            try:
                conn_count = db.execute('SELECT COUNT(*) FROM conn').fetchone()[0]
                sample_count, oldest, newest = db.execute(
                    'SELECT COUNT(*), MIN(timestamp), MAX(timestamp) FROM stats'
                ).fetchone()
            finally:
                db.close()
        except sqlite3.Error as e:
            self.logger.error("Failed to get storage stats: %s", e)
            raise StorageError(f"Failed to get storage stats: {e}") from e

        db_size = os.path.getsize(self.db_path) if os.path.exists(self.db_path) else 0

        return {
            'connection_count': conn_count,
            'sample_count': sample_count,
            'oldest_timestamp': oldest,
            'newest_timestamp': newest,
            'db_size_bytes': db_size,
        }
