"""
Traffic Collector Module

One polling cycle: reset-read the counters from the stats API and record them
as a single batch. Runs as a scheduled job from clock.py.

Counters are fetched with reset=True, so a batch that fails to commit loses
that interval's traffic for good. The failure is logged and raised; it is
not retried.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Dict, Optional

from logger import get_logger
from stats_client import StatsClient, StatsQueryError
from traffic_storage import MALFORMED_KEY, RecordResult, StorageError, TrafficStorage


class TrafficCollector:
    """Background collector for V2Ray traffic counters."""

    def __init__(self, storage: TrafficStorage, client: StatsClient, logger: Optional[logging.Logger] = None):
        """
        Initialize the traffic collector.

        Args:
            storage: TrafficStorage instance
            client: StatsClient for the API server
            logger: Logger to use (defaults to the application logger)
        """
        self.storage = storage
        self.client = client
        self.logger = logger or get_logger()
        self.collection_count = 0
        self.error_count = 0
        self.last_collection = None
        self.last_error = None

        self.logger.debug("TrafficCollector initialized (db: %s, server: %s)",
                          storage.db_path, client.server)

    def record_now(self, now: Optional[int] = None) -> RecordResult:
        """
        Fetch counters with reset and store them as one batch.

        Args:
            now: Epoch seconds for the batch (defaults to the current time)

        Returns:
            RecordResult of the committed batch

        Raises:
            StatsQueryError: If the counters could not be fetched
            StorageError: If the batch could not be committed
        """
        try:
            counters = self.client.query_stats(reset=True)
        except StatsQueryError as e:
            self._record_failure(e)
            self.logger.error("Failed to query stats: %s", e)
            raise

        if now is None:
            now = int(time.time())

        try:
            result = self.storage.record_samples(now, counters)
        except StorageError as e:
            self._record_failure(e)
            self.logger.error("Failed to record %d counters, interval lost: %s", len(counters), e)
            raise

        for sample in result.samples:
            self.logger.info("Inserted stats: conn=%s, conn_id=%d, timestamp=%d, traffic=%d, direction=%s",
                             sample.conn, sample.conn_id, sample.timestamp,
                             sample.traffic, sample.direction.tag)

        for diag in result.diagnostics:
            if diag.kind == MALFORMED_KEY:
                self.logger.warning("Skipping unrecognized stat key: %s", diag.key)
            else:
                self.logger.error("Failed to store stat %s: %s", diag.key, diag.message)

        self.collection_count += 1
        self.last_collection = datetime.now(timezone.utc)
        self.logger.info("Collection cycle complete: %d/%d counters recorded",
                         result.accepted, len(counters))
        return result

    def _record_failure(self, err: Exception):
        self.error_count += 1
        self.last_error = str(err)

    def get_collector_stats(self) -> Dict:
        """
        Get statistics about the collector.

        Returns:
            Dictionary with collector statistics
        """
        self.logger.debug("Retrieving collector statistics")

        return {
            'collection_count': self.collection_count,
            'error_count': self.error_count,
            'last_collection': self.last_collection.isoformat() if self.last_collection else None,
            'last_error': self.last_error,
            'storage': self.storage.get_storage_stats(),
        }
