"""
Standalone Clock Process for v2stat
Polls the stats API on a fixed interval using APScheduler's BlockingScheduler
and records every reset-read as one batch.
"""
import signal
import sys
from datetime import datetime, timezone
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.events import (
    EVENT_JOB_EXECUTED, EVENT_JOB_ERROR, EVENT_JOB_MISSED,
    EVENT_SCHEDULER_START, EVENT_SCHEDULER_SHUTDOWN
)

from config import DEFAULT_STATS_SERVICE, load_settings, resolve_db_path
from logger import info, exception, warning, error, debug, set_log_level
from stats_client import StatsClient
from traffic_collector import TrafficCollector
from traffic_storage import TrafficStorage

JOB_ID = 'record_traffic'

collector = None
scheduler_instance = None
clock_start_time = None

# Scheduler execution tracking
scheduler_stats = {
    'total_executions': 0,
    'total_errors': 0,
    'last_execution': None,
    'last_error': None,
    'last_error_time': None,
    'state': 'stopped',
}


def on_job_executed(event):
    """Called when a job completes successfully."""
    scheduler_stats['total_executions'] += 1
    scheduler_stats['last_execution'] = datetime.now(timezone.utc).isoformat()
    debug("Clock job '%s' executed successfully (total: %d)", event.job_id, scheduler_stats['total_executions'])


def on_job_error(event):
    """Called when a job raises an exception."""
    scheduler_stats['total_errors'] += 1
    scheduler_stats['last_error'] = str(event.exception)
    scheduler_stats['last_error_time'] = datetime.now(timezone.utc).isoformat()
    error("Clock job '%s' failed with error: %s", event.job_id, str(event.exception))


def on_job_missed(event):
    """Called when a job's execution is missed (misfire)."""
    warning("Clock job '%s' missed its scheduled execution time", event.job_id)


def on_scheduler_start(event):
    info("Clock scheduler started")


def on_scheduler_shutdown(event):
    info("Clock scheduler shutdown (total executions: %d, errors: %d)",
         scheduler_stats['total_executions'], scheduler_stats['total_errors'])


def shutdown_handler(signum, frame):
    """
    Handle SIGTERM/SIGINT for graceful shutdown.

    Args:
        signum: Signal number
        frame: Current stack frame
    """
    signal_name = 'SIGTERM' if signum == signal.SIGTERM else 'SIGINT'
    info("Received %s signal, shutting down", signal_name)
    scheduler_stats['state'] = 'stopping'

    if scheduler_instance is not None and scheduler_instance.running:
        # Let an in-flight batch commit or roll back before exiting
        scheduler_instance.shutdown(wait=True)
    else:
        sys.exit(0)


def init_collector(db_path, server, timeout, service=DEFAULT_STATS_SERVICE):
    """
    Create the storage, API client and collector used by the clock.

    Returns:
        TrafficCollector instance

    Raises:
        StorageError: If the database cannot be initialized
        ValueError: If the stats service flavor is unknown
    """
    global collector

    storage = TrafficStorage(db_path)
    client = StatsClient(server, timeout=timeout, service=service)
    collector = TrafficCollector(storage, client)

    info("Traffic collector initialized (db: %s, server: %s, service: %s)", db_path, server, service)
    return collector


def get_collector():
    """Return the clock's collector, or None before init_collector()."""
    return collector


def run_collection():
    """Scheduled job: one reset-read and batch insert."""
    start_time = datetime.now(timezone.utc)

    if collector is None:
        error("Collector not initialized, skipping collection")
        return

    info("Recording stats...")
    try:
        collector.record_now()
    except Exception as e:
        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        error("Failed to record stats after %.2fs: %s", duration, str(e))
        raise  # Re-raise to trigger EVENT_JOB_ERROR

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    debug("Scheduled collection completed (duration: %.2fs)", duration)


def build_scheduler(interval):
    """Create the BlockingScheduler with listeners and the collection job."""
    scheduler = BlockingScheduler(
        timezone='UTC',
        jobstores={'default': {'type': 'memory'}},
        executors={'default': {'type': 'threadpool', 'max_workers': 1}},
        job_defaults={
            'coalesce': True,           # Combine multiple missed runs into one
            'max_instances': 1,         # Never run two batches at once
            'misfire_grace_time': 60
        }
    )

    scheduler.add_listener(on_job_executed, EVENT_JOB_EXECUTED)
    scheduler.add_listener(on_job_error, EVENT_JOB_ERROR)
    scheduler.add_listener(on_job_missed, EVENT_JOB_MISSED)
    scheduler.add_listener(on_scheduler_start, EVENT_SCHEDULER_START)
    scheduler.add_listener(on_scheduler_shutdown, EVENT_SCHEDULER_SHUTDOWN)

    scheduler.add_job(
        func=run_collection,
        trigger='interval',
        seconds=interval,
        id=JOB_ID,
        name='Traffic Stats Recording',
        replace_existing=True
    )
    return scheduler


def main(db_path=None, server=None, interval=None, log_level=None):
    """
    Main clock process entry point.

    Arguments override the corresponding settings.

    Returns:
        int: Process exit status
    """
    global scheduler_instance, clock_start_time

    settings = load_settings()
    server = server or settings.get('server')
    interval = int(interval or settings.get('interval', 300))
    timeout = settings.get('request_timeout', 10)

    try:
        set_log_level(log_level or settings.get('log_level', 'info'))
    except ValueError as e:
        error(str(e))
        return 1

    if not settings.get('collection_enabled', True):
        info("Clock process exiting - collection disabled in settings")
        return 0

    db_path = resolve_db_path(db_path or settings.get('db_path'))
    if not db_path:
        error("No database path provided and no default database found.")
        return 1
    info("Using database: %s", db_path)

    try:
        init_collector(db_path, server, timeout, settings.get('stats_service', DEFAULT_STATS_SERVICE))
    except Exception as e:
        exception("Clock process exiting - failed to initialize collector: %s", str(e))
        return 1

    scheduler = build_scheduler(interval)
    scheduler_instance = scheduler
    info("Job '%s' registered with %d-second interval", JOB_ID, interval)

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    clock_start_time = datetime.now(timezone.utc)
    scheduler_stats['state'] = 'running'

    # First batch immediately; the scheduler's first tick is one interval later
    try:
        run_collection()
    except Exception as e:
        warning("Initial collection failed, will retry on schedule: %s", str(e))

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        info("Clock process shutting down gracefully")
        if scheduler.running:
            scheduler.shutdown(wait=True)
    finally:
        scheduler_stats['state'] = 'stopped'
        collector.client.close()

    info("Clock process stopped (executions: %d, errors: %d)",
         scheduler_stats['total_executions'], scheduler_stats['total_errors'])
    return 0


if __name__ == '__main__':
    sys.exit(main())
