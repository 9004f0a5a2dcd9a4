#!/usr/bin/env python3
"""
v2stat command line

Commands:
  daemon              Record traffic stats every --interval seconds
  query               List known connections
  query <type:name>   Print hourly traffic of one connection
  version             Print the version
"""
import argparse
import sys

from config import load_settings, resolve_db_path
from logger import error, set_log_level
from stat_keys import ConnInfo
from traffic_storage import StorageError, TrafficStorage
from version import get_version

SIZE_UNITS = ['B', 'KiB', 'MiB', 'GiB', 'TiB']


def size_to_human(size):
    """
    Format a byte count with binary units, e.g. "   1.50 KiB".

    Args:
        size: Number of bytes

    Returns:
        str: Right-aligned value with two decimals and unit
    """
    value = float(size)
    for unit in SIZE_UNITS:
        if value < 1024:
            return f"{value:7.2f} {unit}"
        value /= 1024
    return f"{value:7.2f} PiB"


def format_stats_table(stats):
    """
    Render hourly stats as a text table with a Total footer.

    Args:
        stats: List of HourlyTraffic

    Returns:
        str: Table text (no trailing newline)
    """
    total_down = sum(s.downlink for s in stats)
    total_up = sum(s.uplink for s in stats)

    header = ('Time', 'Downlink', 'Uplink')
    body = [(s.time, size_to_human(s.downlink), size_to_human(s.uplink)) for s in stats]
    footer = ('Total', size_to_human(total_down), size_to_human(total_up))

    widths = [max(len(row[i]) for row in [header, footer] + body) for i in range(3)]

    def line(left, mid, right):
        return left + mid.join('─' * (w + 2) for w in widths) + right

    def row(cells):
        return '│' + '│'.join(f" {cell:<{widths[i]}} " for i, cell in enumerate(cells)) + '│'

    lines = [line('┌', '┬', '┐'), row(header), line('├', '┼', '┤')]
    lines.extend(row(r) for r in body)
    lines.extend([line('├', '┼', '┤'), row(footer), line('└', '┴', '┘')])
    return '\n'.join(lines)


def handle_query(storage, args):
    """Run the query command; returns the exit status."""
    if not args.connection:
        print("Usage: v2stat query <connection_name>")
        print("Available connections:")
        for conn in storage.list_connections():
            print(f"\t{conn}")
        return 0

    conn = ConnInfo.parse(args.connection)
    if conn is None:
        error("Invalid connection format: %s", args.connection)
        return 1

    stats = storage.query_stats_hourly(conn, offset_hours=args.offset)
    print(format_stats_table(stats))
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        prog='v2stat',
        description="Record and report V2Ray/Xray traffic statistics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Record every 5 minutes from the local API server
  v2stat --db /var/lib/v2stat/traffic.db daemon

  # List connections, then show one of them
  v2stat query
  v2stat query user:alice@example.com

Environment Variables:
  V2STAT_SERVER, V2STAT_DB, V2STAT_INTERVAL, V2STAT_LOG_LEVEL,
  V2STAT_STATS_SERVICE (v2ray or xray)
        """
    )
    parser.add_argument('--db', help='Path to SQLite database')
    parser.add_argument('--server', help='V2Ray API server address (host:port)')
    parser.add_argument('--interval', type=int, help='Interval in seconds to record stats')
    parser.add_argument('--log-level', help='Log level (debug, info, warn, error, fatal)')
    parser.add_argument('--offset', type=int, help='Hour bucket offset from UTC for reports')

    subparsers = parser.add_subparsers(dest='command')
    subparsers.add_parser('daemon', help='Record stats periodically')
    query = subparsers.add_parser('query', help='Show hourly traffic')
    query.add_argument('connection', nargs='?', help='Connection as type:name')
    subparsers.add_parser('version', help='Print the version')
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_usage()
        print("Available commands: daemon, query, version")
        return 1

    if args.command == 'version':
        print(f"v2stat {get_version()}")
        return 0

    if args.command == 'daemon':
        import clock
        return clock.main(db_path=args.db, server=args.server,
                          interval=args.interval, log_level=args.log_level)

    settings = load_settings()
    try:
        set_log_level(args.log_level or settings.get('log_level', 'info'))
    except ValueError as e:
        error(str(e))
        return 1

    if args.offset is None:
        args.offset = settings.get('hour_offset')

    db_path = resolve_db_path(args.db or settings.get('db_path'))
    if not db_path:
        error("No database path provided and no default database found.")
        return 1

    try:
        storage = TrafficStorage(db_path)
        return handle_query(storage, args)
    except StorageError as e:
        error("Failed to query stats: %s", e)
        return 1


if __name__ == '__main__':
    sys.exit(main())
