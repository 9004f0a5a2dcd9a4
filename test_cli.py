import pytest

import cli
from conftest import counter, utc
from stat_keys import ConnectionType, ConnInfo
from traffic_storage import HourlyTraffic
from version import get_version


@pytest.mark.parametrize('size, expected', [
    (0, '   0.00 B'),
    (1023, '1023.00 B'),
    (1024, '   1.00 KiB'),
    (1536, '   1.50 KiB'),
    (5 * 1024 ** 3, '   5.00 GiB'),
    (3 * 1024 ** 5, '   3.00 PiB'),
])
def test_size_to_human(size, expected):
    assert cli.size_to_human(size) == expected


def test_format_stats_table():
    table = cli.format_stats_table([
        HourlyTraffic('2024-01-01 00:00:00', 2048, 0),
        HourlyTraffic('2024-01-01 01:00:00', 1024, 512),
    ])
    lines = table.splitlines()

    assert lines[0].startswith('┌')
    assert 'Time' in lines[1] and 'Downlink' in lines[1] and 'Uplink' in lines[1]
    assert '2024-01-01 00:00:00' in lines[3]
    assert lines[-2].startswith('│ Total')
    assert '3.00 KiB' in lines[-2]
    assert '512.00 B' in lines[-2]
    assert len({len(line) for line in lines}) == 1


def test_format_stats_table_empty():
    lines = cli.format_stats_table([]).splitlines()

    assert '0.00 B' in lines[-2]
    assert len(lines) == 6


def test_no_command_prints_usage(capsys):
    assert cli.main([]) == 1
    assert 'Available commands' in capsys.readouterr().out


def test_version_command(capsys):
    assert cli.main(['version']) == 0
    assert capsys.readouterr().out.strip() == f"v2stat {get_version()}"


def test_query_lists_connections(storage, db_path, capsys):
    storage.record_samples(utc(2024, 1, 1), [
        counter('user', 'alice', 'uplink', 1),
        counter('inbound', 'api', 'uplink', 1),
    ])

    assert cli.main(['--db', db_path, 'query']) == 0

    out = capsys.readouterr().out
    assert 'Available connections:' in out
    assert '\tuser:alice' in out
    assert '\tinbound:api' in out


def test_query_connection_prints_table(storage, db_path, capsys):
    storage.record_samples(utc(2024, 1, 1, 0, 30), [counter('user', 'alice', 'downlink', 2048)])

    assert cli.main(['--db', db_path, '--offset', '0', 'query', 'user:alice']) == 0

    out = capsys.readouterr().out
    assert '2024-01-01 00:00:00' in out
    assert '2.00 KiB' in out


def test_query_uses_default_offset(storage, db_path, capsys):
    storage.record_samples(utc(2024, 1, 1, 16, 30), [counter('user', 'alice', 'downlink', 1)])

    cli.main(['--db', db_path, 'query', 'user:alice'])

    assert '2024-01-02 00:00:00' in capsys.readouterr().out


def test_query_invalid_connection(storage, db_path):
    assert cli.main(['--db', db_path, 'query', 'alice']) == 1


def test_query_invalid_log_level(storage, db_path):
    assert cli.main(['--db', db_path, '--log-level', 'loud', 'query']) == 1


def test_query_without_database(tmp_path, monkeypatch):
    monkeypatch.setattr('config.DEFAULT_DB_PATHS', [])

    assert cli.main(['query']) == 1


def test_handle_query_uses_parsed_connection(capsys):
    class RecordingStorage:
        def __init__(self):
            self.queried = []

        def query_stats_hourly(self, conn, offset_hours=None):
            self.queried.append((conn, offset_hours))
            return []

    storage = RecordingStorage()
    args = cli.build_parser().parse_args(['--offset', '3', 'query', 'outbound:direct'])

    assert cli.handle_query(storage, args) == 0
    assert storage.queried == [(ConnInfo(ConnectionType.OUTBOUND, 'direct'), 3)]
