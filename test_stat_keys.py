import pytest

from stat_keys import (
    ConnectionType,
    ConnInfo,
    ParsedStatKey,
    TrafficDirection,
    parse_stat_key,
)


@pytest.mark.parametrize('scope, conn_type', [
    ('user', ConnectionType.USER),
    ('inbound', ConnectionType.INBOUND),
    ('outbound', ConnectionType.OUTBOUND),
])
@pytest.mark.parametrize('tag, direction', [
    ('downlink', TrafficDirection.DOWNLINK),
    ('uplink', TrafficDirection.UPLINK),
])
def test_parse_well_formed_key(scope, conn_type, tag, direction):
    parsed = parse_stat_key(f"{scope}>>>alice@example.com>>>traffic>>>{tag}")

    assert parsed == ParsedStatKey(ConnInfo(conn_type, 'alice@example.com'), direction)


@pytest.mark.parametrize('key', [
    '',
    'user>>>alice>>>traffic',
    'user>>>alice>>>traffic>>>uplink>>>extra',
    'user>>>alice>>>packets>>>uplink',
    'user>>>alice>>>Traffic>>>uplink',
    'group>>>alice>>>traffic>>>uplink',
    'USER>>>alice>>>traffic>>>uplink',
    'user>>>alice>>>traffic>>>sideways',
    'user>>alice>>traffic>>uplink',
    'inbound>>>api>>>traffic>>>downlink ',
])
def test_parse_rejects_malformed_key(key):
    assert parse_stat_key(key) is None


def test_parse_keeps_empty_name():
    parsed = parse_stat_key('outbound>>>>>>traffic>>>uplink')

    assert parsed.conn == ConnInfo(ConnectionType.OUTBOUND, '')


def test_stored_codes():
    assert int(ConnectionType.USER) == 0
    assert int(ConnectionType.INBOUND) == 1
    assert int(ConnectionType.OUTBOUND) == 2
    assert int(TrafficDirection.DOWNLINK) == 0
    assert int(TrafficDirection.UPLINK) == 1


@pytest.mark.parametrize('text', ['inbound:proxy1', 'user:alice@example.com', 'outbound:direct'])
def test_conn_info_round_trip(text):
    assert str(ConnInfo.parse(text)) == text


@pytest.mark.parametrize('text', ['proxy1', 'inbound:a:b', 'peer:alice', ''])
def test_conn_info_parse_invalid(text):
    assert ConnInfo.parse(text) is None


def test_conn_info_to_dict():
    conn = ConnInfo(ConnectionType.INBOUND, 'api')

    assert conn.to_dict() == {'type': 'inbound', 'name': 'api'}
