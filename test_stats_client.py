from concurrent import futures
from unittest.mock import MagicMock, patch

import grpc
import pytest

from config import STATS_SERVICES
from stat_keys import RawCounter
from stats_client import StatsClient, StatsQueryError
from stats_proto import QueryStatsRequest, QueryStatsResponse, Stat


class FakeRpcError(grpc.RpcError):
    def __init__(self, code, details=''):
        super().__init__(details)
        self._code = code
        self._details = details

    def code(self):
        return self._code

    def details(self):
        return self._details


def make_response(*stats):
    return QueryStatsResponse(stat=[Stat(name=name, value=value) for name, value in stats])


@pytest.fixture
def rpc():
    return MagicMock(return_value=make_response())


@pytest.fixture
def channel(rpc):
    channel = MagicMock()
    channel.unary_unary.return_value = rpc
    return channel


@pytest.fixture
def client(channel, test_logger):
    return StatsClient('127.0.0.1:8080', timeout=5, channel=channel, logger=test_logger)


def test_query_stats_sends_reset_request(client, channel, rpc):
    client.query_stats()

    assert channel.unary_unary.call_args.args[0] == \
        '/v2ray.core.app.stats.command.StatsService/QueryStats'
    request = rpc.call_args.args[0]
    assert request.reset is True
    assert request.pattern == ''
    assert rpc.call_args.kwargs['timeout'] == 5
    assert client.api_call_count == 1


def test_query_stats_without_reset(client, rpc):
    client.query_stats(reset=False, pattern='user>>>')

    request = rpc.call_args.args[0]
    assert request.reset is False
    assert request.pattern == 'user>>>'


def test_xray_service_path(channel, test_logger):
    StatsClient('127.0.0.1:10085', service='xray', channel=channel, logger=test_logger)

    assert channel.unary_unary.call_args.args[0] == '/xray.app.stats.command.StatsService/QueryStats'


def test_unknown_service_rejected(channel, test_logger):
    with pytest.raises(ValueError, match='Unknown stats service'):
        StatsClient('127.0.0.1:8080', service='sing-box', channel=channel, logger=test_logger)


def test_query_stats_returns_counters(client, rpc):
    rpc.return_value = make_response(
        ('user>>>alice>>>traffic>>>uplink', 1024),
        ('inbound>>>api>>>traffic>>>downlink', 77),
        ('outbound>>>direct>>>traffic>>>uplink', 0),
    )

    assert client.query_stats() == [
        RawCounter('user>>>alice>>>traffic>>>uplink', 1024),
        RawCounter('inbound>>>api>>>traffic>>>downlink', 77),
        RawCounter('outbound>>>direct>>>traffic>>>uplink', 0),
    ]


def test_query_stats_empty_response(client):
    assert client.query_stats() == []


@pytest.mark.parametrize('code', [grpc.StatusCode.DEADLINE_EXCEEDED, grpc.StatusCode.UNAVAILABLE])
@patch('stats_client.time.sleep')
def test_reset_read_is_not_repeated(mock_sleep, client, rpc, code):
    rpc.side_effect = [FakeRpcError(code, 'reply lost'), make_response(('user>>>a>>>traffic>>>uplink', 3))]

    with pytest.raises(StatsQueryError, match=code.name):
        client.query_stats(reset=True)

    assert rpc.call_count == 1
    mock_sleep.assert_not_called()


@patch('stats_client.time.sleep')
def test_plain_read_retries_unavailable(mock_sleep, client, rpc):
    rpc.side_effect = [
        FakeRpcError(grpc.StatusCode.UNAVAILABLE, 'connection refused'),
        FakeRpcError(grpc.StatusCode.DEADLINE_EXCEEDED, 'slow'),
        make_response(('user>>>a>>>traffic>>>uplink', 1)),
    ]

    counters = client.query_stats(reset=False)

    assert len(counters) == 1
    assert rpc.call_count == 3
    assert [c.args[0] for c in mock_sleep.call_args_list] == [2, 4]


@patch('stats_client.time.sleep')
def test_plain_read_gives_up_after_retries(mock_sleep, client, rpc):
    rpc.side_effect = FakeRpcError(grpc.StatusCode.UNAVAILABLE, 'connection refused')

    with pytest.raises(StatsQueryError, match='connection refused'):
        client.query_stats(reset=False)

    assert rpc.call_count == 4


@patch('stats_client.time.sleep')
def test_plain_read_does_not_retry_other_codes(mock_sleep, client, rpc):
    rpc.side_effect = FakeRpcError(grpc.StatusCode.UNIMPLEMENTED, 'unknown service')

    with pytest.raises(StatsQueryError, match='UNIMPLEMENTED'):
        client.query_stats(reset=False)

    assert rpc.call_count == 1


def test_close_closes_channel(channel, test_logger):
    with StatsClient('127.0.0.1:8080', channel=channel, logger=test_logger):
        pass

    channel.close.assert_called_once()


@pytest.fixture
def stats_server():
    """In-process StatsService answering QueryStats with two counters."""
    received = []

    def query_stats(request, context):
        received.append(request)
        return make_response(
            ('user>>>alice>>>traffic>>>uplink', 1024),
            ('inbound>>>api>>>traffic>>>downlink', 5 * 1024 ** 3),
        )

    handler = grpc.method_handlers_generic_handler(STATS_SERVICES['v2ray'], {
        'QueryStats': grpc.unary_unary_rpc_method_handler(
            query_stats,
            request_deserializer=QueryStatsRequest.FromString,
            response_serializer=QueryStatsResponse.SerializeToString,
        ),
    })
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=2))
    server.add_generic_rpc_handlers((handler,))
    port = server.add_insecure_port('127.0.0.1:0')
    server.start()
    yield f'127.0.0.1:{port}', received
    server.stop(None)


def test_query_stats_over_grpc(stats_server, test_logger):
    address, received = stats_server

    with StatsClient(address, timeout=5, logger=test_logger) as client:
        counters = client.query_stats()

    assert counters == [
        RawCounter('user>>>alice>>>traffic>>>uplink', 1024),
        RawCounter('inbound>>>api>>>traffic>>>downlink', 5 * 1024 ** 3),
    ]
    assert received[0].reset is True


def test_wrong_service_flavor_fails_once(stats_server, test_logger):
    address, received = stats_server

    with StatsClient(address, timeout=5, service='xray', logger=test_logger) as client:
        with pytest.raises(StatsQueryError, match='UNIMPLEMENTED'):
            client.query_stats()

    assert received == []
