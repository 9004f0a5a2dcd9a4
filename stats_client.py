"""
Stats API Client

Reads traffic counters from the V2Ray/Xray StatsService over gRPC. Each query
may ask the server to reset its counters after the read, which turns every
response into the delta since the previous reset-read.

A reset-read is never retried: when the reply is lost the server may already
have zeroed its counters, and a second read would return a smaller delta as
if nothing had happened. Plain reads (reset=False) are retried on
UNAVAILABLE and DEADLINE_EXCEEDED.
"""
import logging
import time
from functools import wraps
from typing import List, Optional

import grpc

from config import DEFAULT_REQUEST_TIMEOUT, DEFAULT_STATS_SERVICE, STATS_SERVICES
from logger import get_logger
from stat_keys import RawCounter
from stats_proto import QueryStatsRequest, QueryStatsResponse

QUERY_STATS_METHOD = 'QueryStats'

RETRYABLE_CODES = (grpc.StatusCode.UNAVAILABLE, grpc.StatusCode.DEADLINE_EXCEEDED)


class StatsQueryError(Exception):
    """Raised when counters cannot be fetched from the stats API."""


def rpc_error_text(err):
    """Status code and details of a grpc.RpcError, e.g. "UNAVAILABLE: connection refused"."""
    code = err.code() if hasattr(err, 'code') else None
    details = err.details() if hasattr(err, 'details') else None
    if code is None:
        return str(err)
    return f"{code.name}: {details or ''}".rstrip(': ')


def retry_on_unavailable(max_retries=3, backoff_factor=2, initial_delay=2):
    """
    Decorator to retry a gRPC call on UNAVAILABLE or DEADLINE_EXCEEDED with exponential backoff

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        backoff_factor: Multiplier for delay between retries (default: 2)
        initial_delay: Initial delay in seconds before first retry (default: 2)

    Retry delays with default settings:
        Attempt 1: Immediate
        Attempt 2: 2 seconds after failure
        Attempt 3: 4 seconds after failure (2 * 2)
        Attempt 4: 8 seconds after failure (4 * 2)

    Other status codes are raised at once. The wrapped method logs through
    self.logger when available.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = getattr(args[0], 'logger', None) if args else None
            logger = logger or get_logger()
            last_exception = None

            for attempt in range(max_retries + 1):  # +1 for initial attempt
                if attempt > 0:
                    delay = initial_delay * (backoff_factor ** (attempt - 1))
                    logger.warning("Retry attempt %d/%d for %s after %ss delay",
                                   attempt, max_retries, func.__name__, delay)
                    time.sleep(delay)

                try:
                    result = func(*args, **kwargs)
                except grpc.RpcError as e:
                    code = e.code() if hasattr(e, 'code') else None
                    if code not in RETRYABLE_CODES:
                        raise
                    last_exception = e
                    if attempt < max_retries:
                        logger.warning("%s failed with %s, will retry (%d/%d)",
                                       func.__name__, code.name, attempt + 1, max_retries)
                    else:
                        logger.error("%s failed with %s after %d retries: %s",
                                     func.__name__, code.name, max_retries, rpc_error_text(e))
                    continue

                if attempt > 0:
                    logger.debug("%s succeeded on retry attempt %d", func.__name__, attempt)
                return result

            raise last_exception

        return wrapper
    return decorator


class StatsClient:
    """Client for the StatsService QueryStats call."""

    def __init__(
        self,
        server: str,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        service: str = DEFAULT_STATS_SERVICE,
        channel: Optional[grpc.Channel] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            server: host:port of the API server
            timeout: Per-call deadline in seconds
            service: Server flavor, a key of config.STATS_SERVICES
            channel: gRPC channel to reuse (a new insecure channel by default)
            logger: Logger to use (defaults to the application logger)

        Raises:
            ValueError: If the service flavor is unknown
        """
        if service not in STATS_SERVICES:
            raise ValueError(f"Unknown stats service: {service} (expected one of {', '.join(STATS_SERVICES)})")

        self.server = server
        self.timeout = timeout
        self.service = service
        self.method = f"/{STATS_SERVICES[service]}/{QUERY_STATS_METHOD}"
        self.channel = channel if channel is not None else grpc.insecure_channel(server)
        self.logger = logger or get_logger()
        self.api_call_count = 0

        self._query_stats = self.channel.unary_unary(
            self.method,
            request_serializer=QueryStatsRequest.SerializeToString,
            response_deserializer=QueryStatsResponse.FromString,
        )

    def _call(self, request):
        self.api_call_count += 1
        start_time = time.time()
        self.logger.debug("Calling %s on %s (reset=%s)", self.method, self.server, request.reset)

        response = self._query_stats(request, timeout=self.timeout)

        elapsed = time.time() - start_time
        self.logger.debug("Response received in %.2fs, %d stats", elapsed, len(response.stat))
        return response

    @retry_on_unavailable(max_retries=3, backoff_factor=2, initial_delay=2)
    def _call_with_retry(self, request):
        return self._call(request)

    def query_stats(self, reset: bool = True, pattern: str = '') -> List[RawCounter]:
        """
        Fetch all counters matching a pattern.

        Args:
            reset: Ask the server to zero the counters after reading them
            pattern: Counter name filter ('' matches every counter)

        Returns:
            List of RawCounter in server order

        Raises:
            StatsQueryError: If the call fails; a reset-read fails on the
                first error, other reads after retries
        """
        request = QueryStatsRequest(pattern=pattern, reset=reset)
        call = self._call if reset else self._call_with_retry

        try:
            response = call(request)
        except grpc.RpcError as e:
            raise StatsQueryError(f"QueryStats on {self.server} failed: {rpc_error_text(e)}") from e

        counters = [RawCounter(stat.name, stat.value) for stat in response.stat]
        self.logger.debug("Fetched %d counters from %s", len(counters), self.server)
        return counters

    def close(self):
        self.channel.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
