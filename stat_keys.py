"""
Stat Key Module

Connection identities and traffic directions for V2Ray/Xray traffic counters.

Counter names returned by the StatsService look like:

    user>>>alice@example.com>>>traffic>>>uplink
    inbound>>>api>>>traffic>>>downlink
    outbound>>>direct>>>traffic>>>uplink

parse_stat_key() turns such a name into a (ConnInfo, TrafficDirection) pair.
Anything else is rejected with None; the stats API also reports counters
that are not traffic counters, so rejection is an ordinary outcome.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, NamedTuple, Optional

STAT_KEY_DELIMITER = '>>>'
STAT_KEY_TRAFFIC = 'traffic'
CONN_INFO_SEPARATOR = ':'


class TrafficDirection(IntEnum):
    """Traffic direction; values are the codes stored in stats.direction."""
    DOWNLINK = 0
    UPLINK = 1

    @property
    def tag(self) -> str:
        return self.name.lower()

    @classmethod
    def from_tag(cls, tag: str) -> Optional['TrafficDirection']:
        return _DIRECTION_TAGS.get(tag)


class ConnectionType(IntEnum):
    """Connection type; values are the codes stored in conn.type."""
    USER = 0
    INBOUND = 1
    OUTBOUND = 2

    @property
    def tag(self) -> str:
        return self.name.lower()

    @classmethod
    def from_tag(cls, tag: str) -> Optional['ConnectionType']:
        return _CONN_TYPE_TAGS.get(tag)


_DIRECTION_TAGS = {d.tag: d for d in TrafficDirection}
_CONN_TYPE_TAGS = {t.tag: t for t in ConnectionType}


@dataclass(frozen=True)
class ConnInfo:
    """A logical connection: a user, an inbound or an outbound."""
    type: ConnectionType
    name: str

    def __str__(self) -> str:
        return f"{self.type.tag}{CONN_INFO_SEPARATOR}{self.name}"

    def to_dict(self) -> Dict[str, str]:
        return {'type': self.type.tag, 'name': self.name}

    @classmethod
    def parse(cls, value: str) -> Optional['ConnInfo']:
        """
        Parse a "type:name" string such as "user:alice".

        Args:
            value: Connection string

        Returns:
            ConnInfo, or None if the string has not exactly one ':' or the
            type tag is unknown
        """
        parts = value.split(CONN_INFO_SEPARATOR)
        if len(parts) != 2:
            return None

        conn_type = ConnectionType.from_tag(parts[0])
        if conn_type is None:
            return None

        return cls(conn_type, parts[1])


class RawCounter(NamedTuple):
    """One counter as returned by the stats API (value since last reset)."""
    name: str
    value: int


class ParsedStatKey(NamedTuple):
    conn: ConnInfo
    direction: TrafficDirection


def parse_stat_key(key: str) -> Optional[ParsedStatKey]:
    """
    Decode a counter name of the form {scope}>>>{name}>>>traffic>>>{direction}.

    Args:
        key: Counter name from the stats API

    Returns:
        ParsedStatKey, or None when the key is not a traffic counter of a
        known scope and direction
    """
    parts = key.split(STAT_KEY_DELIMITER)
    if len(parts) != 4 or parts[2] != STAT_KEY_TRAFFIC:
        return None

    conn_type = ConnectionType.from_tag(parts[0])
    if conn_type is None:
        return None

    direction = TrafficDirection.from_tag(parts[3])
    if direction is None:
        return None

    return ParsedStatKey(ConnInfo(conn_type, parts[1]), direction)
