"""
Snapshot and rate records using msgspec for typed JSON decoding.

Key patterns:
- msgspec.Struct instead of dataclass (faster, less memory)
- frozen=True for every record, snapshots are never mutated after decode
- kw_only=True so optional fields can sit next to the required counters
- field(name=...) maps the server's JSON keys onto our attribute names
"""

from datetime import datetime

import msgspec

###################
# /varz SNAPSHOT
# #################


class ServerSnapshot(msgspec.Struct, frozen=True, kw_only=True):
    """Point-in-time server metrics from /varz"""

    in_msgs: int
    out_msgs: int
    in_bytes: int
    out_bytes: int
    now: datetime  # server clock, authoritative for rate normalisation
    cpu: float = 0.0
    mem: int = 0
    uptime: str = ""
    slow_consumers: int = 0
    id: str = msgspec.field(name="server_id", default="")
    version: str = ""
    name: str = msgspec.field(name="server_name", default="")


###################
# /connz SNAPSHOT
# #################


class ConnectionSnapshot(msgspec.Struct, frozen=True, kw_only=True):
    """Per-connection metrics, keyed by cid"""

    cid: int
    in_msgs: int
    out_msgs: int
    in_bytes: int
    out_bytes: int
    ip: str = ""
    port: int = 0
    name: str = ""
    num_subs: int = msgspec.field(name="subscriptions", default=0)
    pending_bytes: int = 0
    lang: str = ""
    version: str = ""
    uptime: str = ""
    last_activity: str = ""
    # Subjects, only with subs=1. Servers send `subscriptions_list`,
    # some proxies and older tooling `subs`
    subs: tuple[str, ...] | None = None
    subscriptions_list: tuple[str, ...] | None = None

    @property
    def subjects(self) -> tuple[str, ...]:
        return self.subs or self.subscriptions_list or ()


class ConnectionsPage(msgspec.Struct, frozen=True, kw_only=True):
    """/connz body. Connection order is the server's, never re-sorted here"""

    num_connections: int = 0
    connections: tuple[ConnectionSnapshot, ...] | None = ()  # null when empty


###################
# DERIVED RATES
# #################


class ConnectionRate(msgspec.Struct, frozen=True, kw_only=True):
    """
    Per-connection change since the previous poll.

    Values are raw counter deltas per cycle, not normalised by elapsed time.
    """

    in_msgs_rate: float = 0.0
    out_msgs_rate: float = 0.0
    in_bytes_rate: float = 0.0
    out_bytes_rate: float = 0.0


class RateResult(msgspec.Struct, frozen=True, kw_only=True):
    """Global per-second rates plus per-connection deltas"""

    in_msgs_rate: float
    out_msgs_rate: float
    in_bytes_rate: float
    out_bytes_rate: float
    connections: dict[int, ConnectionRate] = {}

    def for_connection(self, cid: int) -> ConnectionRate:
        """Rate for `cid`, zero-valued when the cid has no entry"""
        return self.connections.get(cid, ZERO_RATE)


ZERO_RATE = ConnectionRate()


###################
# PUBLISHED RESULT
# #################


class StatsResult(msgspec.Struct, frozen=True, kw_only=True):
    """
    Unit published once per poll cycle.

    Either `server` and `connections` are set (successful poll) or `error`
    is set and both snapshot fields are None.
    """

    server: ServerSnapshot | None = None
    connections: ConnectionsPage | None = None
    rates: RateResult | None = None
    error: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def failed(cls, message: str) -> "StatsResult":
        return cls(error=message)
