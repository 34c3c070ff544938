"""
Delta-rate computation between two successive polls.

Global rates are normalised by the elapsed server time and expressed per
second. Per-connection values are the raw counter delta for the cycle and
are NOT divided by elapsed time; the per-connection columns of the display
depend on that, so the two must not be unified.

Nothing is clamped: a counter reset on the server (restart, cid reuse)
yields negative values, passed through unchanged.
"""

from collections.abc import Sequence

from natstop.engine.state import EngineState
from natstop.monitor.protocol import (
    ZERO_RATE,
    ConnectionRate,
    ConnectionSnapshot,
    RateResult,
    ServerSnapshot,
)


def compute_rates(
    server: ServerSnapshot,
    connections: Sequence[ConnectionSnapshot],
    previous: EngineState,
) -> RateResult | None:
    """
    Rates for the current poll against the retained state.

    Returns None (not a zero result) when there is no previous successful
    poll or the server clock did not advance.
    """
    baseline = previous.baseline
    if baseline is None:
        return None

    elapsed = (server.now - baseline.now).total_seconds()
    if elapsed <= 0:
        return None

    return RateResult(
        in_msgs_rate=(server.in_msgs - baseline.in_msgs) / elapsed,
        out_msgs_rate=(server.out_msgs - baseline.out_msgs) / elapsed,
        in_bytes_rate=(server.in_bytes - baseline.in_bytes) / elapsed,
        out_bytes_rate=(server.out_bytes - baseline.out_bytes) / elapsed,
        connections=_connection_rates(connections, previous),
    )


def _connection_rates(
    connections: Sequence[ConnectionSnapshot],
    previous: EngineState,
) -> dict[int, ConnectionRate]:
    index = previous.connection_index
    rates: dict[int, ConnectionRate] = {}

    for conn in connections:
        last = index.get(conn.cid)
        if last is None:
            # New cid, no history to diff against
            rates[conn.cid] = ZERO_RATE
            continue

        rates[conn.cid] = connection_delta(conn, last)

    return rates


def connection_delta(
    current: ConnectionSnapshot,
    last: ConnectionSnapshot,
) -> ConnectionRate:
    """Raw per-cycle counter deltas, current minus last"""
    return ConnectionRate(
        in_msgs_rate=float(current.in_msgs - last.in_msgs),
        out_msgs_rate=float(current.out_msgs - last.out_msgs),
        in_bytes_rate=float(current.in_bytes - last.in_bytes),
        out_bytes_rate=float(current.out_bytes - last.out_bytes),
    )
