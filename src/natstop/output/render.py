"""Plain-text and delimited renderings of a published StatsResult."""

from collections.abc import Callable
from dataclasses import dataclass, field

from natstop.monitor.protocol import ConnectionSnapshot, RateResult, StatsResult
from natstop.output.format import DNSCache, format_datetime, nsize, psize

COLUMNS = (
    "HOST",
    "CID",
    "NAME",
    "SUBS",
    "PENDING",
    "MSGS_TO",
    "MSGS_FROM",
    "BYTES_TO",
    "BYTES_FROM",
    "LANG",
    "VERSION",
    "UPTIME",
    "LAST_ACTIVITY",
)
SUBSCRIPTIONS_COLUMN = "SUBSCRIPTIONS"

MIN_HOST_WIDTH = 15


@dataclass(slots=True)
class DisplayOptions:
    """Toggles that change what a rendering shows, never what is polled."""

    show_rates: bool = False
    subs: bool = False
    raw_bytes: bool = False
    lookup_dns: bool = False
    dns: DNSCache = field(default_factory=DNSCache)

    def host(self, conn: ConnectionSnapshot) -> str:
        if self.lookup_dns:
            return self.dns.lookup(conn.ip)
        return f"{conn.ip}:{conn.port}"


def _traffic_cells(
    conn: ConnectionSnapshot,
    rates: RateResult | None,
    options: DisplayOptions,
) -> tuple[str, str, str, str]:
    """MSGS_TO, MSGS_FROM, BYTES_TO, BYTES_FROM as totals or per-cycle deltas"""
    raw = options.raw_bytes

    if not options.show_rates:
        return (
            nsize(raw, conn.out_msgs),
            nsize(raw, conn.in_msgs),
            psize(raw, conn.out_bytes),
            psize(raw, conn.in_bytes),
        )

    rate = rates.for_connection(conn.cid) if rates else None
    if rate is None:
        return ("0", "0", "0", "0")

    return (
        nsize(raw, int(rate.out_msgs_rate)),
        nsize(raw, int(rate.in_msgs_rate)),
        psize(raw, int(rate.out_bytes_rate)),
        psize(raw, int(rate.in_bytes_rate)),
    )


def _subscriptions(conn: ConnectionSnapshot) -> str:
    return ", ".join(conn.subjects)


def _global_rates(rates: RateResult | None) -> tuple[float, float, float, float]:
    if rates is None:
        return (0.0, 0.0, 0.0, 0.0)
    return (
        rates.in_msgs_rate,
        rates.out_msgs_rate,
        rates.in_bytes_rate,
        rates.out_bytes_rate,
    )


def _unavailable(error: str | None) -> str:
    return f"NATS server unavailable: {error or 'no data yet'}\n"


def render_plain_text(
    result: StatsResult | None,
    options: DisplayOptions,
    error: str | None = None,
) -> str:
    """
    Fixed-width text view of a result.

    Args:
        result: Successful result to show (last good data after a failure)
        options: Display toggles
        error: Annotation for the header line, overrides `result.error`
    """
    if result is None or result.server is None:
        return _unavailable(error or (result.error if result else None))

    varz = result.server
    raw = options.raw_bytes
    error = error or result.error or ""
    in_msgs_rate, out_msgs_rate, in_bytes_rate, out_bytes_rate = _global_rates(
        result.rates
    )
    connections = (result.connections.connections if result.connections else ()) or ()
    num_connections = result.connections.num_connections if result.connections else 0

    lines = [
        f"NATS server version {varz.version} (uptime: {varz.uptime}) {error}",
        f"Server: {varz.name}",
        f"  ID:   {varz.id}",
        f"  Load: CPU:  {varz.cpu:.1f}%  Memory: {psize(False, varz.mem)}  "
        f"Slow Consumers: {varz.slow_consumers}",
        f"  In:   Msgs: {nsize(raw, varz.in_msgs)}  Bytes: {psize(raw, varz.in_bytes)}  "
        f"Msgs/Sec: {in_msgs_rate:.1f}  Bytes/Sec: {psize(raw, int(in_bytes_rate))}",
        f"  Out:  Msgs: {nsize(raw, varz.out_msgs)}  Bytes: {psize(raw, varz.out_bytes)}  "
        f"Msgs/Sec: {out_msgs_rate:.1f}  Bytes/Sec: {psize(raw, int(out_bytes_rate))}",
        "",
        f"Connections Polled: {num_connections}",
    ]

    hosts = [options.host(conn) for conn in connections]
    host_width = max([MIN_HOST_WIDTH] + [len(h) + 2 for h in hosts])
    name_width = max([0] + [len(c.name) + 2 for c in connections if c.name])

    header = f"{'HOST':<{host_width}} {'CID':<6}"
    if name_width:
        header += f" {'NAME':<{name_width}}"
    header += (
        "  SUBS  PENDING  MSGS_TO  MSGS_FROM  BYTES_TO  BYTES_FROM"
        "  LANG    VERSION  UPTIME         LAST_ACTIVITY"
    )
    if options.subs:
        header += f"  {SUBSCRIPTIONS_COLUMN}"
    lines.append(header)

    for host, conn in zip(hosts, connections):
        msgs_to, msgs_from, bytes_to, bytes_from = _traffic_cells(
            conn, result.rates, options
        )
        row = f"{host:<{host_width}} {conn.cid!s:<6}"
        if name_width:
            row += f" {conn.name:<{name_width}}"
        row += (
            f"  {conn.num_subs!s:<5}  {nsize(raw, conn.pending_bytes):<7}"
            f"  {msgs_to:<8}  {msgs_from:<9}"
            f"  {bytes_to:<9}  {bytes_from:<10}"
            f"  {conn.lang:<6}  {conn.version:<7}  {conn.uptime:<14}"
            f"  {format_datetime(conn.last_activity):<14}"
        )
        if options.subs:
            row += f"  {_subscriptions(conn)}"
        lines.append(row)

    return "\n".join(lines) + "\n"


def render_csv(
    result: StatsResult | None,
    options: DisplayOptions,
    delimiter: str = ",",
    error: str | None = None,
) -> str:
    """Delimited view of a result, one connection per row."""
    if result is None or result.server is None:
        return _unavailable(error or (result.error if result else None))

    varz = result.server
    raw = options.raw_bytes
    error = error or result.error or ""
    in_msgs_rate, out_msgs_rate, in_bytes_rate, out_bytes_rate = _global_rates(
        result.rates
    )
    connections = (result.connections.connections if result.connections else ()) or ()
    num_connections = result.connections.num_connections if result.connections else 0
    join: Callable[[list[str]], str] = delimiter.join

    lines = [
        join(["NATS server version", varz.version, f"(uptime: {varz.uptime})", error]),
        "Server:",
        join(
            [
                "Load",
                "CPU",
                f"{varz.cpu:.1f}%",
                "Memory",
                psize(False, varz.mem),
                "Slow Consumers",
                str(varz.slow_consumers),
            ]
        ),
        join(
            [
                "In",
                "Msgs",
                nsize(raw, varz.in_msgs),
                "Bytes",
                psize(raw, varz.in_bytes),
                "Msgs/Sec",
                f"{in_msgs_rate:.1f}",
                "Bytes/Sec",
                psize(raw, int(in_bytes_rate)),
            ]
        ),
        join(
            [
                "Out",
                "Msgs",
                nsize(raw, varz.out_msgs),
                "Bytes",
                psize(raw, varz.out_bytes),
                "Msgs/Sec",
                f"{out_msgs_rate:.1f}",
                "Bytes/Sec",
                psize(raw, int(out_bytes_rate)),
            ]
        ),
        "",
        join(["Connections Polled", str(num_connections)]),
    ]

    headers = list(COLUMNS)
    if options.subs:
        headers.append(SUBSCRIPTIONS_COLUMN)
    lines.append(join(headers))

    for conn in connections:
        row = [
            options.host(conn),
            str(conn.cid),
            conn.name,
            str(conn.num_subs),
            nsize(raw, conn.pending_bytes),
            *_traffic_cells(conn, result.rates, options),
            conn.lang,
            conn.version,
            conn.uptime,
            conn.last_activity,
        ]
        if options.subs:
            row.append(_subscriptions(conn))
        lines.append(join(row))

    return "\n".join(lines) + "\n"
