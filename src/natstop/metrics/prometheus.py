"""Prometheus metrics collector for natstop.

Server counters (in_msgs, out_bytes, ...) are cumulative on the monitored
server and can go backwards after a restart, so they are exported as gauges
rather than counters. Per-connection values are the raw per-poll deltas
computed by the rate engine, not per-second rates.

Example PromQL queries:
- Inbound message rate: natstop_server_messages_per_second{direction="in"}
- Busiest connections: topk(5, natstop_connection_messages_delta{direction="out"})
"""

from typing import TYPE_CHECKING, Any

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Summary,
    generate_latest,
)

if TYPE_CHECKING:
    from natstop.app import NatsTop


class MetricsCollector:
    """
    Exposes the latest published stats as Prometheus metrics.

    Builds a fresh registry from app.get_stats() on every scrape.
    """

    def __init__(self, app: "NatsTop") -> None:
        """Initialize metrics collector.

        Args:
            app: NatsTop application instance to collect stats from
        """
        self._app = app

    def collect_metrics(self) -> bytes:
        """
        Collect current stats and return Prometheus text format.

        Returns:
            Prometheus text exposition format bytes
        """
        registry = CollectorRegistry()

        stats = self._app.get_stats()

        self._collect_application_metrics(registry, stats)
        self._collect_scheduler_metrics(registry, stats)
        self._collect_server_metrics(registry, stats)
        self._collect_rate_metrics(registry, stats)
        self._collect_connection_metrics(registry, stats)

        return generate_latest(registry)

    def _collect_application_metrics(
        self, registry: CollectorRegistry, stats: dict[str, Any]
    ) -> None:
        running = Gauge(
            "natstop_application_running",
            "Whether the monitor is running (1) or stopped (0)",
            registry=registry,
        )
        running.set(1 if stats.get("running") else 0)

        state = stats.get("state", {})

        last_poll_ok = Gauge(
            "natstop_last_poll_success",
            "Whether the most recent poll succeeded (1) or failed (0)",
            registry=registry,
        )
        last_poll_ok.set(0 if state.get("last_error") else 1)

        index_size = Gauge(
            "natstop_connection_index_size",
            "Connections retained as the diff baseline",
            registry=registry,
        )
        index_size.set(state.get("connection_index_size", 0))

    def _collect_scheduler_metrics(
        self, registry: CollectorRegistry, stats: dict[str, Any]
    ) -> None:
        scheduler_stats = stats.get("scheduler", {})
        if not scheduler_stats:
            return

        polls = Counter(
            "natstop_polls_total",
            "Poll cycles by outcome",
            ["outcome"],
            registry=registry,
        )
        completed = scheduler_stats.get("polls_completed", 0)
        failed = scheduler_stats.get("polls_failed", 0)
        polls.labels(outcome="success")._value.set(completed)
        polls.labels(outcome="failure")._value.set(failed)

        # Populated from aggregates, so only _sum and _count are meaningful
        duration = Summary(
            "natstop_poll_duration_seconds",
            "Poll cycle duration in seconds",
            registry=registry,
        )
        total = completed + failed
        avg_ms = scheduler_stats.get("avg_poll_duration_ms", 0.0)
        if total > 0:
            duration._sum.set(avg_ms / 1000.0 * total)
            duration._count.set(total)

    def _collect_server_metrics(
        self, registry: CollectorRegistry, stats: dict[str, Any]
    ) -> None:
        server = stats.get("server", {})
        if not server:
            return

        info = Gauge(
            "natstop_server_info",
            "Monitored server identity",
            ["server_id", "server_name", "version"],
            registry=registry,
        )
        info.labels(
            server_id=server.get("server_id", ""),
            server_name=server.get("server_name", ""),
            version=server.get("version", ""),
        ).set(1)

        cpu = Gauge(
            "natstop_server_cpu_percent",
            "Server CPU usage in percent",
            registry=registry,
        )
        cpu.set(server.get("cpu", 0.0))

        mem = Gauge(
            "natstop_server_memory_bytes",
            "Server resident memory in bytes",
            registry=registry,
        )
        mem.set(server.get("mem", 0))

        slow_consumers = Gauge(
            "natstop_server_slow_consumers",
            "Slow consumers reported by the server",
            registry=registry,
        )
        slow_consumers.set(server.get("slow_consumers", 0))

        messages = Gauge(
            "natstop_server_messages",
            "Cumulative messages reported by the server",
            ["direction"],
            registry=registry,
        )
        messages.labels(direction="in").set(server.get("in_msgs", 0))
        messages.labels(direction="out").set(server.get("out_msgs", 0))

        traffic = Gauge(
            "natstop_server_bytes",
            "Cumulative bytes reported by the server",
            ["direction"],
            registry=registry,
        )
        traffic.labels(direction="in").set(server.get("in_bytes", 0))
        traffic.labels(direction="out").set(server.get("out_bytes", 0))

        polled = Gauge(
            "natstop_connections_polled",
            "num_connections reported by the last /connz poll",
            registry=registry,
        )
        polled.set(stats.get("connections_polled", 0))

    def _collect_rate_metrics(
        self, registry: CollectorRegistry, stats: dict[str, Any]
    ) -> None:
        rates = stats.get("rates")
        if not rates:
            return

        messages = Gauge(
            "natstop_server_messages_per_second",
            "Server message rate over the last poll interval",
            ["direction"],
            registry=registry,
        )
        messages.labels(direction="in").set(rates.get("in_msgs_rate", 0.0))
        messages.labels(direction="out").set(rates.get("out_msgs_rate", 0.0))

        traffic = Gauge(
            "natstop_server_bytes_per_second",
            "Server byte rate over the last poll interval",
            ["direction"],
            registry=registry,
        )
        traffic.labels(direction="in").set(rates.get("in_bytes_rate", 0.0))
        traffic.labels(direction="out").set(rates.get("out_bytes_rate", 0.0))

    def _collect_connection_metrics(
        self, registry: CollectorRegistry, stats: dict[str, Any]
    ) -> None:
        """Per-connection deltas with cid labels."""
        rates = stats.get("rates")
        if not rates:
            return

        connection_rates = rates.get("connections", {})
        if not connection_rates:
            return

        messages = Gauge(
            "natstop_connection_messages_delta",
            "Messages since the previous poll per connection",
            ["cid", "direction"],
            registry=registry,
        )
        traffic = Gauge(
            "natstop_connection_bytes_delta",
            "Bytes since the previous poll per connection",
            ["cid", "direction"],
            registry=registry,
        )

        for cid, rate in connection_rates.items():
            messages.labels(cid=cid, direction="in").set(rate.get("in_msgs_rate", 0.0))
            messages.labels(cid=cid, direction="out").set(
                rate.get("out_msgs_rate", 0.0)
            )
            traffic.labels(cid=cid, direction="in").set(rate.get("in_bytes_rate", 0.0))
            traffic.labels(cid=cid, direction="out").set(
                rate.get("out_bytes_rate", 0.0)
            )
