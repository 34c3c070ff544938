import asyncio
import signal
import sys
from typing import Any, TextIO

import msgspec
import structlog

from natstop.core.config import MonitorSettings
from natstop.core.logging import Logger
from natstop.engine.scheduler import PollScheduler
from natstop.engine.state import EngineState
from natstop.monitor.client import MonitorClient
from natstop.output.render import DisplayOptions, render_csv, render_plain_text
from natstop.server import HTTPServer

logger: Logger = structlog.getLogger(__name__)

CLEAR_SCREEN = "\x1b[2J\x1b[H"


class NatsTop:
    """
    Main application orchestrator.

    Owns the monitor client, the poll scheduler and the optional exporter,
    starting and stopping them in order. Renders the published state to
    `out` as a live view or as a one-shot report.
    """

    __slots__ = (
        "_monitor",
        "_client",
        "_scheduler",
        "_display",
        "_http_server",
        "_out",
        "_running",
        "_shutdown_event",
    )

    def __init__(
        self,
        monitor: MonitorSettings,
        client: MonitorClient | None = None,
        out: TextIO | None = None,
    ) -> None:
        """
        Args:
            monitor: Target, polling and display settings
            client: Snapshot fetcher (built from `monitor` by default)
            out: Stream for rendered output (stdout by default)
        """
        self._monitor = monitor
        self._client = client or MonitorClient.from_settings(monitor)
        self._scheduler = PollScheduler(self._client, interval=monitor.delay)
        self._display = DisplayOptions(
            show_rates=monitor.show_rates,
            subs=monitor.subs,
            raw_bytes=monitor.raw_bytes,
            lookup_dns=monitor.lookup_dns,
        )
        self._http_server: HTTPServer | None = None
        self._out = out or sys.stdout

        self._running = False
        self._shutdown_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def scheduler(self) -> PollScheduler:
        return self._scheduler

    @property
    def display(self) -> DisplayOptions:
        return self._display

    async def start(self) -> None:
        """
        Start all components in order.

        Raises:
            TransportError, DecodeError: /varz smoke test failed
        """
        if self._running:
            logger.warning("Application already running")
            return

        logger.info(f"Starting natstop against {self._client.base_url}")

        # 1. Client + smoke test
        await self._client.start()
        varz = await self._client.request_varz()
        logger.info(f"✓ Reached server {varz.name or varz.id} (version {varz.version})")

        # 2. Poll scheduler
        await self._scheduler.start()
        logger.info("✓ PollScheduler started")

        # 3. Exporter (if enabled)
        if self._monitor.enable_http:
            self._http_server = HTTPServer(
                app=self,
                port=self._monitor.http_port,
                host=self._monitor.http_host,
            )
            try:
                await self._http_server.start()
            except OSError as e:
                # The monitor keeps working without the exporter
                logger.error(f"Failed to start HTTP server: {e}")
                self._http_server = None

        self._running = True
        logger.info("✓ natstop started")

    async def stop(self) -> None:
        logger.info("Stopping natstop...")

        if self._http_server:
            try:
                await self._http_server.stop()
            except Exception as e:
                logger.error(f"Error stopping HTTP server: {e}")
            self._http_server = None

        try:
            await self._scheduler.stop()
        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")

        await self._client.close()

        self._running = False
        logger.info("natstop stopped")

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def run(self) -> None:
        """
        Run the live view with signal handling.

        Renders after every publish until SIGINT/SIGTERM or until
        `max_refreshes` renders have been written.
        """
        loop = asyncio.get_running_loop()

        def signal_handler(*args, **kwargs) -> None:
            logger.info("Shutdown signal received")
            self._shutdown_event.set()

        signals = (signal.SIGINT, signal.SIGTERM)
        for sig in signals:
            loop.add_signal_handler(sig, signal_handler)

        try:
            await self.start()
            await self._live_loop()
        finally:
            await self.stop()

            for sig in signals:
                try:
                    loop.remove_signal_handler(sig)
                except (ValueError, RuntimeError):
                    pass

    async def run_once(self) -> str:
        """
        Poll once, write the report to `output_file` ('-' for the output
        stream) and return it.
        """
        try:
            await self._client.start()
            await self._client.request_varz()
            await self._scheduler.poll_once()
            text = self.render(self._scheduler.state)
        finally:
            await self._client.close()

        target = self._monitor.output_file
        if not target or target == "-":
            self._out.write(text)
            self._out.flush()
        else:
            with open(target, "w", encoding="utf-8") as fh:
                fh.write(text)
            logger.info(f"Wrote report to {target}")

        return text

    async def _live_loop(self) -> None:
        refreshes = 0
        limit = self._monitor.max_refreshes
        rendered: EngineState | None = None

        while not self._shutdown_event.is_set():
            state = self._scheduler.state

            # A publish can land before the first wait, e.g. while the
            # exporter starts, so draw it now instead of a tick later
            if state.last_result is None or state is rendered:
                published = asyncio.ensure_future(self._scheduler.wait_for_publish())
                shutdown = asyncio.ensure_future(self._shutdown_event.wait())

                done, pending = await asyncio.wait(
                    {published, shutdown},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                for task in pending:
                    task.cancel()

                if shutdown in done:
                    break

                state = self._scheduler.state

            self._write_live(self.render(state))
            rendered = state
            refreshes += 1

            if limit > 0 and refreshes >= limit:
                break

    def _write_live(self, text: str) -> None:
        if self._out.isatty():
            self._out.write(CLEAR_SCREEN)
        self._out.write(text)
        self._out.flush()

    def render(self, state: EngineState) -> str:
        result, error = state.display()
        if self._monitor.output_delimiter:
            return render_csv(
                result,
                self._display,
                delimiter=self._monitor.output_delimiter,
                error=error,
            )
        return render_plain_text(result, self._display, error=error)

    def get_stats(self) -> dict[str, Any]:
        """
        Snapshot of application state for the exporter.

        Returns:
            dict with keys: running, target, scheduler, state, server,
            connections_polled, rates, connections
        """
        state = self._scheduler.state
        scheduler_stats = self._scheduler.stats
        result, error = state.display()

        stats: dict[str, Any] = {
            "running": self._running,
            "target": self._client.base_url,
            "scheduler": {
                "status": self._scheduler.status.name,
                "interval": self._scheduler.interval,
                "polls_completed": scheduler_stats.polls_completed,
                "polls_failed": scheduler_stats.polls_failed,
                "success_rate": scheduler_stats.success_rate,
                "last_poll_duration_ms": scheduler_stats.last_poll_duration_ms,
                "avg_poll_duration_ms": scheduler_stats.avg_poll_duration_ms,
            },
            "state": {
                "has_baseline": state.has_baseline,
                "last_error": error,
                "connection_index_size": len(state.connection_index),
            },
            "server": {},
            "connections_polled": 0,
            "rates": None,
            "connections": [],
        }

        if result and result.server:
            stats["server"] = msgspec.to_builtins(result.server)

        if result and result.connections:
            stats["connections_polled"] = result.connections.num_connections
            stats["connections"] = msgspec.to_builtins(
                result.connections.connections or ()
            )

        if result and result.rates:
            stats["rates"] = msgspec.to_builtins(result.rates, str_keys=True)

        return stats

    def is_healthy(self) -> bool:
        """Running and the most recent poll succeeded"""
        if not self._running:
            return False

        last = self._scheduler.latest
        if last is None or last.is_error:
            logger.debug("Health check: last poll failed or not yet run")
            return False

        return True
