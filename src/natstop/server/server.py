from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from aiohttp import web
from aiohttp.hdrs import CONTENT_TYPE
from prometheus_client import CONTENT_TYPE_LATEST

from natstop.core.logging import Logger

if TYPE_CHECKING:
    from natstop.app import NatsTop

logger: Logger = structlog.getLogger(__name__)


class HTTPServer:
    """
    HTTP server exposing health, stats and Prometheus metrics.

    Read-only consumer of the published engine state: every handler reads
    the current state once and never touches the scheduler.
    """

    __slots__ = (
        "_app",
        "_port",
        "_host",
        "_runner",
        "_site",
        "_running",
    )

    def __init__(
        self,
        app: "NatsTop",
        port: int = 9090,
        host: str = "127.0.0.1",
    ) -> None:
        """Initialize HTTP server.

        Args:
            app: NatsTop application instance to query for health/stats
            port: Port to bind to (default: 9090)
            host: Host to bind to (default: 127.0.0.1)
        """
        self._app = app
        self._port = port
        self._host = host
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def build_app(self) -> web.Application:
        web_app = web.Application()
        web_app.router.add_get("/health", self._handle_health)
        web_app.router.add_get("/stats", self._handle_stats)
        web_app.router.add_get("/metrics", self._handle_metrics)
        return web_app

    async def start(self) -> None:
        """Start HTTP server.

        Raises:
            OSError: If the port cannot be bound
        """
        if self._running:
            logger.warning("HTTP server already running")
            return

        logger.info(f"Starting HTTP server on {self._host}:{self._port}")

        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()

        self._site = web.TCPSite(
            self._runner,
            self._host,
            self._port,
        )
        try:
            await self._site.start()
        except OSError:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            raise

        self._running = True
        logger.info(f"✓ HTTP server started on {self._host}:{self._port}")

    async def stop(self) -> None:
        """Stop HTTP server gracefully."""
        if not self._running:
            logger.warning("HTTP server not running")
            return

        logger.info("Stopping HTTP server...")

        self._running = False

        if self._site:
            await self._site.stop()
            self._site = None

        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        logger.info("✓ HTTP server stopped")

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Handle GET /health endpoint.

        Returns:
            200 OK when running and the last poll succeeded
            503 Service Unavailable otherwise
        """
        logger.debug("GET /health")

        is_healthy = self._app.is_healthy()
        scheduler = self._app.scheduler
        last = scheduler.latest

        components = {
            "scheduler": scheduler.is_running,
            "last_poll": last is not None and not last.is_error,
            "baseline": scheduler.state.has_baseline,
        }

        response_data = {
            "healthy": is_healthy,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "components": components,
            "error": last.error if last is not None else None,
        }

        status = 200 if is_healthy else 503
        return web.json_response(response_data, status=status)

    async def _handle_stats(self, request: web.Request) -> web.Response:
        """Handle GET /stats endpoint.

        Returns:
            200 OK with the latest published stats
        """
        logger.debug("GET /stats")

        stats = self._app.get_stats()
        return web.json_response(stats, status=200)

    async def _handle_metrics(self, request: web.Request) -> web.Response:
        """Handle GET /metrics endpoint.

        Returns:
            200 OK with Prometheus text exposition format
        """
        try:
            # Import here to avoid circular dependency
            from natstop.metrics.prometheus import MetricsCollector

            collector = MetricsCollector(self._app)
            metrics_bytes = collector.collect_metrics()

        except Exception as e:
            logger.exception(f"Error getting metrics: {e}")
            return web.json_response({"error": str(e)}, status=500)

        return web.Response(
            body=metrics_bytes,
            headers={CONTENT_TYPE: CONTENT_TYPE_LATEST},
        )
