"""Read-only HTTP exporter for the published monitoring state."""

from natstop.server.server import HTTPServer

__all__ = ["HTTPServer"]
