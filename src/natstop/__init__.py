"""Live monitor for a NATS server's /varz and /connz endpoints."""

__version__ = "0.1.0"
