"""Error types raised while talking to the monitored server."""

from __future__ import annotations


class NatsTopError(Exception):
    """Base exception for natstop errors."""

    pass


class TransportError(NatsTopError):
    """Network, TLS or non-2xx HTTP failure while fetching an endpoint."""

    pass


class DecodeError(NatsTopError):
    """Response body is not valid JSON or does not match the expected schema."""

    pass


class ConfigError(NatsTopError):
    """Invalid endpoint path or settings. Programming error, not a runtime condition."""

    pass
