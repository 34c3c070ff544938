"""Human-readable formatting for counters, sizes, timestamps and hosts."""

import socket
from datetime import datetime
from typing import Final

import structlog

from natstop.core.logging import Logger

logger: Logger = structlog.getLogger(__name__)

KIBIBYTE: Final[float] = 1024.0
MEBIBYTE: Final[float] = KIBIBYTE * 1024
GIBIBYTE: Final[float] = MEBIBYTE * 1024

THOUSAND: Final[float] = 1000.0
MILLION: Final[float] = THOUSAND * 1000
BILLION: Final[float] = MILLION * 1000
TRILLION: Final[float] = BILLION * 1000

DATETIME_FORMAT: Final[str] = "%Y/%m/%d %H:%M"


def psize(raw: bool, size: float) -> str:
    """Byte size with binary suffixes (K, M, G)"""
    if raw or size < KIBIBYTE:
        return f"{size:.0f}"
    if size < MEBIBYTE:
        return f"{size / KIBIBYTE:.1f}K"
    if size < GIBIBYTE:
        return f"{size / MEBIBYTE:.1f}M"
    return f"{size / GIBIBYTE:.1f}G"


def nsize(raw: bool, count: float) -> str:
    """Count with decimal suffixes (K, M, B, T)"""
    if raw or count < THOUSAND:
        return f"{count:.0f}"
    if count < MILLION:
        return f"{count / THOUSAND:.1f}K"
    if count < BILLION:
        return f"{count / MILLION:.1f}M"
    if count < TRILLION:
        return f"{count / BILLION:.1f}B"
    return f"{count / TRILLION:.1f}T"


def format_datetime(value: str) -> str:
    """ISO-8601 timestamp as YYYY/MM/DD HH:MM, input returned as-is if unparsable"""
    try:
        # fromisoformat caps fractional seconds at microseconds
        head, dot, tail = value.partition(".")
        if dot:
            digits = len(tail) - len(tail.lstrip("0123456789"))
            tail = tail[:6] + tail[digits:] if digits > 6 else tail
            value = f"{head}.{tail}"

        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime(
            DATETIME_FORMAT
        )
    except ValueError:
        return value


class DNSCache:
    """Reverse lookups, cached per IP. Failures cache the IP itself."""

    __slots__ = ("_cache",)

    def __init__(self) -> None:
        self._cache: dict[str, str] = {}

    def lookup(self, ip: str) -> str:
        cached = self._cache.get(ip)
        if cached is not None:
            return cached

        try:
            hostname = socket.gethostbyaddr(ip)[0]
        except (OSError, UnicodeError) as e:
            logger.debug(f"Reverse lookup failed for {ip}: {e}")
            hostname = ip

        self._cache[ip] = hostname
        return hostname

    def __len__(self) -> int:
        return len(self._cache)
