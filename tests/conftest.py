"""Shared pytest fixtures for all test modules."""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import pytest

from natstop.monitor.protocol import (
    ConnectionSnapshot,
    ConnectionsPage,
    ServerSnapshot,
)
from natstop.monitor.types import Err, ErrorKind, FetchResult, Ok

# Server clock at t=0 for snapshot factories
T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeFetcher:
    """
    Stand-in for MonitorClient.

    Results are served in the order pushed; once the queue runs dry the last
    result is repeated.
    """

    base_url = "http://fake:8222"

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self._varz: list[FetchResult[ServerSnapshot]] = []
        self._connz: list[FetchResult[ConnectionsPage]] = []
        self.varz_calls = 0
        self.connz_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.started = False
        self.closed = False
        self.smoke_error: Exception | None = None

    def push(
        self,
        server: ServerSnapshot | None = None,
        page: ConnectionsPage | None = None,
        varz_error: str | None = None,
        connz_error: str | None = None,
    ) -> None:
        self._varz.append(
            Err(ErrorKind.TRANSPORT, varz_error) if varz_error else Ok(server)
        )
        self._connz.append(
            Err(ErrorKind.TRANSPORT, connz_error)
            if connz_error
            else Ok(page or ConnectionsPage())
        )

    async def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        self.closed = True

    async def request_varz(self) -> ServerSnapshot:
        if self.smoke_error:
            raise self.smoke_error
        result = self._varz[0]
        assert isinstance(result, Ok)
        return result.value

    async def fetch_varz(self) -> FetchResult[ServerSnapshot]:
        self.varz_calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return self._next(self._varz, self.varz_calls)
        finally:
            self.in_flight -= 1

    async def fetch_connz(self) -> FetchResult[ConnectionsPage]:
        self.connz_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self._next(self._connz, self.connz_calls)

    @staticmethod
    def _next(results: list, call: int):
        return results[min(call, len(results)) - 1]


@pytest.fixture
def make_server() -> Callable[..., ServerSnapshot]:
    """Factory for ServerSnapshot at T0 + `seconds`"""

    def _make(
        seconds: float = 0.0,
        in_msgs: int = 0,
        out_msgs: int = 0,
        in_bytes: int = 0,
        out_bytes: int = 0,
        **kwargs,
    ) -> ServerSnapshot:
        kwargs.setdefault("version", "2.10.11")
        kwargs.setdefault("name", "nats-a")
        kwargs.setdefault("id", "NDJWE4SOUJOJT2TY5Y2YQEOAHGAK5VIGXTGKWJSFHVCII4ITI3LBHBUV")
        kwargs.setdefault("uptime", "1h2m3s")
        return ServerSnapshot(
            in_msgs=in_msgs,
            out_msgs=out_msgs,
            in_bytes=in_bytes,
            out_bytes=out_bytes,
            now=T0 + timedelta(seconds=seconds),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_conn() -> Callable[..., ConnectionSnapshot]:
    """Factory for ConnectionSnapshot"""

    def _make(
        cid: int,
        in_msgs: int = 0,
        out_msgs: int = 0,
        in_bytes: int = 0,
        out_bytes: int = 0,
        **kwargs,
    ) -> ConnectionSnapshot:
        kwargs.setdefault("ip", "10.0.0.1")
        kwargs.setdefault("port", 50000 + cid)
        kwargs.setdefault("lang", "go")
        kwargs.setdefault("version", "1.31.0")
        kwargs.setdefault("uptime", "5m")
        kwargs.setdefault("last_activity", "2024-05-01T11:59:58.123456789Z")
        return ConnectionSnapshot(
            cid=cid,
            in_msgs=in_msgs,
            out_msgs=out_msgs,
            in_bytes=in_bytes,
            out_bytes=out_bytes,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_page() -> Callable[..., ConnectionsPage]:
    def _make(*connections: ConnectionSnapshot) -> ConnectionsPage:
        return ConnectionsPage(
            num_connections=len(connections),
            connections=tuple(connections),
        )

    return _make


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def varz_body() -> bytes:
    """/varz response as served by a 2.10 server (trimmed)"""
    return b"""{
        "server_id": "NDJWE4SOUJOJT2TY5Y2YQEOAHGAK5VIGXTGKWJSFHVCII4ITI3LBHBUV",
        "server_name": "nats-a",
        "version": "2.10.11",
        "proto": 1,
        "go": "go1.21.8",
        "host": "0.0.0.0",
        "port": 4222,
        "max_connections": 65536,
        "now": "2024-05-01T12:00:05.123456789Z",
        "uptime": "1h2m3s",
        "mem": 15728640,
        "cores": 8,
        "cpu": 2.5,
        "connections": 2,
        "total_connections": 10,
        "in_msgs": 1500,
        "out_msgs": 3000,
        "in_bytes": 150000,
        "out_bytes": 300000,
        "slow_consumers": 1,
        "subscriptions": 12
    }"""


@pytest.fixture
def connz_body() -> bytes:
    """/connz?subs=1 response (trimmed)"""
    return b"""{
        "server_id": "NDJWE4SOUJOJT2TY5Y2YQEOAHGAK5VIGXTGKWJSFHVCII4ITI3LBHBUV",
        "now": "2024-05-01T12:00:05.123456789Z",
        "num_connections": 2,
        "total": 2,
        "offset": 0,
        "limit": 1024,
        "connections": [
            {
                "cid": 7,
                "kind": "Client",
                "type": "nats",
                "ip": "10.0.0.7",
                "port": 51234,
                "start": "2024-05-01T11:00:00Z",
                "last_activity": "2024-05-01T12:00:04.5Z",
                "rtt": "1.2ms",
                "uptime": "1h0m5s",
                "idle": "0s",
                "pending_bytes": 0,
                "in_msgs": 10,
                "out_msgs": 80,
                "in_bytes": 1000,
                "out_bytes": 8000,
                "subscriptions": 2,
                "name": "orders-svc",
                "lang": "go",
                "version": "1.31.0",
                "subscriptions_list": ["orders.>", "_INBOX.abc"],
                "subs": ["orders.>", "_INBOX.abc"]
            },
            {
                "cid": 9,
                "ip": "10.0.0.9",
                "port": 40000,
                "last_activity": "2024-05-01T12:00:01Z",
                "uptime": "2s",
                "pending_bytes": 2048,
                "in_msgs": 0,
                "out_msgs": 0,
                "in_bytes": 0,
                "out_bytes": 0,
                "subscriptions": 0,
                "lang": "python3",
                "version": "2.6.0"
            }
        ]
    }"""


@pytest.fixture
def make_fetcher() -> Callable[..., FakeFetcher]:
    """Factory for FakeFetcher with a per-request delay"""
    return FakeFetcher
