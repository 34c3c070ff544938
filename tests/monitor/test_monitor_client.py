"""Tests for MonitorClient against an in-process aiohttp server."""

import asyncio
import ssl

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from natstop.core.config import MonitorSettings
from natstop.exceptions import ConfigError, DecodeError, TransportError
from natstop.monitor.client import MonitorClient, build_ssl_context
from natstop.monitor.types import Err, ErrorKind, Ok


def _monitor_app(
    varz_body: bytes,
    connz_body: bytes,
    seen: list | None = None,
    status: int = 200,
    delay: float = 0.0,
) -> web.Application:
    """Fake monitoring listener serving canned bodies"""

    async def varz(request: web.Request) -> web.Response:
        if seen is not None:
            seen.append((request.path, dict(request.query)))
        if delay:
            await asyncio.sleep(delay)
        return web.Response(
            body=varz_body, status=status, content_type="application/json"
        )

    async def connz(request: web.Request) -> web.Response:
        if seen is not None:
            seen.append((request.path, dict(request.query)))
        return web.Response(
            body=connz_body, status=status, content_type="application/json"
        )

    app = web.Application()
    app.router.add_get("/varz", varz)
    app.router.add_get("/connz", connz)
    return app


def _base_url(server: TestServer) -> str:
    return f"http://{server.host}:{server.port}"


class TestMonitorClientInit:
    def test_strips_trailing_slash(self) -> None:
        client = MonitorClient("http://127.0.0.1:8222/")

        assert client.base_url == "http://127.0.0.1:8222"

    def test_from_settings(self) -> None:
        # Arrange
        monitor = MonitorSettings(host="nats.local", port=8222, conns=50, subs=True)

        # Act
        client = MonitorClient.from_settings(monitor)

        # Assert
        assert client.base_url == "http://nats.local:8222"
        assert client.connz_params == {"limit": "50", "sort": "cid", "subs": "1"}

    def test_from_settings_https(self) -> None:
        monitor = MonitorSettings(host="nats.local", https_port=8223, skip_verify=True)

        client = MonitorClient.from_settings(monitor)

        assert client.base_url == "https://nats.local:8223"


class TestFetch:
    """Raw GET with error mapping."""

    @pytest.mark.asyncio
    async def test_invalid_path_is_config_error(self) -> None:
        client = MonitorClient("http://127.0.0.1:8222")

        with pytest.raises(ConfigError, match="invalid path '/routez'"):
            await client.fetch("/routez")

        await client.close()

    @pytest.mark.asyncio
    async def test_returns_raw_body(self, varz_body: bytes, connz_body: bytes) -> None:
        # Arrange
        async with TestServer(_monitor_app(varz_body, connz_body)) as server:
            async with MonitorClient(_base_url(server)) as client:
                # Act
                body = await client.fetch("/varz")

        # Assert
        assert body == varz_body

    @pytest.mark.asyncio
    async def test_connz_params_sent_only_to_connz(
        self, varz_body: bytes, connz_body: bytes
    ) -> None:
        # Arrange
        seen: list = []
        params = {"limit": "1024", "sort": "msgs_to", "subs": "1"}
        app = _monitor_app(varz_body, connz_body, seen=seen)

        async with TestServer(app) as server:
            async with MonitorClient(_base_url(server), connz_params=params) as client:
                # Act
                await client.fetch("/varz")
                await client.fetch("/connz")

        # Assert
        assert seen == [("/varz", {}), ("/connz", params)]

    @pytest.mark.asyncio
    async def test_non_2xx_is_transport_error(
        self, varz_body: bytes, connz_body: bytes
    ) -> None:
        app = _monitor_app(varz_body, connz_body, status=503)

        async with TestServer(app) as server:
            async with MonitorClient(_base_url(server)) as client:
                with pytest.raises(TransportError, match="GET /varz: 503"):
                    await client.fetch("/varz")

    @pytest.mark.asyncio
    async def test_connection_refused_is_transport_error(
        self, unused_tcp_port: int
    ) -> None:
        async with MonitorClient(f"http://127.0.0.1:{unused_tcp_port}") as client:
            with pytest.raises(TransportError, match="GET /connz"):
                await client.fetch("/connz")

    @pytest.mark.asyncio
    async def test_timeout_is_transport_error(
        self, varz_body: bytes, connz_body: bytes
    ) -> None:
        app = _monitor_app(varz_body, connz_body, delay=1.0)

        async with TestServer(app) as server:
            async with MonitorClient(_base_url(server), timeout=0.05) as client:
                with pytest.raises(TransportError, match="GET /varz"):
                    await client.fetch("/varz")

    @pytest.mark.asyncio
    async def test_starts_session_on_demand(
        self, varz_body: bytes, connz_body: bytes
    ) -> None:
        async with TestServer(_monitor_app(varz_body, connz_body)) as server:
            client = MonitorClient(_base_url(server))
            try:
                assert await client.fetch("/connz") == connz_body
            finally:
                await client.close()


class TestTypedFetch:
    """fetch_varz / fetch_connz never raise."""

    @pytest.mark.asyncio
    async def test_ok_results(self, varz_body: bytes, connz_body: bytes) -> None:
        # Arrange
        async with TestServer(_monitor_app(varz_body, connz_body)) as server:
            async with MonitorClient(_base_url(server)) as client:
                # Act
                varz, connz = await asyncio.gather(
                    client.fetch_varz(), client.fetch_connz()
                )

        # Assert
        assert isinstance(varz, Ok)
        assert varz.value.in_msgs == 1500
        assert isinstance(connz, Ok)
        assert connz.value.num_connections == 2

    @pytest.mark.asyncio
    async def test_transport_err(self, varz_body: bytes, connz_body: bytes) -> None:
        app = _monitor_app(varz_body, connz_body, status=500)

        async with TestServer(app) as server:
            async with MonitorClient(_base_url(server)) as client:
                result = await client.fetch_varz()

        assert isinstance(result, Err)
        assert result.kind == ErrorKind.TRANSPORT
        assert "500" in result.message

    @pytest.mark.asyncio
    async def test_decode_err(self, connz_body: bytes) -> None:
        app = _monitor_app(b'{"in_msgs": "nope"}', connz_body)

        async with TestServer(app) as server:
            async with MonitorClient(_base_url(server)) as client:
                result = await client.fetch_varz()

        assert isinstance(result, Err)
        assert result.kind == ErrorKind.DECODE
        assert result.message.startswith("invalid /varz response")

    @pytest.mark.asyncio
    async def test_request_varz_raises(self, connz_body: bytes) -> None:
        app = _monitor_app(b"not json", connz_body)

        async with TestServer(app) as server:
            async with MonitorClient(_base_url(server)) as client:
                with pytest.raises(DecodeError):
                    await client.request_varz()


class TestBuildSSLContext:
    def test_default_verifies(self) -> None:
        context = build_ssl_context()

        assert context.verify_mode == ssl.CERT_REQUIRED
        assert context.check_hostname is True

    def test_skip_verify(self) -> None:
        context = build_ssl_context(skip_verify=True)

        assert context.verify_mode == ssl.CERT_NONE
        assert context.check_hostname is False

    def test_missing_ca_file(self, tmp_path) -> None:
        with pytest.raises(OSError):
            build_ssl_context(ca_cert=str(tmp_path / "missing.pem"))

    def test_from_settings_wraps_tls_errors(self, tmp_path) -> None:
        missing = str(tmp_path / "missing.pem")
        monitor = MonitorSettings(https_port=8443, ca_cert=missing)

        with pytest.raises(ConfigError, match="invalid TLS settings"):
            MonitorClient.from_settings(monitor)
