"""HTTP(S) client for the server's monitoring endpoints."""

import asyncio
import ssl

import aiohttp
import structlog

from natstop.core.config import MonitorSettings
from natstop.core.logging import Logger
from natstop.exceptions import ConfigError, DecodeError, TransportError
from natstop.monitor.parser import SnapshotParser
from natstop.monitor.protocol import ConnectionsPage, ServerSnapshot
from natstop.monitor.types import (
    CONNZ_PATH,
    ENDPOINTS,
    VARZ_PATH,
    Err,
    ErrorKind,
    FetchResult,
    Ok,
)

logger: Logger = structlog.getLogger(__name__)


def build_ssl_context(
    ca_cert: str = "",
    cert: str = "",
    key: str = "",
    skip_verify: bool = False,
) -> ssl.SSLContext:
    """
    Build the TLS context for HTTPS monitoring ports.

    Args:
        ca_cert: Optional CA bundle used to verify the server
        cert: Optional client certificate (PEM)
        key: Private key for `cert`
        skip_verify: Disable hostname and certificate verification
    """
    context = ssl.create_default_context(cafile=ca_cert or None)

    if cert and key:
        context.load_cert_chain(certfile=cert, keyfile=key)

    if skip_verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    return context


class MonitorClient:
    """
    Snapshot fetcher for /varz and /connz.

    `fetch()` raises, the typed `fetch_*` methods never do: they return
    Ok(snapshot) or Err(kind, message) for the scheduler to match on.
    """

    __slots__ = (
        "_base_url",
        "_connz_params",
        "_ssl",
        "_timeout",
        "_session",
        "_parser",
    )

    def __init__(
        self,
        base_url: str,
        connz_params: dict[str, str] | None = None,
        ssl_context: ssl.SSLContext | None = None,
        timeout: float = 5.0,
    ) -> None:
        """
        Args:
            base_url: Scheme, host and port of the monitoring listener
            connz_params: Query parameters sent with every /connz request
            ssl_context: TLS context for https:// targets
            timeout: Total per-request timeout in seconds
        """
        self._base_url = base_url.rstrip("/")
        self._connz_params = dict(connz_params or {})
        self._ssl = ssl_context
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None
        self._parser = SnapshotParser()

    @classmethod
    def from_settings(cls, monitor: MonitorSettings) -> "MonitorClient":
        """
        Build a client for the configured target.

        Raises:
            ConfigError: CA bundle, certificate or key cannot be loaded
        """
        ssl_context = None
        if monitor.use_tls:
            try:
                ssl_context = build_ssl_context(
                    ca_cert=monitor.ca_cert,
                    cert=monitor.cert,
                    key=monitor.key,
                    skip_verify=monitor.skip_verify,
                )
            except OSError as e:
                # ssl.SSLError is an OSError too
                raise ConfigError(f"invalid TLS settings: {e}") from e

        return cls(
            base_url=monitor.base_url,
            connz_params=monitor.connz_params,
            ssl_context=ssl_context,
            timeout=monitor.request_timeout,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def connz_params(self) -> dict[str, str]:
        return dict(self._connz_params)

    async def start(self) -> None:
        if self._session is None:
            self._open_session()

    def _open_session(self) -> aiohttp.ClientSession:
        connector = aiohttp.TCPConnector(ssl=self._ssl) if self._ssl else None
        self._session = aiohttp.ClientSession(
            connector=connector,
            timeout=self._timeout,
        )
        return self._session

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "MonitorClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def fetch(self, path: str) -> bytes:
        """
        GET `path` and return the raw body.

        Raises:
            ConfigError: `path` is not a monitoring endpoint
            TransportError: network/TLS failure, timeout or non-2xx status
        """
        if path not in ENDPOINTS:
            raise ConfigError(f"invalid path '{path}'")

        session = self._session if self._session is not None else self._open_session()

        params = self._connz_params if path == CONNZ_PATH else None
        url = self._base_url + path

        try:
            async with session.get(url, params=params) as response:
                response.raise_for_status()
                return await response.read()

        except aiohttp.ClientResponseError as e:
            raise TransportError(f"GET {path}: {e.status} {e.message}") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"GET {path}: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransportError(f"GET {path}: request timed out") from e

    async def request_varz(self) -> ServerSnapshot:
        """Fetch and decode /varz, raising on failure. Used as a smoke test."""
        return self._parser.parse_varz(await self.fetch(VARZ_PATH))

    async def request_connz(self) -> ConnectionsPage:
        return self._parser.parse_connz(await self.fetch(CONNZ_PATH))

    async def fetch_varz(self) -> FetchResult[ServerSnapshot]:
        try:
            return Ok(await self.request_varz())
        except TransportError as e:
            return Err(ErrorKind.TRANSPORT, str(e))
        except DecodeError as e:
            return Err(ErrorKind.DECODE, str(e))

    async def fetch_connz(self) -> FetchResult[ConnectionsPage]:
        try:
            return Ok(await self.request_connz())
        except TransportError as e:
            return Err(ErrorKind.TRANSPORT, str(e))
        except DecodeError as e:
            return Err(ErrorKind.DECODE, str(e))
