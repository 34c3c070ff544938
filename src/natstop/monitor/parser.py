import msgspec
import structlog

from natstop.core.logging import Logger
from natstop.exceptions import DecodeError
from natstop.monitor.protocol import ConnectionsPage, ServerSnapshot

logger: Logger = structlog.getLogger(__name__)

# Pre-compiled typed decoders, one per endpoint
_varz_decoder = msgspec.json.Decoder(ServerSnapshot)
_connz_decoder = msgspec.json.Decoder(ConnectionsPage)


class SnapshotParser:
    """Decode raw endpoint bodies into typed snapshots, all or nothing."""

    @staticmethod
    def parse_varz(data: bytes) -> ServerSnapshot:
        try:
            return _varz_decoder.decode(data)

        except msgspec.DecodeError as e:
            logger.debug(f"Unable to decode /varz body: {e}")
            raise DecodeError(f"invalid /varz response: {e}") from e

    @staticmethod
    def parse_connz(data: bytes) -> ConnectionsPage:
        try:
            page = _connz_decoder.decode(data)

        except msgspec.DecodeError as e:
            logger.debug(f"Unable to decode /connz body: {e}")
            raise DecodeError(f"invalid /connz response: {e}") from e

        if page.connections is None:
            page = msgspec.structs.replace(page, connections=())

        return page
