"""Result types returned by the snapshot fetcher."""

from dataclasses import dataclass
from enum import IntEnum, auto
from typing import TYPE_CHECKING, Final, Generic, Protocol, TypeVar

if TYPE_CHECKING:
    from natstop.monitor.protocol import ConnectionsPage, ServerSnapshot

T = TypeVar("T")


class ErrorKind(IntEnum):
    """Why a fetch failed"""

    TRANSPORT = auto()  # network, TLS, non-2xx
    DECODE = auto()  # malformed JSON or schema mismatch


@dataclass(slots=True, frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(slots=True, frozen=True)
class Err:
    kind: ErrorKind
    message: str


# Ok(snapshot) | Err(kind, message)
FetchResult = Ok[T] | Err


# Endpoints
VARZ_PATH: Final[str] = "/varz"
CONNZ_PATH: Final[str] = "/connz"
ENDPOINTS: Final[frozenset[str]] = frozenset({VARZ_PATH, CONNZ_PATH})


class SnapshotFetcher(Protocol):
    """What the poll scheduler needs from a transport"""

    async def fetch_varz(self) -> "FetchResult[ServerSnapshot]": ...

    async def fetch_connz(self) -> "FetchResult[ConnectionsPage]": ...
